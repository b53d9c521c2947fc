"""Contractor scorer - ranks candidate providers for a case.

Scoring is a weighted sum of independent sub-scores (each 0..1):

    specialization  40   category / skill overlap with the case
    workload        20   1 - open_jobs / max_jobs_per_day
    rating          15   rating / 5, missing rating = 0.5
    response_time   15   <= 2h is best, 48h+ scores 0, missing = 24h
    emergency       10   only for Urgent/Critical cases with an emergency-ready provider

Inactive providers and providers with no remaining capacity are excluded
before scoring. Ties are broken by provider id so rankings are stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping
from uuid import UUID

from fixdesk.db.models import Case, Provider
from fixdesk.schemas.classification import ClassificationResult
from fixdesk.utils.normalization import normalize_tag, tags_overlap

DEFAULT_WEIGHTS: Mapping[str, float] = {
    "specialization": 40.0,
    "workload": 20.0,
    "rating": 15.0,
    "response_time": 15.0,
    "emergency": 10.0,
}

EMERGENCY_URGENCIES = {"urgent", "critical"}
GENERALIST_CATEGORY = "general maintenance"
DEFAULT_RESPONSE_TIME_HOURS = 24
FAST_RESPONSE_HOURS = 2
SLOW_RESPONSE_HOURS = 48

# Partial specialization credit
DESCRIPTION_MENTION_CREDIT = 0.5
GENERALIST_CREDIT = 0.3


@dataclass(frozen=True)
class CaseProfile:
    """What the scorer needs to know about a case."""

    case_id: UUID | None
    title: str
    description: str
    category: str | None
    urgency: str
    subcategory: str | None = None
    contractor_type: str | None = None
    required_skills: tuple[str, ...] = ()

    @classmethod
    def from_case(
        cls, case: Case, classification: ClassificationResult | None = None
    ) -> "CaseProfile":
        if classification is None:
            return cls(
                case_id=case.id,
                title=case.title,
                description=case.description,
                category=case.category,
                urgency=case.urgency,
            )
        return cls(
            case_id=case.id,
            title=case.title,
            description=case.description,
            category=classification.category,
            # Classifier urgency keeps "Critical" distinct from the case's "Urgent"
            urgency=classification.urgency.value,
            subcategory=classification.subcategory,
            contractor_type=classification.contractor_type,
            required_skills=tuple(classification.required_skills),
        )


@dataclass(frozen=True)
class ProviderCandidate:
    """Snapshot of a provider plus its point-in-time workload."""

    provider_id: UUID
    name: str
    category: str
    specializations: tuple[str, ...] = ()
    rating: float | None = None
    response_time_hours: int | None = None
    max_jobs_per_day: int = 3
    current_workload: int = 0
    emergency_available: bool = False
    is_active: bool = True

    @classmethod
    def from_provider(cls, provider: Provider, workload: int = 0) -> "ProviderCandidate":
        return cls(
            provider_id=provider.id,
            name=provider.name,
            category=provider.category,
            specializations=tuple(provider.specializations or ()),
            rating=provider.rating,
            response_time_hours=provider.response_time_hours,
            max_jobs_per_day=provider.max_jobs_per_day,
            current_workload=workload,
            emergency_available=provider.emergency_available,
            is_active=provider.is_active_contractor,
        )

    @property
    def has_capacity(self) -> bool:
        return self.max_jobs_per_day > 0 and self.current_workload < self.max_jobs_per_day


@dataclass(frozen=True)
class MatchResult:
    provider_id: UUID
    score: float
    breakdown: dict[str, float] = field(default_factory=dict)
    reasoning: str = ""


class ContractorScorer:
    """Deterministic provider ranking."""

    def __init__(self, weights: Mapping[str, float] | None = None):
        self.weights = dict(DEFAULT_WEIGHTS if weights is None else weights)

    def rank(
        self, case: CaseProfile, candidates: Iterable[ProviderCandidate]
    ) -> list[MatchResult]:
        """Best-first matches for eligible candidates."""
        eligible = [c for c in candidates if c.is_active and c.has_capacity]
        matches = [self.score(case, candidate) for candidate in eligible]
        return sorted(matches, key=lambda m: (-m.score, str(m.provider_id)))

    def score(self, case: CaseProfile, candidate: ProviderCandidate) -> MatchResult:
        factors = {
            "specialization": specialization_score(case, candidate),
            "workload": workload_score(candidate),
            "rating": rating_score(candidate.rating),
            "response_time": response_time_score(candidate.response_time_hours),
            "emergency": emergency_score(case, candidate),
        }
        breakdown = {
            name: round(value * self.weights.get(name, 0.0), 2) for name, value in factors.items()
        }
        total = min(max(sum(breakdown.values()), 0.0), 100.0)
        return MatchResult(
            provider_id=candidate.provider_id,
            score=round(total, 2),
            breakdown=breakdown,
            reasoning=_describe(candidate, breakdown),
        )


# =============================================================================
# Sub-scores (0..1)
# =============================================================================

def specialization_score(case: CaseProfile, candidate: ProviderCandidate) -> float:
    provider_terms = [
        t for t in (normalize_tag(x) for x in (candidate.category, *candidate.specializations)) if t
    ]
    primary_terms = [
        t for t in (normalize_tag(case.category), normalize_tag(case.contractor_type)) if t
    ]
    if any(tags_overlap(p, c) for p in provider_terms for c in primary_terms):
        return 1.0

    best = 0.0
    skills = [t for t in (normalize_tag(s) for s in case.required_skills) if t]
    if normalize_tag(case.subcategory):
        skills.append(normalize_tag(case.subcategory))
    if skills:
        matched = sum(1 for s in skills if any(tags_overlap(p, s) for p in provider_terms))
        best = matched / len(skills)

    text = normalize_tag(f"{case.title} {case.description}")
    specializations = [normalize_tag(s) for s in candidate.specializations]
    if any(s and s in text for s in specializations):
        best = max(best, DESCRIPTION_MENTION_CREDIT)

    if normalize_tag(candidate.category) == GENERALIST_CATEGORY:
        best = max(best, GENERALIST_CREDIT)
    return best


def workload_score(candidate: ProviderCandidate) -> float:
    if candidate.max_jobs_per_day <= 0:
        return 0.0
    ratio = candidate.current_workload / candidate.max_jobs_per_day
    return min(max(1.0 - ratio, 0.0), 1.0)


def rating_score(rating: float | None) -> float:
    if rating is None:
        return 0.5
    return min(max(rating / 5.0, 0.0), 1.0)


def response_time_score(hours: int | None) -> float:
    if hours is None:
        hours = DEFAULT_RESPONSE_TIME_HOURS
    if hours <= FAST_RESPONSE_HOURS:
        return 1.0
    span = SLOW_RESPONSE_HOURS - FAST_RESPONSE_HOURS
    return max(0.0, 1.0 - (hours - FAST_RESPONSE_HOURS) / span)


def emergency_score(case: CaseProfile, candidate: ProviderCandidate) -> float:
    if (case.urgency or "").lower() in EMERGENCY_URGENCIES and candidate.emergency_available:
        return 1.0
    return 0.0


def _describe(candidate: ProviderCandidate, breakdown: dict[str, float]) -> str:
    parts = [
        f"{candidate.name}: specialization {breakdown['specialization']:.1f}",
        f"workload {candidate.current_workload}/{candidate.max_jobs_per_day}",
        "rating n/a" if candidate.rating is None else f"rating {candidate.rating:.1f}",
        f"responds in ~{candidate.response_time_hours or DEFAULT_RESPONSE_TIME_HOURS}h",
    ]
    if breakdown.get("emergency"):
        parts.append("emergency-ready")
    return ", ".join(parts)
