"""Structured triage result produced by the classification adapter.

Both genuine model answers and the degraded fallback are built through
``ClassificationResult.from_payload`` so every stored result has the same
shape; callers only read ``is_fallback`` to tell them apart.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fixdesk.db.enums import ClassificationUrgency, Complexity, SafetyRisk, TimeWindow

MODEL_VERSION = "1.0"
FALLBACK_VERSION = "1.0-fallback"

DEFAULT_CATEGORY = "General Maintenance"
DEFAULT_SUBCATEGORY = "Unspecified Issue"
DEFAULT_DURATION = "2-4 hours"
DEFAULT_DURATION_MINUTES = 120
DEFAULT_TIME_CONFIDENCE = 0.5
DEFAULT_DIAGNOSIS = "Issue requires assessment by maintenance professional"
DEFAULT_TROUBLESHOOTING_STEPS = [
    "Document the issue with photos",
    "Note when the problem started",
    "Check if issue affects other areas",
]
FALLBACK_REASONING = "AI analysis unavailable - using default triage values"

# Wire names accepted from the classifier, mapped to our field names
KEY_ALIASES = {
    "requiredSkills": "required_skills",
    "requiredExpertise": "required_skills",
    "estimatedDuration": "estimated_duration",
    "estimatedDurationMinutes": "estimated_duration_minutes",
    "estimatedComplexity": "complexity",
    "suggestedTimeWindow": "suggested_time_window",
    "safetyRisk": "safety_risk",
    "preliminaryDiagnosis": "diagnosis",
    "troubleshootingSteps": "troubleshooting_steps",
    "contractorType": "contractor_type",
    "specialEquipment": "special_equipment",
    "timeConfidence": "time_confidence",
    "timeReasoningNotes": "time_reasoning_notes",
}


class ClassificationResult(BaseModel):
    """Immutable triage assessment for one case."""

    model_config = ConfigDict(frozen=True)

    category: str
    subcategory: str
    urgency: ClassificationUrgency
    complexity: Complexity
    required_skills: list[str]
    estimated_duration: str
    estimated_duration_minutes: int = Field(gt=0)
    suggested_time_window: TimeWindow
    safety_risk: SafetyRisk
    diagnosis: str
    troubleshooting_steps: list[str]
    contractor_type: str
    special_equipment: list[str] = Field(default_factory=list)
    reasoning: str = ""
    time_confidence: float = Field(ge=0.0, le=1.0)
    time_reasoning_notes: str | None = None
    photo_analysis: str = ""
    version: str
    is_fallback: bool
    analysis_completed_at: datetime | None = None

    @classmethod
    def from_payload(
        cls,
        payload: dict[str, Any] | None,
        *,
        category_hint: str | None = None,
        photo_analysis: str = "",
        fallback: bool = False,
    ) -> "ClassificationResult":
        """
        Build a result from a (possibly partial or malformed) classifier payload.

        Unknown enum values are coerced to their defaults, list fields are
        forced to lists and missing fields take the fallback defaults.
        Passing ``fallback=True`` ignores the payload entirely.
        """
        defaults = _fallback_fields(category_hint)
        data = dict(defaults)
        if payload and not fallback:
            normalized = {KEY_ALIASES.get(key, key): value for key, value in payload.items()}
            data.update(_coerce_fields(normalized, defaults))
            data["version"] = MODEL_VERSION
            data["analysis_completed_at"] = datetime.now(timezone.utc)
        data["is_fallback"] = fallback or not payload
        if data["is_fallback"]:
            data["version"] = FALLBACK_VERSION
            data["reasoning"] = FALLBACK_REASONING
        data["photo_analysis"] = photo_analysis or ""
        return cls.model_validate(data)

    @classmethod
    def fallback(
        cls, category_hint: str | None = None, photo_analysis: str = ""
    ) -> "ClassificationResult":
        return cls.from_payload(
            None, category_hint=category_hint, photo_analysis=photo_analysis, fallback=True
        )

    def to_storage(self) -> dict[str, Any]:
        """JSON-safe dict for persisting on the case."""
        return self.model_dump(mode="json")


def _fallback_fields(category_hint: str | None) -> dict[str, Any]:
    category = (category_hint or "").strip() or DEFAULT_CATEGORY
    return {
        "category": category,
        "subcategory": DEFAULT_SUBCATEGORY,
        "urgency": ClassificationUrgency.MEDIUM,
        "complexity": Complexity.MODERATE,
        "required_skills": [DEFAULT_CATEGORY],
        "estimated_duration": DEFAULT_DURATION,
        "estimated_duration_minutes": DEFAULT_DURATION_MINUTES,
        "suggested_time_window": TimeWindow.FLEXIBLE,
        "safety_risk": SafetyRisk.NONE,
        "diagnosis": DEFAULT_DIAGNOSIS,
        "troubleshooting_steps": list(DEFAULT_TROUBLESHOOTING_STEPS),
        "contractor_type": DEFAULT_CATEGORY,
        "special_equipment": [],
        "reasoning": FALLBACK_REASONING,
        "time_confidence": DEFAULT_TIME_CONFIDENCE,
        "time_reasoning_notes": None,
        "version": FALLBACK_VERSION,
        "analysis_completed_at": None,
    }


def _coerce_fields(raw: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
    coerced: dict[str, Any] = {}

    for key in ("category", "subcategory", "estimated_duration", "diagnosis", "contractor_type"):
        coerced[key] = _coerce_str(raw.get(key), defaults[key])
    coerced["reasoning"] = _coerce_str(raw.get("reasoning"), "")

    notes = raw.get("time_reasoning_notes")
    coerced["time_reasoning_notes"] = notes.strip() if isinstance(notes, str) and notes.strip() else None

    coerced["urgency"] = _coerce_enum(ClassificationUrgency, raw.get("urgency"), defaults["urgency"])
    coerced["complexity"] = _coerce_enum(Complexity, raw.get("complexity"), defaults["complexity"])
    coerced["safety_risk"] = _coerce_enum(SafetyRisk, raw.get("safety_risk"), defaults["safety_risk"])
    coerced["suggested_time_window"] = _coerce_enum(
        TimeWindow, raw.get("suggested_time_window"), defaults["suggested_time_window"]
    )

    for key in ("required_skills", "troubleshooting_steps", "special_equipment"):
        coerced[key] = _coerce_list(raw.get(key), defaults[key])

    coerced["estimated_duration_minutes"] = _coerce_minutes(
        raw.get("estimated_duration_minutes"), defaults["estimated_duration_minutes"]
    )
    coerced["time_confidence"] = _coerce_confidence(
        raw.get("time_confidence"), defaults["time_confidence"]
    )
    return coerced


def _coerce_str(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _coerce_enum(enum_cls, value: Any, default):
    if isinstance(value, str):
        candidate = value.strip()
        for member in enum_cls:
            if member.value.lower() == candidate.lower():
                return member
    return default


def _coerce_list(value: Any, default: list[str]) -> list[str]:
    if isinstance(value, list):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    return list(default)


def _coerce_minutes(value: Any, default: int) -> int:
    try:
        minutes = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return minutes if minutes > 0 else default


def _coerce_confidence(value: Any, default: float) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return default
    if confidence != confidence:  # NaN
        return default
    return min(max(confidence, 0.0), 1.0)
