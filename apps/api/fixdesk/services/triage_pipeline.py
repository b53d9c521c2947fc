"""Triage pipeline - classify, rank and assign a case in the background.

Runs inside the case_triage job. The case may be read or edited by the
requester while classification is in flight, so the case is re-read after
the external call and assignment only happens if it is still New or In
Review and nobody assigned a provider in the meantime.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from fixdesk.db.enums import CaseEventType, TriageStatus
from fixdesk.db.models import Case
from fixdesk.db.repository import MaintenanceRepository
from fixdesk.db.types import utcnow
from fixdesk.schemas.classification import ClassificationResult
from fixdesk.services import notification_facade
from fixdesk.services.case_lifecycle import (
    ASSIGNABLE_STATUSES,
    CaseLifecycle,
    CaseNotFoundError,
    is_terminal,
)
from fixdesk.services.classification_adapter import ClassificationAdapter, MaintenanceReport
from fixdesk.services.contractor_scorer import (
    CaseProfile,
    ContractorScorer,
    MatchResult,
    ProviderCandidate,
)
from fixdesk.services.guidance_service import suggest_appointment_time
from fixdesk.utils.normalization import urgency_from_classification

logger = logging.getLogger(__name__)

UNMATCHED_REASON = "No eligible provider available"


@dataclass
class TriageOutcome:
    case_id: UUID
    classification: ClassificationResult | None
    match: MatchResult | None = None
    skipped: bool = False


class TriagePipeline:
    def __init__(
        self,
        repository: MaintenanceRepository,
        adapter: ClassificationAdapter,
        scorer: ContractorScorer,
        lifecycle: CaseLifecycle,
    ):
        self.repository = repository
        self.adapter = adapter
        self.scorer = scorer
        self.lifecycle = lifecycle

    async def run(self, case_id: UUID) -> TriageOutcome:
        case = self.repository.get_case(case_id)
        if not case:
            raise CaseNotFoundError(case_id)
        if is_terminal(case):
            logger.info("Skipping triage for closed case %s (%s)", case.id, case.status)
            return TriageOutcome(case_id=case.id, classification=None, skipped=True)

        case.triage_status = TriageStatus.RUNNING.value
        case.triage_error = None
        self.repository.commit()

        try:
            outcome = await self._run(case)
        except Exception as exc:
            self.repository.rollback()
            self._mark_failed(case_id, exc)
            raise

        if outcome.match:
            provider = self.repository.get_provider(outcome.match.provider_id)
            notification_facade.notify_case_assigned(
                self.repository.db, case, provider.user_id if provider else None
            )
        return outcome

    async def _run(self, case: Case) -> TriageOutcome:
        report = MaintenanceReport(
            title=case.title,
            description=case.description,
            photos=list(case.photos or []),
            category=case.category,
            priority=case.urgency,
        )
        result = await self.adapter.classify(report)

        # The requester may have changed the case while we waited
        self.repository.refresh(case)
        if is_terminal(case):
            logger.info("Case %s closed during triage; discarding result", case.id)
            case.triage_status = TriageStatus.COMPLETED.value
            self.repository.commit()
            return TriageOutcome(case_id=case.id, classification=result, skipped=True)

        result = self.apply_classification(case, result)
        match = None
        if case.status in {s.value for s in ASSIGNABLE_STATUSES} and case.assigned_provider_id is None:
            match = self.match_and_assign(case, result)

        case.triage_status = TriageStatus.COMPLETED.value
        self.repository.commit()
        logger.info(
            "Triage completed for case %s: fallback=%s provider=%s",
            case.id,
            result.is_fallback,
            match.provider_id if match else None,
        )
        return TriageOutcome(case_id=case.id, classification=result, match=match)

    def apply_classification(self, case: Case, result: ClassificationResult) -> ClassificationResult:
        """Store a fresh result on the case, superseding any earlier run."""
        now = utcnow()
        result = result.model_copy(update={"analysis_completed_at": now})
        organization = self.repository.get_organization(case.organization_id)

        case.classification = result.to_storage()
        case.classified_at = now
        case.category = result.category
        case.urgency = urgency_from_classification(result.urgency).value
        case.estimated_duration = result.estimated_duration
        case.ai_suggested_duration_minutes = result.estimated_duration_minutes
        case.ai_time_confidence = result.time_confidence
        case.ai_suggested_time = suggest_appointment_time(
            result.suggested_time_window, now, organization.timezone if organization else None
        )
        self.repository.add_case_event(
            case,
            CaseEventType.TRIAGED,
            reason=result.reasoning or None,
            details={
                "category": result.category,
                "urgency": result.urgency.value,
                "is_fallback": result.is_fallback,
                "version": result.version,
            },
        )
        return result

    def match_and_assign(self, case: Case, result: ClassificationResult) -> MatchResult | None:
        providers = self.repository.list_active_providers(case.organization_id)
        # Point-in-time snapshot; concurrent triage runs may both pick a near-full provider
        workloads = self.repository.get_provider_workloads([p.id for p in providers])
        candidates = [ProviderCandidate.from_provider(p, workloads.get(p.id, 0)) for p in providers]
        matches = self.scorer.rank(CaseProfile.from_case(case, result), candidates)

        if not matches:
            logger.info("No eligible provider for case %s", case.id)
            self.lifecycle.mark_unmatched(case, reason=UNMATCHED_REASON)
            return None

        best = matches[0]
        self.lifecycle.assign(
            case,
            best.provider_id,
            reason=best.reasoning,
            details={"score": best.score, "breakdown": best.breakdown},
        )
        return best

    def _mark_failed(self, case_id: UUID, exc: Exception) -> None:
        case = self.repository.get_case(case_id)
        if not case:
            return
        case.triage_status = TriageStatus.FAILED.value
        case.triage_error = f"{type(exc).__name__}: {exc}"[:1000]
        self.repository.commit()
        logger.warning("Triage failed for case %s (%s)", case_id, type(exc).__name__)
