"""Wires the triage/scheduling components for one session (request or job)."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from fixdesk.core.config import settings
from fixdesk.db.repository import MaintenanceRepository
from fixdesk.services.ai_provider import AIProvider, get_configured_provider
from fixdesk.services.appointment_materializer import AppointmentMaterializer
from fixdesk.services.calendar_sync import CalendarClient, build_calendar_client
from fixdesk.services.case_lifecycle import CaseLifecycle
from fixdesk.services.classification_adapter import ClassificationAdapter
from fixdesk.services.contractor_scorer import ContractorScorer
from fixdesk.services.guidance_service import GuidanceService
from fixdesk.services.proposal_service import ProposalWorkflow
from fixdesk.services.triage_pipeline import TriagePipeline

_FROM_SETTINGS = object()


@dataclass
class MaintenanceEngine:
    repository: MaintenanceRepository
    lifecycle: CaseLifecycle
    classifier: ClassificationAdapter
    scorer: ContractorScorer
    materializer: AppointmentMaterializer
    proposals: ProposalWorkflow
    triage: TriagePipeline
    guidance: GuidanceService


def build_engine(
    db: Session,
    *,
    ai_provider: AIProvider | None | object = _FROM_SETTINGS,
    calendar: CalendarClient | None = None,
) -> MaintenanceEngine:
    """
    Build the component graph on top of a session.

    ai_provider defaults to the configured provider; pass None to force
    fallback classification.
    """
    provider = get_configured_provider() if ai_provider is _FROM_SETTINGS else ai_provider
    repository = MaintenanceRepository(db)
    lifecycle = CaseLifecycle(repository)
    classifier = ClassificationAdapter(
        provider,
        model=settings.AI_MODEL or None,
        timeout_seconds=settings.CLASSIFICATION_TIMEOUT_SECONDS,
        photo_timeout_seconds=settings.PHOTO_ANALYSIS_TIMEOUT_SECONDS,
    )
    scorer = ContractorScorer()
    materializer = AppointmentMaterializer(
        repository,
        calendar or build_calendar_client(),
        sync_timeout_seconds=settings.CALENDAR_SYNC_TIMEOUT_SECONDS,
    )
    return MaintenanceEngine(
        repository=repository,
        lifecycle=lifecycle,
        classifier=classifier,
        scorer=scorer,
        materializer=materializer,
        proposals=ProposalWorkflow(
            repository,
            lifecycle,
            materializer,
            ttl_hours=settings.PROPOSAL_TTL_HOURS,
        ),
        triage=TriagePipeline(repository, classifier, scorer, lifecycle),
        guidance=GuidanceService(
            provider,
            model=settings.AI_MODEL or None,
            timeout_seconds=settings.GUIDANCE_TIMEOUT_SECONDS,
        ),
    )
