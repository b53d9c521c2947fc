"""Appointment materializer - turns an approved slot into a Confirmed appointment."""

from __future__ import annotations

import logging

from fixdesk.core.async_utils import run_async
from fixdesk.db.enums import AppointmentStatus
from fixdesk.db.models import Appointment, Case, Proposal, ProposalSlot, Provider
from fixdesk.db.repository import MaintenanceRepository
from fixdesk.db.types import utcnow
from fixdesk.services.calendar_sync import CalendarClient, NullCalendarClient

logger = logging.getLogger(__name__)

DEFAULT_SYNC_TIMEOUT_SECONDS = 10.0


class AppointmentMaterializer:
    def __init__(
        self,
        repository: MaintenanceRepository,
        calendar: CalendarClient | None = None,
        *,
        sync_timeout_seconds: float = DEFAULT_SYNC_TIMEOUT_SECONDS,
    ):
        self.repository = repository
        self.calendar = calendar or NullCalendarClient()
        self.sync_timeout_seconds = sync_timeout_seconds

    def materialize(
        self,
        case: Case,
        provider: Provider,
        slot: ProposalSlot,
        *,
        proposal: Proposal | None = None,
    ) -> Appointment:
        """
        Create the Confirmed appointment for a slot.

        Any previous active appointment on the case (a reschedule) is
        cancelled first so a case holds at most one. Does not commit; call
        sync_calendar() once the appointment is committed.
        """
        now = utcnow()
        for previous in self.repository.list_active_appointments(case.id):
            previous.status = AppointmentStatus.CANCELLED.value
            previous.cancelled_at = now
            logger.info("Appointment %s superseded on case %s", previous.id, case.id)

        return self.repository.add_appointment(
            Appointment(
                organization_id=case.organization_id,
                case_id=case.id,
                provider_id=provider.id,
                proposal_id=proposal.id if proposal else slot.proposal_id,
                slot_id=slot.id,
                title=f"{case.title} - {provider.name}",
                scheduled_start=slot.start_time,
                scheduled_end=slot.end_time,
                status=AppointmentStatus.CONFIRMED.value,
            )
        )

    def sync_calendar(self, appointment: Appointment, case: Case) -> None:
        """
        Push a committed appointment to the external calendar.

        Failures are recorded on the appointment, never raised.
        """
        try:
            event_id = run_async(
                self.calendar.create_event(
                    appointment.title,
                    _event_description(case),
                    appointment.scheduled_start,
                    appointment.scheduled_end,
                ),
                timeout=self.sync_timeout_seconds,
            )
        except Exception as exc:
            appointment.calendar_sync_error = f"{type(exc).__name__}: {exc}"[:500]
            logger.warning(
                "Calendar sync failed for appointment %s (%s)",
                appointment.id,
                type(exc).__name__,
            )
        else:
            appointment.external_event_id = event_id
            appointment.calendar_sync_error = None
        self.repository.commit()


def _event_description(case: Case) -> str:
    lines = [case.description]
    diagnosis = (case.classification or {}).get("diagnosis")
    if diagnosis:
        lines.append(f"Diagnosis: {diagnosis}")
    return "\n\n".join(lines)
