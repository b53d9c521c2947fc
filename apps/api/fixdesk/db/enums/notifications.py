"""Notification event enums."""

from enum import Enum


class NotificationEvent(str, Enum):
    """Events emitted for an external notifier to deliver."""

    CASE_ASSIGNED = "case_assigned"
    PROPOSAL_SUBMITTED = "proposal_submitted"
    APPOINTMENT_APPROVED = "appointment_approved"
    APPOINTMENT_DECLINED = "appointment_declined"
    APPROVAL_REQUIRED = "approval_required"
    CASE_STATUS_CHANGED = "case_status_changed"


# Short human-readable labels; formatting beyond this is the notifier's job.
EVENT_LABELS = {
    NotificationEvent.CASE_ASSIGNED: "Case assigned",
    NotificationEvent.PROPOSAL_SUBMITTED: "Appointment times proposed",
    NotificationEvent.APPOINTMENT_APPROVED: "Appointment approved",
    NotificationEvent.APPOINTMENT_DECLINED: "Appointment declined",
    NotificationEvent.APPROVAL_REQUIRED: "Appointment awaiting approval",
    NotificationEvent.CASE_STATUS_CHANGED: "Case status changed",
}
