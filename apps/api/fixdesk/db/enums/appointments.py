"""Appointment enums."""

from enum import Enum


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: Confirmed → Scheduled → Completed
              ↘ Cancelled (case cancelled or rescheduled)
    """

    CONFIRMED = "Confirmed"
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


ACTIVE_APPOINTMENT_STATUSES = {AppointmentStatus.CONFIRMED, AppointmentStatus.SCHEDULED}

# Default appointment status
DEFAULT_APPOINTMENT_STATUS = AppointmentStatus.CONFIRMED
