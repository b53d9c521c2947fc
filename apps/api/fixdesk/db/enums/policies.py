"""Approval policy enums."""

from enum import Enum


class InvolvementMode(str, Enum):
    """
    How much the organization wants to be involved in confirming schedules.

    - HANDS_OFF: every selected slot is confirmed automatically
    - BALANCED: confirmed automatically only when all configured gates pass
    - HANDS_ON: every selection waits for manual approval
    """

    HANDS_OFF = "hands-off"
    BALANCED = "balanced"
    HANDS_ON = "hands-on"


DEFAULT_INVOLVEMENT_MODE = InvolvementMode.BALANCED
