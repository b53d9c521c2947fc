"""Proposal and slot enums."""

from enum import Enum


class ProposalStatus(str, Enum):
    """
    Proposal lifecycle.

    Flow: pending → accepted
              ↘ rejected
    A pending proposal may carry a recorded slot selection awaiting manual approval.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SlotStatus(str, Enum):
    PROPOSED = "proposed"
    SELECTED = "selected"
    RELEASED = "released"  # Sibling of a selected slot, or slot of a rejected proposal


REQUIRED_SLOT_COUNT = 3
