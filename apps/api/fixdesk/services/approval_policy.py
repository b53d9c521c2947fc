"""Approval policy engine - decides whether a selected slot is auto-confirmed.

decide() is pure and total: it only reads the policy, case, proposal and slot
it is given, and every combination of inputs yields an ApprovalDecision.
Unset gates (null threshold/window/urgency, empty trusted list) pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation

from fixdesk.db.enums import InvolvementMode
from fixdesk.db.models import ApprovalPolicy, Case, Proposal, ProposalSlot
from fixdesk.db.types import ensure_utc
from fixdesk.utils.business_hours import resolve_zone
from fixdesk.utils.normalization import normalize_priority

logger = logging.getLogger(__name__)

HANDS_OFF_REASON = "Auto-approved based on landlord policy (hands-off)"
BALANCED_REASON = "Auto-approved based on landlord policy (all balanced gates passed)"
HANDS_ON_REASON = "Manual approval required: landlord reviews every appointment (hands-on)"
NO_POLICY_REASON = "Manual approval required: No approval policy configured"
MANUAL_PREFIX = "Manual approval required: "


@dataclass(frozen=True)
class ApprovalDecision:
    approve: bool
    reason: str
    failed_gates: tuple[str, ...] = field(default_factory=tuple)


def decide(
    policy: ApprovalPolicy | None,
    case: Case,
    proposal: Proposal,
    slot: ProposalSlot,
) -> ApprovalDecision:
    """Evaluate the organization's policy against a selected slot."""
    if policy is None:
        return ApprovalDecision(approve=False, reason=NO_POLICY_REASON)

    try:
        mode = InvolvementMode(policy.involvement_mode)
    except ValueError:
        # Unknown modes never auto-approve
        logger.warning("Unknown involvement mode %r on policy %s", policy.involvement_mode, policy.id)
        mode = InvolvementMode.HANDS_ON

    if mode == InvolvementMode.HANDS_OFF:
        return ApprovalDecision(approve=True, reason=HANDS_OFF_REASON)
    if mode == InvolvementMode.HANDS_ON:
        return ApprovalDecision(approve=False, reason=HANDS_ON_REASON)

    failures = [
        failure
        for failure in (
            check_cost(policy, proposal),
            check_window(policy, slot),
            check_trusted(policy, proposal),
            check_urgency(policy, case),
        )
        if failure
    ]
    if failures:
        return ApprovalDecision(
            approve=False,
            reason=MANUAL_PREFIX + "; ".join(message for _, message in failures),
            failed_gates=tuple(gate for gate, _ in failures),
        )
    return ApprovalDecision(approve=True, reason=BALANCED_REASON)


# =============================================================================
# Gates: each returns None when it passes, else (gate, message)
# =============================================================================

def check_cost(policy: ApprovalPolicy, proposal: Proposal) -> tuple[str, str] | None:
    threshold = _as_decimal(policy.cost_threshold)
    if threshold is None:
        return None
    # A proposal without an estimate is treated as a zero-cost visit
    cost = _as_decimal(proposal.estimated_cost) or Decimal("0")
    if cost <= threshold:
        return None
    return "cost", f"estimated cost ${cost:.2f} exceeds threshold ${threshold:.2f}"


def check_window(policy: ApprovalPolicy, slot: ProposalSlot) -> tuple[str, str] | None:
    start, end = policy.preferred_start_hour, policy.preferred_end_hour
    if start is None or end is None:
        return None
    hour = local_hour(slot.start_time, policy.timezone)
    if hour_in_window(hour, start, end):
        return None
    return "window", f"slot starts at {hour:02d}:00, outside preferred hours {start:02d}:00-{end:02d}:00"


def check_trusted(policy: ApprovalPolicy, proposal: Proposal) -> tuple[str, str] | None:
    trusted = {str(provider_id) for provider_id in (policy.trusted_provider_ids or [])}
    if not trusted or str(proposal.provider_id) in trusted:
        return None
    return "trusted", "provider is not on the trusted list"


def check_urgency(policy: ApprovalPolicy, case: Case) -> tuple[str, str] | None:
    if not policy.urgency_gate:
        return None
    gate = normalize_priority(policy.urgency_gate, default=None)
    urgency = normalize_priority(case.urgency, default=None)
    if gate is not None and gate == urgency:
        return None
    return "urgency", f"case urgency {case.urgency} does not match {policy.urgency_gate}"


# =============================================================================
# Helpers
# =============================================================================

def hour_in_window(hour: int, start: int, end: int) -> bool:
    """Inclusive [start, end]; start > end wraps past midnight."""
    if start <= end:
        return start <= hour <= end
    return hour >= start or hour <= end


def local_hour(value: datetime, tz_name: str | None) -> int:
    return ensure_utc(value).astimezone(resolve_zone(tz_name)).hour


def _as_decimal(value) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
