"""Data normalization utilities for consistent data quality."""

import re

from fixdesk.db.enums import CaseUrgency, ClassificationUrgency


# =============================================================================
# Priority / urgency
# =============================================================================

PRIORITY_ALIASES = {
    "low": CaseUrgency.LOW,
    "medium": CaseUrgency.MEDIUM,
    "normal": CaseUrgency.MEDIUM,
    "high": CaseUrgency.HIGH,
    "urgent": CaseUrgency.URGENT,
    "critical": CaseUrgency.URGENT,
    "emergency": CaseUrgency.URGENT,
}


def normalize_priority(value: str | None, default: CaseUrgency = CaseUrgency.MEDIUM) -> CaseUrgency:
    """
    Normalize a free-form priority to a case urgency.

    Examples:
        "critical" -> Urgent
        " HIGH " -> High
        None -> default
    """
    if not value:
        return default
    return PRIORITY_ALIASES.get(value.strip().lower(), default)


def urgency_from_classification(value: ClassificationUrgency | str) -> CaseUrgency:
    """Map classifier urgency onto case urgency (Critical is stored as Urgent)."""
    raw = value.value if isinstance(value, ClassificationUrgency) else str(value)
    return normalize_priority(raw)


# =============================================================================
# Skill / category tags
# =============================================================================

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_tag(value: str | None) -> str:
    """
    Normalize a skill or category tag for matching.

    Examples:
        "HVAC Technician" -> "hvac technician"
        "Plumbing/Drains" -> "plumbing drains"
    """
    if not value:
        return ""
    return _NON_ALNUM.sub(" ", value.lower()).strip()


def tags_overlap(left: str, right: str) -> bool:
    """True when two normalized tags are equal or one contains the other."""
    if not left or not right:
        return False
    return left == right or left in right or right in left
