"""Utility modules."""

from fixdesk.utils.normalization import (
    normalize_priority,
    normalize_tag,
    tags_overlap,
    urgency_from_classification,
)

__all__ = [
    "normalize_priority",
    "normalize_tag",
    "tags_overlap",
    "urgency_from_classification",
]
