"""Parsing helpers for JSON replies from the AI provider.

Models are asked for a bare JSON object but regularly wrap it in a markdown
fence or surround it with prose. Both helpers return None instead of raising
so callers can fall back.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```[\w-]*\s*\n?(.*?)\n?```$", re.DOTALL)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def parse_json_object(text: str | None) -> dict | None:
    """First JSON object in a model reply, or None."""
    if not text:
        return None
    content = text.strip()
    fenced = _FENCE_RE.match(content)
    if fenced:
        content = fenced.group(1).strip()

    for candidate in _candidates(content):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as exc:
            logger.debug("Reply is not JSON (%s)", exc)
            continue
        if isinstance(data, dict):
            return data
        logger.warning("Expected a JSON object, got %s", type(data).__name__)
        return None

    logger.warning("No JSON object found in model reply (%d chars)", len(content))
    return None


def _candidates(content: str):
    yield content
    # Object embedded in surrounding prose
    match = _OBJECT_RE.search(content)
    if match and match.group(0) != content:
        yield match.group(0)


def validate_model(model_cls: type[ModelT], data: dict | None) -> ModelT | None:
    if data is None:
        return None
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        logger.warning("%s payload rejected: %d error(s)", model_cls.__name__, exc.error_count())
        return None
