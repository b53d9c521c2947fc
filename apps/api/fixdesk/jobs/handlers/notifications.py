"""Notification job handlers."""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

import httpx

from fixdesk.core.config import settings
from fixdesk.core.structured_logging import build_log_context
from fixdesk.db.enums import NotificationEvent

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 10.0


def _safe_url(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


async def process_notification(db, job) -> None:
    """Deliver a domain event to the notification webhook (or log it)."""
    payload = job.payload or {}
    event = payload.get("event")
    try:
        NotificationEvent(event)
    except ValueError as exc:
        raise ValueError(f"Unknown notification event: {event}") from exc

    context = build_log_context(
        org_id=job.organization_id, case_id=payload.get("case_id"), job_id=job.id
    )
    webhook_url = settings.NOTIFICATION_WEBHOOK_URL
    if not webhook_url:
        logger.info(
            "[DRY RUN] Notification %s (%s) for %d recipient(s)",
            event,
            payload.get("label"),
            len(payload.get("recipient_user_ids") or []),
            extra=context,
        )
        return

    body = {
        "event": event,
        "label": payload.get("label"),
        "organization_id": str(job.organization_id),
        "case_id": payload.get("case_id"),
        "recipient_user_ids": payload.get("recipient_user_ids") or [],
        "details": payload.get("details") or {},
    }
    try:
        async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS) as client:
            response = await client.post(webhook_url, json=body)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(
            "Notification delivery failed: %s (%s)",
            _safe_url(webhook_url),
            type(e).__name__,
            extra=context,
        )
        raise  # Will trigger job retry mechanism
    logger.info("Notification %s delivered", event, extra=context)
