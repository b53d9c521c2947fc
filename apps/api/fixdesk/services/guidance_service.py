"""AI guidance - read-only cost/duration estimates and suggested visit time."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import anyio
from pydantic import AliasChoices, BaseModel, Field

from fixdesk.db.enums import TimeWindow
from fixdesk.db.models import Case
from fixdesk.schemas.case import CostEstimate, DurationEstimate, GuidanceRead
from fixdesk.services.ai_provider import AIProvider, ChatMessage
from fixdesk.services.ai_response_validation import parse_json_object, validate_model
from fixdesk.utils.business_hours import (
    BUSINESS_HOURS_END,
    BUSINESS_HOURS_START,
    next_business_day_at,
    resolve_zone,
)

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 120
FALLBACK_COST = CostEstimate(
    estimated_cost_low=Decimal("75"),
    estimated_cost_high=Decimal("200"),
    estimated_cost_average=Decimal("125"),
    reasoning="Standard service call with materials",
    is_fallback=True,
)

COST_PROMPT = """Estimate the cost of this property maintenance job in US dollars.

Title: {title}
Description: {description}
Category: {category}

Respond with JSON: {{"estimatedCostLow": 0, "estimatedCostHigh": 0, "estimatedCostAverage": 0, "reasoning": "..."}}"""

# Local start hour for each window; same_day and next_business_day are computed
WINDOW_START_HOURS = {
    TimeWindow.MORNING: 10,
    TimeWindow.AFTERNOON: 14,
    TimeWindow.EVENING: 17,
    TimeWindow.FLEXIBLE: 10,
}
NEXT_DAY_FALLBACK_HOUR = 9


class _CostPayload(BaseModel):
    low: Decimal = Field(ge=0, validation_alias=AliasChoices("estimatedCostLow", "low"))
    high: Decimal = Field(ge=0, validation_alias=AliasChoices("estimatedCostHigh", "high"))
    average: Decimal = Field(
        ge=0, validation_alias=AliasChoices("estimatedCostAverage", "average")
    )
    reasoning: str = ""


def suggest_appointment_time(
    window: TimeWindow | str | None, now: datetime, tz_name: str | None = None
) -> datetime:
    """Concrete suggested start (UTC) for a classifier time window."""
    try:
        window = TimeWindow(window) if window else TimeWindow.FLEXIBLE
    except ValueError:
        window = TimeWindow.FLEXIBLE
    zone = resolve_zone(tz_name)
    local_now = now.astimezone(zone)

    if window == TimeWindow.SAME_DAY:
        candidate = local_now + timedelta(hours=2)
        if candidate.minute or candidate.second or candidate.microsecond:
            candidate = candidate.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
        if candidate.date() != local_now.date() or not (
            BUSINESS_HOURS_START <= candidate.hour < BUSINESS_HOURS_END
        ):
            candidate = (local_now + timedelta(days=1)).replace(
                hour=NEXT_DAY_FALLBACK_HOUR, minute=0, second=0, microsecond=0
            )
    elif window == TimeWindow.NEXT_BUSINESS_DAY:
        candidate = next_business_day_at(local_now, NEXT_DAY_FALLBACK_HOUR)
    else:
        candidate = (local_now + timedelta(days=1)).replace(
            hour=WINDOW_START_HOURS[window], minute=0, second=0, microsecond=0
        )
    return candidate.astimezone(timezone.utc)


def estimate_duration(case: Case) -> DurationEstimate:
    classification = case.classification or {}
    minutes = classification.get("estimated_duration_minutes")
    if not isinstance(minutes, int) or minutes <= 0:
        minutes = case.ai_suggested_duration_minutes or DEFAULT_DURATION_MINUTES
    reasoning = classification.get("time_reasoning_notes") or (
        f"Based on typical {case.category or 'maintenance'} jobs"
    )
    return DurationEstimate(estimated_minutes=minutes, reasoning=reasoning)


class GuidanceService:
    def __init__(
        self,
        provider: AIProvider | None,
        *,
        model: str | None = None,
        timeout_seconds: float = 10.0,
    ):
        self.provider = provider
        self.model = model
        self.timeout_seconds = timeout_seconds

    async def estimate_cost(self, case: Case) -> CostEstimate:
        if self.provider is None:
            return FALLBACK_COST
        prompt = COST_PROMPT.format(
            title=case.title,
            description=case.description,
            category=case.category or "Unclassified",
        )
        try:
            with anyio.fail_after(self.timeout_seconds):
                response = await self.provider.chat(
                    [ChatMessage(role="user", content=prompt)],
                    model=self.model,
                    temperature=0.2,
                    max_tokens=400,
                    json_mode=True,
                )
        except Exception as exc:
            logger.warning("Cost estimate failed for case %s (%s)", case.id, type(exc).__name__)
            return FALLBACK_COST

        parsed = validate_model(_CostPayload, parse_json_object(response.content))
        if parsed is None or parsed.low > parsed.high:
            return FALLBACK_COST
        return CostEstimate(
            estimated_cost_low=parsed.low,
            estimated_cost_high=parsed.high,
            estimated_cost_average=parsed.average,
            reasoning=parsed.reasoning or FALLBACK_COST.reasoning,
        )

    async def get_guidance(self, case: Case) -> GuidanceRead:
        return GuidanceRead(
            case_id=case.id,
            cost=await self.estimate_cost(case),
            duration=estimate_duration(case),
            suggested_time=case.ai_suggested_time,
        )
