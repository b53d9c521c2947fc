"""
Tests for AI guidance.

Coverage:
- Suggested visit time per classifier window (business hours, holidays, timezones)
- Cost estimate parsing and fallback
- Duration estimate from the stored classification
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from fixdesk.db.enums import TimeWindow
from fixdesk.services.ai_provider import AIProvider, ChatResponse
from fixdesk.services.guidance_service import (
    FALLBACK_COST,
    GuidanceService,
    estimate_duration,
    suggest_appointment_time,
)
from fixdesk.utils.business_hours import is_business_day, next_business_day_at, resolve_zone


class _StaticProvider(AIProvider):
    def __init__(self, content: str):
        self.content = content

    async def chat(self, messages, model=None, temperature=0.7, max_tokens=2000, json_mode=False):
        return ChatResponse(
            content=self.content,
            prompt_tokens=10,
            completion_tokens=10,
            total_tokens=20,
            model="test-model",
        )


class _BrokenProvider(AIProvider):
    async def chat(self, messages, model=None, temperature=0.7, max_tokens=2000, json_mode=False):
        raise ConnectionError("provider down")


# =============================================================================
# Business days
# =============================================================================

def test_weekends_and_holidays_are_not_business_days():
    assert not is_business_day(datetime(2026, 10, 17, 12, tzinfo=timezone.utc))  # Saturday
    assert not is_business_day(datetime(2026, 12, 25, 12, tzinfo=timezone.utc))  # Christmas
    assert is_business_day(datetime(2026, 10, 19, 12, tzinfo=timezone.utc))


def test_next_business_day_skips_weekend():
    friday = datetime(2026, 10, 16, 15, 30, tzinfo=timezone.utc)
    assert next_business_day_at(friday, 9) == datetime(2026, 10, 19, 9, tzinfo=timezone.utc)


def test_resolve_zone_falls_back_to_utc():
    assert resolve_zone(None) == timezone.utc
    assert resolve_zone("Not/AZone") == timezone.utc
    assert str(resolve_zone("America/New_York")) == "America/New_York"


# =============================================================================
# Suggested time
# =============================================================================

def test_same_day_rounds_up_to_next_hour():
    now = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)
    result = suggest_appointment_time(TimeWindow.SAME_DAY, now, "UTC")
    assert result == datetime(2026, 10, 19, 12, tzinfo=timezone.utc)


def test_same_day_after_hours_moves_to_next_morning():
    now = datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)
    result = suggest_appointment_time(TimeWindow.SAME_DAY, now, "UTC")
    assert result == datetime(2026, 10, 20, 9, tzinfo=timezone.utc)


def test_next_business_day_window():
    friday = datetime(2026, 10, 16, 10, tzinfo=timezone.utc)
    result = suggest_appointment_time(TimeWindow.NEXT_BUSINESS_DAY, friday, "UTC")
    assert result == datetime(2026, 10, 19, 9, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "window, hour",
    [
        (TimeWindow.MORNING, 10),
        (TimeWindow.AFTERNOON, 14),
        (TimeWindow.EVENING, 17),
        (TimeWindow.FLEXIBLE, 10),
        ("not-a-window", 10),
        (None, 10),
    ],
)
def test_fixed_windows_use_tomorrow(window, hour):
    now = datetime(2026, 10, 19, 8, tzinfo=timezone.utc)
    result = suggest_appointment_time(window, now, "UTC")
    assert result == datetime(2026, 10, 20, hour, tzinfo=timezone.utc)


def test_suggested_time_uses_local_zone_and_returns_utc():
    # 08:00 EDT
    now = datetime(2026, 7, 1, 12, 0, tzinfo=timezone.utc)
    result = suggest_appointment_time(TimeWindow.MORNING, now, "America/New_York")
    assert result == datetime(2026, 7, 2, 14, 0, tzinfo=timezone.utc)
    assert result.tzinfo == timezone.utc


# =============================================================================
# Cost / duration
# =============================================================================

@pytest.mark.asyncio
async def test_cost_estimate_without_provider_is_fallback(make_case):
    case = make_case()
    estimate = await GuidanceService(None).estimate_cost(case)
    assert estimate == FALLBACK_COST
    assert estimate.is_fallback


@pytest.mark.asyncio
async def test_cost_estimate_parses_provider_json(make_case):
    case = make_case()
    provider = _StaticProvider(
        '{"estimatedCostLow": 120, "estimatedCostHigh": 300, '
        '"estimatedCostAverage": 180, "reasoning": "Replace P-trap"}'
    )

    estimate = await GuidanceService(provider).estimate_cost(case)

    assert estimate.estimated_cost_low == Decimal("120")
    assert estimate.estimated_cost_high == Decimal("300")
    assert estimate.estimated_cost_average == Decimal("180")
    assert estimate.reasoning == "Replace P-trap"
    assert not estimate.is_fallback


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "provider",
    [
        _StaticProvider('{"low": 500, "high": 100, "average": 300}'),
        _StaticProvider("no idea"),
        _BrokenProvider(),
    ],
)
async def test_cost_estimate_falls_back_on_bad_answers(make_case, provider):
    case = make_case()
    assert await GuidanceService(provider).estimate_cost(case) == FALLBACK_COST


def test_duration_estimate_prefers_classification(make_case):
    case = make_case()
    case.classification = {
        "estimated_duration_minutes": 45,
        "time_reasoning_notes": "Quick washer swap",
    }
    estimate = estimate_duration(case)
    assert estimate.estimated_minutes == 45
    assert estimate.reasoning == "Quick washer swap"


def test_duration_estimate_default(make_case):
    case = make_case(category=None)
    estimate = estimate_duration(case)
    assert estimate.estimated_minutes == 120
    assert estimate.reasoning == "Based on typical maintenance jobs"


@pytest.mark.asyncio
async def test_get_guidance_combines_estimates(make_case):
    case = make_case()
    guidance = await GuidanceService(None).get_guidance(case)
    assert guidance.case_id == case.id
    assert guidance.cost == FALLBACK_COST
    assert guidance.duration.estimated_minutes == 120
