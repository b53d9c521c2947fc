"""Classification adapter - turns a raw maintenance report into a triage result.

Wraps the external language model behind a hard timeout. classify() never
raises: any failure (no provider configured, timeout, HTTP error, malformed
or invalid JSON) yields ClassificationResult.fallback(). Photo analysis is a
separate, shorter sub-call whose failure only empties the analysis string.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import anyio
from pydantic import ValidationError

from fixdesk.schemas.classification import ClassificationResult
from fixdesk.services.ai_provider import AIProvider, ChatMessage
from fixdesk.services.ai_response_validation import parse_json_object

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_PHOTO_TIMEOUT_SECONDS = 10.0

SYSTEM_PROMPT = (
    "You are an expert property maintenance coordinator. You triage tenant "
    "maintenance requests for a property manager. Respond with a single JSON object only."
)

PHOTO_PROMPT = (
    "Analyze this maintenance issue photo. Describe what you see, identify the problem, "
    "assess severity, note safety concerns, and provide actionable insights for "
    "maintenance coordination."
)

TRIAGE_PROMPT = """Analyze this property maintenance request and provide a triage assessment.

MAINTENANCE REQUEST:
Title: {title}
Description: {description}
{extra}
Respond with JSON in this exact format:
{{
  "category": "Primary category (Plumbing, Electrical, HVAC, Appliances, Structural, General Maintenance, Security, etc.)",
  "subcategory": "Specific issue (e.g. 'Leaky Faucet', 'Outlet Not Working')",
  "urgency": "Low|Medium|High|Critical (Critical = safety hazard or major disruption)",
  "complexity": "Simple|Moderate|Complex (Simple < 1hr, Moderate 1-4hrs, Complex > 4hrs or multiple visits)",
  "requiredSkills": ["plumber", "electrician", "HVAC technician", "general maintenance", "..."],
  "estimatedDuration": "Estimated time to complete (e.g. '30 minutes', '2-3 hours')",
  "estimatedDurationMinutes": 120,
  "suggestedTimeWindow": "same_day|next_business_day|morning|afternoon|evening|flexible",
  "safetyRisk": "None|Low|Medium|High",
  "diagnosis": "Brief diagnosis of likely cause and solution approach",
  "troubleshootingSteps": ["3-5 steps the tenant can safely try before the contractor arrives"],
  "contractorType": "Primary contractor type needed (Plumber, Electrician, HVAC, ...)",
  "specialEquipment": ["Special tools or equipment that may be needed"],
  "reasoning": "Brief explanation of urgency and complexity",
  "timeConfidence": 0.7,
  "timeReasoningNotes": "Why this time window is recommended"
}}"""


@dataclass
class MaintenanceReport:
    """Input to classification: what the reporter told us."""

    title: str
    description: str
    photos: list[str] = field(default_factory=list)
    category: str | None = None  # Reporter-supplied hint, reused by the fallback
    priority: str | None = None


class ClassificationAdapter:
    """Classifies maintenance reports through an injected AI provider."""

    def __init__(
        self,
        provider: AIProvider | None,
        *,
        model: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        photo_timeout_seconds: float = DEFAULT_PHOTO_TIMEOUT_SECONDS,
    ):
        self.provider = provider
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.photo_timeout_seconds = photo_timeout_seconds

    async def classify(self, report: MaintenanceReport) -> ClassificationResult:
        if self.provider is None:
            logger.info("No classification provider configured; using fallback triage")
            return ClassificationResult.fallback(category_hint=report.category)

        photo_analysis = ""
        if report.photos:
            photo_analysis = await self.analyze_photos(report.photos)

        try:
            with anyio.fail_after(self.timeout_seconds):
                response = await self.provider.chat(
                    [
                        ChatMessage(role="system", content=SYSTEM_PROMPT),
                        ChatMessage(role="user", content=build_triage_prompt(report, photo_analysis)),
                    ],
                    model=self.model,
                    temperature=0.2,
                    max_tokens=1500,
                    json_mode=True,
                )
        except TimeoutError:
            logger.warning(
                "Classification timed out after %ss; using fallback triage", self.timeout_seconds
            )
            return ClassificationResult.fallback(report.category, photo_analysis)
        except Exception as exc:
            logger.warning("Classification call failed (%s); using fallback triage", type(exc).__name__)
            return ClassificationResult.fallback(report.category, photo_analysis)

        payload = parse_json_object(response.content)
        if not payload:
            logger.warning("Classification returned no usable JSON; using fallback triage")
            return ClassificationResult.fallback(report.category, photo_analysis)

        try:
            result = ClassificationResult.from_payload(
                payload, category_hint=report.category, photo_analysis=photo_analysis
            )
        except ValidationError as exc:
            logger.warning("Classification payload invalid: %s", exc)
            return ClassificationResult.fallback(report.category, photo_analysis)

        logger.info(
            "Triage complete: urgency=%s category=%s tokens=%s cost_usd=%s",
            result.urgency.value,
            result.category,
            response.total_tokens,
            response.estimated_cost_usd,
        )
        return result

    async def analyze_photos(self, photos: list[str]) -> str:
        """Describe the first photo; returns "" on any failure."""
        if self.provider is None or not photos:
            return ""
        try:
            with anyio.fail_after(self.photo_timeout_seconds):
                response = await self.provider.chat(
                    [ChatMessage(role="user", content=PHOTO_PROMPT, images=[photos[0]])],
                    model=self.model,
                    temperature=0.2,
                    max_tokens=500,
                )
        except TimeoutError:
            logger.warning("Photo analysis timed out after %ss", self.photo_timeout_seconds)
            return ""
        except Exception as exc:
            logger.warning("Photo analysis failed (%s)", type(exc).__name__)
            return ""
        return (response.content or "").strip()


def build_triage_prompt(report: MaintenanceReport, photo_analysis: str = "") -> str:
    extra_lines = []
    if report.category:
        extra_lines.append(f"Category: {report.category}")
    if report.priority:
        extra_lines.append(f"Priority: {report.priority}")
    if photo_analysis:
        extra_lines.append(f"\nPHOTO ANALYSIS:\n{photo_analysis}\n")
    extra = "\n".join(extra_lines)
    return TRIAGE_PROMPT.format(
        title=report.title,
        description=report.description,
        extra=f"{extra}\n" if extra else "",
    )
