"""AI Provider abstraction layer.

Supports OpenAI and Google Gemini with a unified interface, including
JSON-mode responses and image inputs for maintenance photo analysis.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx

from fixdesk.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    """A single message in a conversation."""

    role: str  # 'system', 'user', 'assistant'
    content: str
    images: list[str] = field(default_factory=list)  # URLs or data URIs


@dataclass
class ChatResponse:
    """Response from an AI provider."""

    content: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str

    @property
    def estimated_cost_usd(self) -> Decimal:
        """Estimate cost based on model pricing (approximate)."""
        # Pricing per 1M tokens
        pricing = {
            "gpt-4o-mini": {"input": Decimal("0.15"), "output": Decimal("0.60")},
            "gpt-4o": {"input": Decimal("2.50"), "output": Decimal("10.00")},
            "gemini-2.0-flash": {"input": Decimal("0.10"), "output": Decimal("0.40")},
            "gemini-1.5-flash": {"input": Decimal("0.075"), "output": Decimal("0.30")},
        }

        model_pricing = pricing.get(
            self.model, {"input": Decimal("0"), "output": Decimal("0")}
        )
        input_cost = (Decimal(self.prompt_tokens) / Decimal("1000000")) * model_pricing["input"]
        output_cost = (Decimal(self.completion_tokens) / Decimal("1000000")) * model_pricing["output"]
        return input_cost + output_cost


def _split_data_uri(image: str) -> tuple[str, str] | None:
    """Return (mime_type, base64 data) for a data URI, None for plain URLs."""
    if not image.startswith("data:") or "," not in image:
        return None
    header, data = image.split(",", 1)
    mime_type = header[5:].split(";", 1)[0] or "image/jpeg"
    return mime_type, data


class AIProvider(ABC):
    """Abstract base class for AI providers."""

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        json_mode: bool = False,
    ) -> ChatResponse:
        """Send a chat completion request."""


class OpenAIProvider(AIProvider):
    """OpenAI API provider."""

    def __init__(self, api_key: str, default_model: str = "gpt-4o"):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://api.openai.com/v1"

    @staticmethod
    def _format_message(message: ChatMessage) -> dict[str, Any]:
        if not message.images:
            return {"role": message.role, "content": message.content}
        parts: list[dict[str, Any]] = [{"type": "text", "text": message.content}]
        for image in message.images:
            url = image if _split_data_uri(image) or image.startswith("http") else (
                f"data:image/jpeg;base64,{image}"
            )
            parts.append({"type": "image_url", "image_url": {"url": url}})
        return {"role": message.role, "content": parts}

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        json_mode: bool = False,
    ) -> ChatResponse:
        model = model or self.default_model

        body: dict[str, Any] = {
            "model": model,
            "messages": [self._format_message(m) for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
            )
            response.raise_for_status()
            data = response.json()

        usage = data.get("usage", {})
        return ChatResponse(
            content=data["choices"][0]["message"]["content"] or "",
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            model=model,
        )


class GeminiProvider(AIProvider):
    """Google Gemini API provider."""

    def __init__(self, api_key: str, default_model: str = "gemini-2.0-flash"):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        json_mode: bool = False,
    ) -> ChatResponse:
        model = model or self.default_model

        # Gemini uses 'user' and 'model' roles, system goes in systemInstruction
        system_instruction = None
        contents = []

        for msg in messages:
            if msg.role == "system":
                system_instruction = msg.content
                continue
            role = "model" if msg.role == "assistant" else "user"
            parts: list[dict[str, Any]] = [{"text": msg.content}]
            for image in msg.images:
                inline = _split_data_uri(image)
                if inline:
                    parts.append({"inlineData": {"mimeType": inline[0], "data": inline[1]}})
                else:
                    parts.append({"fileData": {"mimeType": "image/jpeg", "fileUri": image}})
            contents.append({"role": role, "parts": parts})

        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        }
        if json_mode:
            generation_config["responseMimeType"] = "application/json"

        request_body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_instruction:
            request_body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(
                f"{self.base_url}/models/{model}:generateContent",
                params={"key": self.api_key},
                headers={"Content-Type": "application/json"},
                json=request_body,
            )
            response.raise_for_status()
            data = response.json()

        content = data["candidates"][0]["content"]["parts"][0]["text"]

        usage = data.get("usageMetadata", {})
        prompt_tokens = usage.get("promptTokenCount", 0)
        completion_tokens = usage.get("candidatesTokenCount", 0)

        return ChatResponse(
            content=content,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            model=model,
        )


def get_provider(
    provider_name: str, api_key: str, model: str | None = None
) -> AIProvider:
    """Factory function to get the appropriate AI provider."""
    if provider_name == "openai":
        return OpenAIProvider(api_key, default_model=model or "gpt-4o")
    elif provider_name == "gemini":
        return GeminiProvider(api_key, default_model=model or "gemini-2.0-flash")
    else:
        raise ValueError(f"Unknown provider: {provider_name}")


def get_configured_provider() -> AIProvider | None:
    """
    Provider from settings, or None when classification is not configured.

    A missing key is not an error: triage then degrades to fallback results.
    """
    name = settings.AI_PROVIDER.strip().lower()
    if not name:
        return None
    api_key = {"openai": settings.OPENAI_API_KEY, "gemini": settings.GEMINI_API_KEY}.get(name, "")
    if not api_key:
        logger.info("AI provider %s has no API key configured; using fallback triage", name)
        return None
    return get_provider(name, api_key, model=settings.AI_MODEL or None)
