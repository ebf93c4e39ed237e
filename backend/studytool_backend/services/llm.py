from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol, Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..config import AppConfig
from ..errors import RateLimitedError, UpstreamError
from ..models.material import ContextPart, FileRefPart, TextPart

logger = logging.getLogger(__name__)

GenerationMode = Literal["qa", "dialogue", "summary", "suggest"]

RATE_LIMIT_MARKERS = ("quota", "rate limit", "rate-limit", "ratelimit", "resource_exhausted", "too many requests", "429")


class LLMBackend(Protocol):
    async def generate(self, parts: Sequence[ContextPart], mode: GenerationMode) -> str:
        ...

    @property
    def model_name(self) -> str:
        ...


def is_rate_limit_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def create_genai_client(settings: AppConfig) -> genai.Client:
    return genai.Client(api_key=settings.require_api_key())


def to_genai_part(part: ContextPart) -> types.Part:
    if isinstance(part, FileRefPart):
        return types.Part.from_uri(file_uri=part.file_uri, mime_type=part.mime_type)
    return types.Part.from_text(text=part.text)


@dataclass
class GeminiBackend:
    client: genai.Client
    settings: AppConfig
    model: str = ""

    def __post_init__(self) -> None:
        if not self.model:
            self.model = self.settings.gemini_model

    @property
    def model_name(self) -> str:
        return self.model

    def _config(self, mode: GenerationMode) -> types.GenerateContentConfig:
        profile = self.settings.profile_for(mode)
        return types.GenerateContentConfig(
            temperature=profile.temperature,
            top_p=profile.top_p,
            top_k=profile.top_k,
            max_output_tokens=profile.max_output_tokens,
            response_mime_type="application/json" if profile.json_output else None,
        )

    async def generate(self, parts: Sequence[ContextPart], mode: GenerationMode) -> str:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[to_genai_part(part) for part in parts],
                config=self._config(mode),
            )
        except genai_errors.APIError as e:
            if e.code == 429 or is_rate_limit_message(str(e)):
                raise RateLimitedError(f"Gemini rate limit or quota exceeded: {e}") from e
            raise UpstreamError(f"Gemini API error ({e.code}): {e}") from e
        return (response.text or "").strip()


@dataclass
class DummyBackend:
    """Offline backend that answers with a fixed, uncited placeholder."""

    @property
    def model_name(self) -> str:
        return "offline-placeholder"

    async def generate(self, parts: Sequence[ContextPart], mode: GenerationMode) -> str:
        prompt = "\n".join(part.text for part in parts if isinstance(part, TextPart))
        if 'Say "ok"' in prompt:
            return "ok"
        return (
            "Offline model placeholder response. Configure STUDYTOOL_LLM_PROVIDER=gemini "
            "and STUDYTOOL_GEMINI_API_KEY to enable real answers."
        )


def create_llm_backend(settings: AppConfig, client: genai.Client | None = None) -> LLMBackend:
    if settings.llm_provider == "gemini":
        return GeminiBackend(client=client or create_genai_client(settings), settings=settings)
    logger.info("LLM provider is %s; using offline placeholder backend", settings.llm_provider)
    return DummyBackend()
