"""
Classifier provider backends.

One ``ClassifierBackend`` per provider family, chosen once at construction by
``create_backend``.  SDK-level retries are disabled: retry, backoff and
timeout policy belong to ``ClassifierGateway``.  Every SDK failure is mapped
to ``ClassifierBackendError`` carrying an HTTP-like status when one exists.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import anthropic
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from openai import AsyncOpenAI

from fairguard.configuration.ai_settings import SUPPORTED_PROVIDERS, AISettings, ProviderSettings
from fairguard.errors import ClassifierBackendError
from fairguard.util.logger import get_logger, register_secret

logger = get_logger("classifier_providers")

# Anthropic reports overload with a non-standard status
ANTHROPIC_OVERLOADED = 529


class ClassifierBackend(ABC):
    """A single external judge capable of answering one prompt with text."""

    name: str = "backend"

    @abstractmethod
    async def submit(self, system_instruction: str, user_prompt: str, temperature: float) -> str:
        """Send one prompt and return the raw response text (may be empty).

        Raises:
            ClassifierBackendError: On any provider failure.
        """


class UnconfiguredBackend(ClassifierBackend):
    """Stand-in used when the selected provider has no API key; every call fails terminally."""

    def __init__(self, name: str, env_var: str) -> None:
        self.name = name
        self.env_var = env_var

    async def submit(self, system_instruction: str, user_prompt: str, temperature: float) -> str:
        detail = f"set {self.env_var}" if self.env_var else "unsupported provider"
        raise ClassifierBackendError(f"provider '{self.name}' is not configured ({detail})", retryable=False)


class OpenAICompatibleBackend(ClassifierBackend):
    """OpenAI chat completions API; also used for Cerebras and other compatible endpoints."""

    def __init__(self, name: str, model: str, api_key: str, base_url: str | None = None) -> None:
        self.name = name
        self._model = model
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    async def submit(self, system_instruction: str, user_prompt: str, temperature: float) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_instruction},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except openai.APIStatusError as exc:
            raise ClassifierBackendError(f"{self.name} API error: {exc.message}", status=exc.status_code) from exc
        except openai.APIConnectionError as exc:
            raise ClassifierBackendError(f"{self.name} connection error: {exc}", retryable=True) from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class AnthropicBackend(ClassifierBackend):
    """Anthropic messages API."""

    name = "claude"

    def __init__(self, model: str, api_key: str, max_tokens: int = 1024) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)

    async def submit(self, system_instruction: str, user_prompt: str, temperature: float) -> str:
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system_instruction,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
            )
        except anthropic.APIStatusError as exc:
            status = exc.status_code
            raise ClassifierBackendError(
                f"claude API error: {exc.message}",
                status=status,
                retryable=status in ClassifierBackendError.RETRYABLE_STATUSES or status == ANTHROPIC_OVERLOADED,
            ) from exc
        except anthropic.APIConnectionError as exc:
            raise ClassifierBackendError(f"claude connection error: {exc}", retryable=True) from exc

        return "".join(block.text for block in response.content if getattr(block, "type", None) == "text")


class GeminiBackend(ClassifierBackend):
    """Google Gemini through the ``google-genai`` async client, JSON response mode."""

    name = "gemini"

    def __init__(self, model: str, api_key: str) -> None:
        self._model = model
        self._client = genai.Client(api_key=api_key)

    async def submit(self, system_instruction: str, user_prompt: str, temperature: float) -> str:
        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=user_prompt,
                config=genai_types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    temperature=temperature,
                    response_mime_type="application/json",
                ),
            )
        except genai_errors.APIError as exc:
            raise ClassifierBackendError(f"gemini API error: {exc.message}", status=exc.code) from exc

        # ``text`` is None when the candidate was blocked or empty
        return response.text or ""


def create_backend(ai_settings: AISettings) -> ClassifierBackend:
    """Build the backend for the configured provider.

    A provider without an API key yields an ``UnconfiguredBackend`` so the
    engine still starts; every classification then reports "unavailable".
    """
    provider = ai_settings.provider
    if provider not in SUPPORTED_PROVIDERS:
        logger.error("[CLASSIFIER] Unknown provider '%s'; expected one of %s", provider, ", ".join(SUPPORTED_PROVIDERS))
        return UnconfiguredBackend(provider, "")
    settings: ProviderSettings = ai_settings.provider_settings(provider)
    api_key = settings.api_key
    if not api_key:
        logger.error("[CLASSIFIER] No API key for provider '%s' (env %s)", provider, settings.api_key_env)
        return UnconfiguredBackend(provider, settings.api_key_env)
    register_secret(api_key)

    if provider != "gemini":
        logger.warning("[CLASSIFIER] Provider '%s' is experimental; 'gemini' is recommended", provider)

    if provider == "claude":
        backend: ClassifierBackend = AnthropicBackend(settings.model, api_key)
    elif provider == "gemini":
        backend = GeminiBackend(settings.model, api_key)
    else:
        backend = OpenAICompatibleBackend(provider, settings.model, api_key, settings.base_url)

    logger.info("[CLASSIFIER] Using provider=%s model=%s", provider, settings.model)
    return backend
