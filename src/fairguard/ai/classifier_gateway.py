"""
Classifier gateway: one retrying, time-bounded entry point to the external judge.

``ClassifierGateway.classify`` wraps a single ``ClassifierBackend`` and turns
whatever happens on the wire into either a typed verdict or an explicit
``ClassificationUnavailable``.  Callers decide what "unavailable" means for
their path; punitive paths must treat it as "no action".

Retry policy
------------
* Retried: per-attempt timeout, connection failures, HTTP 429/500/502/503/504,
  empty response text, text that neither validates nor yields a keyword verdict.
* Not retried: any other backend failure (bad request, auth failure, unknown
  provider); the gateway gives up immediately.
* The policy is a tenacity ``AsyncRetrying``: ``max_retries`` is the total
  number of attempts and the n-th failed attempt is followed by a wait of
  ``backoff_base * 2 ** (n - 1)`` seconds (``wait_exponential``).
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Type

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from fairguard.ai.prompts import ClassifierPrompt
from fairguard.ai.providers import ClassifierBackend
from fairguard.ai.verdict_parsing import V, parse_verdict
from fairguard.configuration.ai_settings import AISettings
from fairguard.datatypes.verdict_datatypes import ClassificationUnavailable
from fairguard.errors import ClassifierBackendError
from fairguard.util.logger import get_logger

logger = get_logger("classifier_gateway")

Sleep = Callable[[float], Awaitable[None]]


class _UnusableResponse(Exception):
    """The backend answered, but with nothing a verdict can be read from."""


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, ClassifierBackendError):
        return exc.retryable
    return isinstance(exc, Exception)


class ClassifierGateway:
    """Timeout, retry/backoff and structured parsing around one classifier backend."""

    def __init__(
        self,
        backend: ClassifierBackend,
        *,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        backoff_base_seconds: float = 1.0,
        temperature: float = 0.3,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(1, max_retries)
        self.backoff_base_seconds = backoff_base_seconds
        self.temperature = temperature
        self._sleep = sleep

    @classmethod
    def from_settings(cls, backend: ClassifierBackend, ai_settings: AISettings, **kwargs) -> "ClassifierGateway":
        return cls(
            backend,
            timeout_seconds=ai_settings.timeout_seconds,
            max_retries=ai_settings.max_retries,
            backoff_base_seconds=ai_settings.backoff_base_seconds,
            temperature=ai_settings.temperature,
            **kwargs,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_base_seconds),
            retry=retry_if_exception(_is_transient),
            sleep=self._sleep,
            reraise=True,
        )

    async def classify(self, prompt: ClassifierPrompt, verdict_type: Type[V]) -> V | ClassificationUnavailable:
        """
        Submit ``prompt`` and parse the answer as ``verdict_type``.

        Args:
            prompt: System instruction and user prompt to send.
            verdict_type: One of the verdict dataclasses; supplies schema and fallback.

        Returns:
            The parsed verdict, or ``ClassificationUnavailable`` once retries are
            exhausted or a non-retryable failure occurs.
        """
        provider = self.backend.name
        attempt_no = 0

        try:
            async for attempt in self._retrying():
                attempt_no = attempt.retry_state.attempt_number
                with attempt:
                    verdict = await self._attempt(prompt, verdict_type, attempt_no)
        except Exception as exc:
            reason = self._describe(exc)
            if not _is_transient(exc):
                logger.error(
                    "[CLASSIFIER] %s %s: non-retryable failure (status=%s): %s",
                    provider, prompt.purpose, getattr(exc, "status", None), exc,
                )
                return ClassificationUnavailable(reason, retryable=False, attempts=attempt_no)
            logger.error(
                "[CLASSIFIER] %s %s: giving up after %d attempts (%s)",
                provider, prompt.purpose, attempt_no, reason,
            )
            return ClassificationUnavailable(reason, retryable=True, attempts=attempt_no)

        logger.debug("[CLASSIFIER] %s %s: verdict on attempt %d", provider, prompt.purpose, attempt_no)
        return verdict

    async def _attempt(self, prompt: ClassifierPrompt, verdict_type: Type[V], attempt_no: int) -> V:
        """One submission; every failure is raised for the retry policy to judge."""
        provider = self.backend.name
        try:
            text = await asyncio.wait_for(
                self.backend.submit(prompt.system_instruction, prompt.user_prompt, self.temperature),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[CLASSIFIER] %s %s: timeout after %gs (attempt %d/%d)",
                provider, prompt.purpose, self.timeout_seconds, attempt_no, self.max_retries,
            )
            raise
        except ClassifierBackendError as exc:
            if exc.retryable:
                logger.warning(
                    "[CLASSIFIER] %s %s: transient failure (status=%s, attempt %d/%d): %s",
                    provider, prompt.purpose, exc.status, attempt_no, self.max_retries, exc,
                )
            raise
        except Exception:
            # Unmapped transport failures are treated like connection errors
            logger.exception(
                "[CLASSIFIER] %s %s: unexpected failure (attempt %d/%d)",
                provider, prompt.purpose, attempt_no, self.max_retries,
            )
            raise

        if not text or not text.strip():
            logger.warning(
                "[CLASSIFIER] %s %s: empty response (attempt %d/%d)",
                provider, prompt.purpose, attempt_no, self.max_retries,
            )
            raise _UnusableResponse("empty response")

        verdict = parse_verdict(text, verdict_type)
        if verdict is None:
            logger.error(
                "[CLASSIFIER] %s %s: unparseable response (attempt %d/%d): %.200s",
                provider, prompt.purpose, attempt_no, self.max_retries, text,
            )
            raise _UnusableResponse("unparseable response")
        return verdict

    def _describe(self, exc: BaseException) -> str:
        if isinstance(exc, asyncio.TimeoutError):
            return f"timeout after {self.timeout_seconds:g}s"
        if isinstance(exc, (_UnusableResponse, ClassifierBackendError)):
            return str(exc)
        return f"unexpected error: {exc}"
