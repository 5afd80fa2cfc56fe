import asyncio

import pytest

from fairguard.ai.classifier_gateway import ClassifierGateway
from fairguard.ai.prompts import build_graylist_prompt
from fairguard.ai.providers import UnconfiguredBackend, create_backend
from fairguard.configuration.ai_settings import AISettings
from fairguard.datatypes.verdict_datatypes import (
    AbuseVerdict,
    AppealVerdict,
    ClassificationUnavailable,
    SafetyLabel,
    SafetyVerdict,
    SpamVerdict,
)
from fairguard.errors import ClassifierBackendError

from conftest import ScriptedBackend

PROMPT = build_graylist_prompt("baka", "you are baka", "[TARGET] [bob]: you are baka")


@pytest.mark.asyncio
async def test_structured_verdict_on_first_attempt(gateway, backend, sleeps) -> None:
    backend.queue('{"verdict": "UNSAFE", "reason": "direct insult"}')

    verdict = await gateway.classify(PROMPT, SafetyVerdict)

    assert isinstance(verdict, SafetyVerdict)
    assert verdict.label is SafetyLabel.UNSAFE
    assert verdict.reason == "direct insult"
    assert len(backend.calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_prompt_and_temperature_are_forwarded(gateway, backend) -> None:
    await gateway.classify(PROMPT, SafetyVerdict)

    call = backend.calls[0]
    assert call["system"] == PROMPT.system_instruction
    assert call["prompt"] == PROMPT.user_prompt
    assert call["temperature"] == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_retryable_failures_back_off_exponentially(gateway, backend, sleeps) -> None:
    backend.queue(
        ClassifierBackendError("rate limited", status=429),
        ClassifierBackendError("bad gateway", status=502),
        '{"verdict": "SAFE", "reason": "banter"}',
    )

    verdict = await gateway.classify(PROMPT, SafetyVerdict)

    assert isinstance(verdict, SafetyVerdict)
    assert not verdict.is_unsafe
    assert sleeps == [1, 2]


@pytest.mark.asyncio
async def test_non_retryable_failure_gives_up_immediately(gateway, backend, sleeps) -> None:
    backend.queue(ClassifierBackendError("bad request", status=400))

    verdict = await gateway.classify(PROMPT, SafetyVerdict)

    assert isinstance(verdict, ClassificationUnavailable)
    assert not verdict
    assert verdict.retryable is False
    assert verdict.attempts == 1
    assert len(backend.calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_exhausted_retries_report_unavailable(gateway, backend, sleeps) -> None:
    backend.default = ClassifierBackendError("unavailable", status=503)

    verdict = await gateway.classify(PROMPT, SafetyVerdict)

    assert isinstance(verdict, ClassificationUnavailable)
    assert verdict.retryable is True
    assert verdict.attempts == 3
    assert len(backend.calls) == 3
    assert sleeps == [1, 2]


@pytest.mark.asyncio
async def test_empty_and_garbage_text_are_retried(gateway, backend) -> None:
    backend.queue("", "   ", '{"status": "ACCEPTED", "reason": "fair"}')

    verdict = await gateway.classify(PROMPT, AppealVerdict)

    assert isinstance(verdict, AppealVerdict)
    assert verdict.accepted
    assert len(backend.calls) == 3


@pytest.mark.asyncio
async def test_unparseable_text_exhausts_retries(gateway, backend) -> None:
    backend.default = "I cannot decide."

    verdict = await gateway.classify(PROMPT, AppealVerdict)

    assert isinstance(verdict, ClassificationUnavailable)
    assert verdict.reason == "unparseable response"


@pytest.mark.asyncio
async def test_keyword_fallback_recovers_free_text(gateway, backend) -> None:
    backend.queue("Verdict: PUNISH, this is SPAM flooding the channel")

    verdict = await gateway.classify(PROMPT, SpamVerdict)

    assert isinstance(verdict, SpamVerdict)
    assert verdict.should_punish
    assert verdict.recovered


@pytest.mark.asyncio
async def test_unexpected_exceptions_are_treated_as_transient(gateway, backend) -> None:
    backend.queue(ConnectionResetError("reset"), '{"is_abuse": false, "reason": "ok"}')

    verdict = await gateway.classify(PROMPT, AbuseVerdict)

    assert isinstance(verdict, AbuseVerdict)
    assert verdict.is_abuse is False


class _SlowBackend(ScriptedBackend):
    async def submit(self, system_instruction: str, user_prompt: str, temperature: float) -> str:
        self.calls.append({})
        await asyncio.sleep(10)
        return '{"verdict": "SAFE"}'


@pytest.mark.asyncio
async def test_per_attempt_timeout(sleeps) -> None:
    backend = _SlowBackend()

    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    gateway = ClassifierGateway(backend, timeout_seconds=0.01, max_retries=2, sleep=record_sleep)

    verdict = await gateway.classify(PROMPT, SafetyVerdict)

    assert isinstance(verdict, ClassificationUnavailable)
    assert verdict.reason.startswith("timeout")
    assert len(backend.calls) == 2


@pytest.mark.asyncio
async def test_backoff_doubles_from_the_base_delay(sleeps) -> None:
    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    backend = ScriptedBackend(default=ClassifierBackendError("unavailable", status=503))
    gateway = ClassifierGateway(backend, max_retries=5, backoff_base_seconds=0.5, sleep=record_sleep)

    verdict = await gateway.classify(PROMPT, SafetyVerdict)

    assert verdict.attempts == 5
    assert sleeps == [0.5, 1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_terminal_failure_after_transient_ones_stops_retrying(gateway, backend, sleeps) -> None:
    backend.queue(ClassifierBackendError("bad gateway", status=502), ClassifierBackendError("forbidden", status=403))

    verdict = await gateway.classify(PROMPT, SafetyVerdict)

    assert isinstance(verdict, ClassificationUnavailable)
    assert verdict.retryable is False
    assert verdict.attempts == 2
    assert verdict.reason == "forbidden"
    assert sleeps == [1]


@pytest.mark.asyncio
async def test_cancellation_is_not_retried(gateway, backend, sleeps) -> None:
    backend.queue(asyncio.CancelledError())

    with pytest.raises(asyncio.CancelledError):
        await gateway.classify(PROMPT, SafetyVerdict)

    assert len(backend.calls) == 1
    assert sleeps == []


def test_from_settings_reads_ai_settings() -> None:
    settings = AISettings({"timeout_seconds": 5, "max_retries": 4, "backoff_base_seconds": 2, "temperature": 0.1})

    gateway = ClassifierGateway.from_settings(ScriptedBackend(), settings)

    assert gateway.timeout_seconds == 5
    assert gateway.max_retries == 4
    assert gateway.backoff_base_seconds == 2
    assert gateway.temperature == pytest.approx(0.1)


def test_missing_api_key_yields_unconfigured_backend(monkeypatch) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    backend = create_backend(AISettings({"provider": "gemini"}))

    assert isinstance(backend, UnconfiguredBackend)


def test_unknown_provider_yields_unconfigured_backend() -> None:
    backend = create_backend(AISettings({"provider": "mystery"}))

    assert isinstance(backend, UnconfiguredBackend)


@pytest.mark.asyncio
async def test_unconfigured_backend_is_terminal(sleeps) -> None:
    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    gateway = ClassifierGateway(UnconfiguredBackend("gemini", "GEMINI_API_KEY"), sleep=record_sleep)

    verdict = await gateway.classify(PROMPT, SafetyVerdict)

    assert isinstance(verdict, ClassificationUnavailable)
    assert verdict.retryable is False
    assert "GEMINI_API_KEY" in verdict.reason
    assert sleeps == []
