import asyncio
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import openai
import pytest

from botforge.agent.orchestrator import (
    AuthFailure,
    GenerationResponse,
    RateLimited,
    RequestOrchestrator,
    Tier,
    TiersExhaustedError,
    parse_retry_after,
)
from botforge.services.errors import (
    AuthenticationError,
    GenerationUnavailableError,
    RateLimitExceededError,
)

from fakes import FakeFactory, FakeLLM, status_error

TIERS = [
    Tier("big-model", 16000, 0.5),
    Tier("mid-model", 8000, 0.5),
    Tier("small-model", 4000, 0.5),
]


def _orchestrator(factory: FakeFactory, tiers: list[Tier] = TIERS) -> RequestOrchestrator:
    return RequestOrchestrator(tiers, llm_factory=factory)


def test_first_tier_success_is_normalized() -> None:
    factory = FakeFactory(FakeLLM("hello"))
    outcome = asyncio.run(_orchestrator(factory).call("prompt", "system"))

    assert isinstance(outcome, GenerationResponse)
    assert outcome.text == "hello"
    assert outcome.model == "big-model"
    assert outcome.tier_index == 0
    assert outcome.attempts == 1
    assert outcome.truncated is False
    assert factory.requested == [("big-model", 16000, 0.5)]


def test_timeout_escalates_to_next_tier() -> None:
    tiers = [Tier("slow", 100, 0.01), Tier("fast", 50, 0.5)]
    factory = FakeFactory(FakeLLM("hang"), FakeLLM("answer"))
    outcome = asyncio.run(_orchestrator(factory, tiers).call("prompt"))

    assert isinstance(outcome, GenerationResponse)
    assert outcome.model == "fast"
    assert outcome.tier_index == 1
    assert outcome.attempts == 2


def test_server_error_escalates_then_succeeds() -> None:
    factory = FakeFactory(
        FakeLLM(status_error(openai.InternalServerError, 500)),
        FakeLLM(status_error(openai.APIStatusError, 502)),
        FakeLLM("third time"),
    )
    outcome = asyncio.run(_orchestrator(factory).call("prompt"))
    assert isinstance(outcome, GenerationResponse)
    assert outcome.model == "small-model"


def test_rate_limit_short_circuits_on_first_attempt() -> None:
    second = FakeLLM("never")
    factory = FakeFactory(
        FakeLLM(status_error(openai.RateLimitError, 429, {"retry-after": "17"})),
        second,
    )
    outcome = asyncio.run(_orchestrator(factory).call("prompt"))

    assert outcome == RateLimited(retry_after_seconds=17, message=outcome.message)
    assert len(factory.requested) == 1
    assert second.calls == []


def test_rate_limit_without_header_defaults_to_60() -> None:
    factory = FakeFactory(FakeLLM(status_error(openai.RateLimitError, 429)))
    outcome = asyncio.run(_orchestrator(factory).call("prompt"))
    assert isinstance(outcome, RateLimited)
    assert outcome.retry_after_seconds == 60


def test_auth_error_is_terminal() -> None:
    factory = FakeFactory(FakeLLM(status_error(openai.AuthenticationError, 401)), FakeLLM("never"))
    outcome = asyncio.run(_orchestrator(factory).call("prompt"))
    assert isinstance(outcome, AuthFailure)
    assert outcome.status == 401
    assert len(factory.requested) == 1


def test_exhausting_every_tier_raises_with_last_status() -> None:
    factory = FakeFactory(
        FakeLLM("hang"),
        FakeLLM(status_error(openai.InternalServerError, 500)),
        FakeLLM(status_error(openai.APIStatusError, 503)),
    )
    tiers = [Tier("a", 1, 0.01), Tier("b", 1, 0.5), Tier("c", 1, 0.5)]
    with pytest.raises(TiersExhaustedError) as info:
        asyncio.run(_orchestrator(factory, tiers).call("prompt"))

    assert info.value.last_status == 503
    assert [a.outcome for a in info.value.attempts] == ["timeout", "error", "error"]


def test_attempt_budget_bounds_the_loop() -> None:
    factory = FakeFactory(
        FakeLLM(status_error(openai.InternalServerError, 500)),
        FakeLLM(status_error(openai.InternalServerError, 500)),
        FakeLLM("unused"),
    )
    with pytest.raises(TiersExhaustedError):
        asyncio.run(_orchestrator(factory).call("prompt", attempt_budget=2))
    assert len(factory.requested) == 2


def test_attempt_budget_is_clamped_to_tier_count() -> None:
    orchestrator = _orchestrator(FakeFactory())
    assert len(orchestrator.plan(10)) == 3
    assert len(orchestrator.plan(0)) == 1


def test_length_finish_reason_marks_truncation() -> None:
    factory = FakeFactory(FakeLLM('{"nodes": [', finish_reason="length"))
    outcome = asyncio.run(_orchestrator(factory).call("prompt"))
    assert isinstance(outcome, GenerationResponse)
    assert outcome.truncated is True


def test_call_or_raise_maps_signals_to_service_errors() -> None:
    limited = _orchestrator(FakeFactory(FakeLLM(status_error(openai.RateLimitError, 429, {"retry-after": "5"}))))
    with pytest.raises(RateLimitExceededError) as info:
        asyncio.run(limited.call_or_raise("prompt"))
    assert info.value.retry_after_seconds == 5

    denied = _orchestrator(FakeFactory(FakeLLM(status_error(openai.AuthenticationError, 401))))
    with pytest.raises(AuthenticationError):
        asyncio.run(denied.call_or_raise("prompt"))

    down = _orchestrator(FakeFactory(FakeLLM(status_error(openai.InternalServerError, 500))), [Tier("x", 1, 0.5)])
    with pytest.raises(GenerationUnavailableError) as info2:
        asyncio.run(down.call_or_raise("prompt"))
    assert info2.value.last_status == 500


def test_parse_retry_after_handles_seconds_and_dates() -> None:
    now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert parse_retry_after("30") == 30
    assert parse_retry_after("2.2") == 3
    assert parse_retry_after(None) == 60
    assert parse_retry_after("soon") == 60
    later = format_datetime(now + timedelta(seconds=90), usegmt=True)
    assert parse_retry_after(later, now=now) == 90
