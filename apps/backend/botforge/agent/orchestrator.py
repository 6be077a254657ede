"""Tiered calls to the generation service.

Every call walks an escalation table of (model, token budget, timeout) tiers
in declared order. Timeouts and ordinary failures move on to the next tier;
rate limits and auth failures stop at once and come back as structured
signals; running out of tiers raises `TiersExhaustedError`.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import httpx
from openai import APITimeoutError

from botforge.agent.llm import build_messages, make_llm, message_text
from botforge.services.errors import (
    DEFAULT_RETRY_AFTER_SECONDS,
    AuthenticationError,
    GenerationUnavailableError,
    RateLimitExceededError,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429
AUTH_STATUSES = frozenset({401, 403})


@dataclass(frozen=True, slots=True)
class Tier:
    model: str
    max_tokens: int
    timeout_seconds: float


@dataclass(slots=True)
class GenerationResponse:
    text: str
    model: str
    tier_index: int
    attempts: int
    truncated: bool = False
    usage: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RateLimited:
    retry_after_seconds: int
    message: str = ""


@dataclass(frozen=True, slots=True)
class AuthFailure:
    message: str
    status: Optional[int] = None


CallOutcome = Union[GenerationResponse, RateLimited, AuthFailure]


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    tier_index: int
    model: str
    outcome: str
    status: Optional[int] = None
    detail: str = ""


class TiersExhaustedError(RuntimeError):
    def __init__(self, attempts: Sequence[AttemptRecord]) -> None:
        self.attempts = list(attempts)
        last = self.attempts[-1] if self.attempts else None
        self.last_status = last.status if last else None
        self.last_body = last.detail if last else ""
        summary = ", ".join(f"{a.model}={a.outcome}" for a in self.attempts) or "no attempts"
        super().__init__(f"all model tiers failed ({summary})")


def parse_retry_after(value: Any, *, now: datetime | None = None) -> int:
    """Seconds to wait from a Retry-After value (delta seconds or HTTP date)."""
    if value is None:
        return DEFAULT_RETRY_AFTER_SECONDS
    text = str(value).strip()
    if not text:
        return DEFAULT_RETRY_AFTER_SECONDS
    try:
        return max(0, math.ceil(float(text)))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER_SECONDS
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0, math.ceil((when - current).total_seconds()))


def _status_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def _headers_of(exc: BaseException) -> Mapping[str, str]:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    return headers if headers is not None else {}


def _body_of(exc: BaseException) -> str:
    body = getattr(exc, "body", None)
    if body:
        return str(body)[:500]
    response = getattr(exc, "response", None)
    try:
        text = getattr(response, "text", None)
    except httpx.ResponseNotRead:
        text = None
    return (text or str(exc))[:500]


def _is_client_timeout(exc: BaseException) -> bool:
    return isinstance(exc, (APITimeoutError, httpx.TimeoutException))


class RequestOrchestrator:
    def __init__(
        self,
        tiers: Sequence[Tier],
        *,
        llm_factory: Callable[..., Any] = make_llm,
        default_attempts: int = 3,
        temperature: float = 0.2,
    ) -> None:
        if not tiers:
            raise ValueError("RequestOrchestrator needs at least one tier")
        self.tiers = list(tiers)
        self.default_attempts = default_attempts
        self.temperature = temperature
        self._llm_factory = llm_factory

    def plan(self, attempt_budget: int | None = None) -> list[Tier]:
        budget = attempt_budget if attempt_budget is not None else self.default_attempts
        return self.tiers[: max(1, min(budget, len(self.tiers)))]

    async def call(
        self,
        prompt: str,
        system_instructions: str = "",
        attempt_budget: int | None = None,
    ) -> CallOutcome:
        messages = build_messages(prompt, system_instructions)
        attempts: list[AttemptRecord] = []

        for index, tier in enumerate(self.plan(attempt_budget)):
            llm = self._llm_factory(tier.model, tier.max_tokens, tier.timeout_seconds, self.temperature)
            try:
                async with asyncio.timeout(tier.timeout_seconds):
                    message = await llm.ainvoke(messages)
            except (TimeoutError, asyncio.TimeoutError):
                logger.warning("Tier %d (%s) timed out after %ss", index, tier.model, tier.timeout_seconds)
                attempts.append(AttemptRecord(index, tier.model, "timeout"))
                continue
            except Exception as exc:
                status = _status_of(exc)
                if status == RATE_LIMIT_STATUS:
                    retry_after = parse_retry_after(_headers_of(exc).get("retry-after"))
                    logger.warning("Rate limited on tier %d (%s); retry after %ss", index, tier.model, retry_after)
                    return RateLimited(retry_after_seconds=retry_after, message=_body_of(exc))
                if status in AUTH_STATUSES:
                    logger.warning("Auth failure on tier %d (%s): status %s", index, tier.model, status)
                    return AuthFailure(message=_body_of(exc), status=status)
                outcome = "timeout" if _is_client_timeout(exc) else "error"
                logger.warning("Tier %d (%s) failed (%s, status %s): %s", index, tier.model, outcome, status, exc)
                attempts.append(AttemptRecord(index, tier.model, outcome, status, _body_of(exc)))
                continue

            return self._normalize(message, tier, index, len(attempts) + 1)

        raise TiersExhaustedError(attempts)

    def _normalize(self, message: Any, tier: Tier, index: int, attempts: int) -> GenerationResponse:
        metadata = getattr(message, "response_metadata", None) or {}
        truncated = metadata.get("finish_reason") == "length"
        if truncated:
            logger.warning("Tier %d (%s) hit its %d token budget", index, tier.model, tier.max_tokens)
        usage = getattr(message, "usage_metadata", None) or metadata.get("token_usage") or {}
        return GenerationResponse(
            text=message_text(message),
            model=tier.model,
            tier_index=index,
            attempts=attempts,
            truncated=truncated,
            usage=dict(usage),
        )

    async def call_or_raise(
        self,
        prompt: str,
        system_instructions: str = "",
        attempt_budget: int | None = None,
    ) -> GenerationResponse:
        """Like `call`, but terminal signals become typed service errors."""
        try:
            outcome = await self.call(prompt, system_instructions, attempt_budget)
        except TiersExhaustedError as exc:
            raise GenerationUnavailableError(str(exc), last_status=exc.last_status) from exc
        if isinstance(outcome, RateLimited):
            raise RateLimitExceededError(retry_after_seconds=outcome.retry_after_seconds)
        if isinstance(outcome, AuthFailure):
            raise AuthenticationError(outcome.message or "Generation service rejected the credentials")
        return outcome
