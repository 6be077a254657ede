from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from botforge.agent.orchestrator import parse_retry_after
from botforge.bot.validation import ValidationError, parse_validation_errors
from botforge.services.errors import (
    AuthenticationError,
    RateLimitExceededError,
    ValidatorUnavailableError,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    version_id: Optional[str] = None
    raw_errors: Any = None


class ValidationClient:
    """Client for the external compiler/validator endpoint.

    Only the request/response contract lives here: POST `{base}/validate`
    with `{csv, botId, token}` and read back `{valid, errors, versionId}`.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = http_client

    async def validate(self, artifact: str, bot_id: str, *, token: str | None = None) -> ValidationResult:
        headers = {"Content-Type": "application/json"}
        body = {"csv": artifact, "botId": bot_id}
        bearer = token or self.token
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
            body["token"] = bearer
        url = f"{self.base_url}/validate"

        try:
            if self._client is not None:
                response = await self._client.post(url, json=body, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Validator request failed: %s", exc)
            raise ValidatorUnavailableError(f"validator unreachable: {exc}") from exc

        return self._interpret(response)

    def _interpret(self, response: httpx.Response) -> ValidationResult:
        status = response.status_code
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {}

        if status in (401, 403) or data.get("authError"):
            raise AuthenticationError(str(data.get("error") or "validator rejected the credentials"))
        if status == 429:
            raise RateLimitExceededError(
                str(data.get("error") or "validator rate limit"),
                retry_after_seconds=parse_retry_after(
                    response.headers.get("retry-after") or data.get("retryAfterSeconds")
                ),
            )
        if status >= 500:
            raise ValidatorUnavailableError(f"validator returned {status}")
        if status >= 400 and "errors" not in data and "valid" not in data:
            raise ValidatorUnavailableError(f"validator returned {status}: {response.text[:200]}")

        errors = parse_validation_errors(data.get("errors"))
        valid = bool(data.get("valid", status < 400 and not errors))
        if valid and errors:
            logger.warning("Validator reported valid with %d error(s); treating as invalid", len(errors))
            valid = False
        version_id = data.get("versionId")
        logger.info("Validation finished: valid=%s errors=%d", valid, len(errors))
        return ValidationResult(
            valid=valid,
            errors=errors,
            version_id=str(version_id) if version_id is not None else None,
            raw_errors=data.get("errors"),
        )
