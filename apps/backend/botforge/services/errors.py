from __future__ import annotations

from typing import Any

DEFAULT_RETRY_AFTER_SECONDS = 60


class ServiceError(RuntimeError):
    """Base error for service-layer failures that map to HTTP responses."""

    status_code: int = 400

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__name__
        super().__init__(self.message)

    def payload(self) -> dict[str, Any]:
        return {"error": self.message}


class InvalidArtifactError(ServiceError):
    status_code = 400


class AuthenticationError(ServiceError):
    status_code = 401

    def payload(self) -> dict[str, Any]:
        return {"error": self.message, "authError": True}


class RateLimitExceededError(ServiceError):
    status_code = 429

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after_seconds: int = DEFAULT_RETRY_AFTER_SECONDS,
    ) -> None:
        super().__init__(message or "Rate limited by the generation service")
        self.retry_after_seconds = retry_after_seconds

    def payload(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "rateLimited": True,
            "retryAfterSeconds": self.retry_after_seconds,
        }


class GenerationUnavailableError(ServiceError):
    """Every model tier failed or timed out."""

    status_code = 502

    def __init__(self, message: str | None = None, *, last_status: int | None = None) -> None:
        super().__init__(message)
        self.last_status = last_status

    def payload(self) -> dict[str, Any]:
        return {"error": self.message, "lastStatus": self.last_status}


class ExtractionFailedError(ServiceError):
    status_code = 502

    def __init__(self, message: str | None = None, *, truncated: bool = False) -> None:
        super().__init__(message)
        self.truncated = truncated

    def payload(self) -> dict[str, Any]:
        return {"error": self.message, "truncated": self.truncated}


class ValidatorUnavailableError(ServiceError):
    status_code = 503
