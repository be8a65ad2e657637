"""Errors raised by directory gateways.

Gateways translate transport failures into these types so domain services can
tell a bad credential from a bad network from a rate limit without knowing
which HTTP library sits underneath.
"""

from __future__ import annotations


class ApiError(RuntimeError):
    """Base class for failures raised by the resilient client."""

    def __init__(
        self,
        message: str,
        *,
        method: str,
        path: str,
        status_code: int | None = None,
        request_id: str | None = None,
        correlation_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.path = path
        self.status_code = status_code
        self.request_id = request_id
        self.correlation_id = correlation_id


class ApiStatusError(ApiError):
    """Terminal non-2xx response (non-retryable, or retries exhausted)."""

    def __init__(
        self,
        message: str,
        *,
        method: str,
        path: str,
        status_code: int,
        retryable: bool,
        attempts: int,
        request_id: str | None = None,
        correlation_id: str | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(
            message,
            method=method,
            path=path,
            status_code=status_code,
            request_id=request_id,
            correlation_id=correlation_id,
        )
        self.retryable = retryable
        self.attempts = attempts
        self.body = body


class VersionConflictError(ApiStatusError):
    """The server rejected a write because the submitted version is stale."""


class ApiTimeoutError(ApiError):
    """A single request exceeded its deadline. Never retried by the client."""


__all__ = ["ApiError", "ApiStatusError", "ApiTimeoutError", "VersionConflictError"]
