"""Call counters and last-response diagnostics for API clients."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True, frozen=True)
class RateLimitSnapshot:
    limit: int | None = None
    remaining: int | None = None
    reset_at: datetime | None = None
    captured_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class ApiStats:
    """Observability counters. Nothing here feeds back into control flow except
    the rate-limit snapshot, which the client reads to decide whether to throttle."""

    total_calls: int = 0
    by_method: Counter[str] = field(default_factory=Counter[str])
    by_path: Counter[str] = field(default_factory=Counter[str])
    last_error: str | None = None
    rate_limit: RateLimitSnapshot | None = None
    last_status_code: int | None = None
    last_request_id: str | None = None
    last_correlation_id: str | None = None

    def record_call(self, method: str, path_key: str) -> None:
        self.total_calls += 1
        self.by_method[method.upper()] += 1
        self.by_path[path_key] += 1

    def record_error(self, message: str) -> None:
        self.last_error = message

    def record_rate_limit(self, snapshot: RateLimitSnapshot) -> None:
        self.rate_limit = snapshot

    def record_last_response(
        self,
        status_code: int | None,
        request_id: str | None,
        correlation_id: str | None,
    ) -> None:
        self.last_status_code = status_code
        if request_id and request_id.strip():
            self.last_request_id = request_id
        if correlation_id and correlation_id.strip():
            self.last_correlation_id = correlation_id

    def snapshot(self) -> dict[str, object]:
        rate_limit: dict[str, object] | None = None
        if self.rate_limit is not None:
            rate_limit = {
                "limit": self.rate_limit.limit,
                "remaining": self.rate_limit.remaining,
                "reset_at": self.rate_limit.reset_at.isoformat()
                if self.rate_limit.reset_at
                else None,
                "captured_at": self.rate_limit.captured_at.isoformat(),
            }
        return {
            "total_calls": self.total_calls,
            "by_method": dict(self.by_method),
            "by_path": dict(self.by_path),
            "last_error": self.last_error,
            "rate_limit": rate_limit,
            "last_status_code": self.last_status_code,
            "last_request_id": self.last_request_id,
            "last_correlation_id": self.last_correlation_id,
        }
