"""Configuration types for resilient HTTP clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_TIMEOUT_SECONDS = 120.0


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Attempt budget and backoff shape for one logical call.

    ``total`` counts attempts, including the first one. Timeouts are absent from
    ``retry_on_exceptions`` so they surface to the caller straight away.
    """

    total: int = 5
    initial_backoff_seconds: float = 0.5
    backoff_multiplier: float = 1.8
    max_backoff_seconds: float = 8.0
    max_jitter_seconds: float = 0.25
    respect_retry_after_header: bool = True
    allowed_methods: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {"DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"}
        )
    )
    status_forcelist: frozenset[int] = field(
        default_factory=lambda: frozenset({429, 500, 501, 502, 503, 504})
    )
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )

    def is_retryable(self, status_code: int) -> bool:
        return status_code in self.status_forcelist

    def backoff_for(self, retry_number: int) -> float:
        """Wait before the ``retry_number``-th retry (1-based), capped at the maximum."""

        if retry_number < 1:
            return 0.0
        backoff = self.initial_backoff_seconds * self.backoff_multiplier ** (retry_number - 1)
        return min(self.max_backoff_seconds, backoff)


@dataclass(slots=True, frozen=True)
class ThrottlePolicy:
    """Proactive pause applied after a success when the server budget runs low."""

    low_water_mark: int = 2
    default_delay_seconds: float = 0.5
    padding_seconds: float = 0.25
    max_delay_seconds: float = 60.0


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: float
    per_seconds: float


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    base_url: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    throttle: ThrottlePolicy = field(default_factory=ThrottlePolicy)
    ratelimit: RateLimit | None = None
    default_headers: Mapping[str, str] | None = None
