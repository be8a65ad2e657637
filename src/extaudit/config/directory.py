"""Telephony directory API configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_env_number, require_env_vars
from .http_resilience import DEFAULT_TIMEOUT_SECONDS, RateLimit, ResilienceConfig, RetryPolicy

BASE_URI_VAR = "EXTAUDIT_API_BASE_URI"
ACCESS_TOKEN_VAR = "EXTAUDIT_ACCESS_TOKEN"  # noqa: S105
TIMEOUT_VAR = "EXTAUDIT_TIMEOUT_SECONDS"
MAX_RETRIES_VAR = "EXTAUDIT_MAX_RETRIES"
MAX_CALLS_PER_SECOND_VAR = "EXTAUDIT_MAX_CALLS_PER_SECOND"


@dataclass(frozen=True, slots=True)
class DirectoryConfig:
    """Connection settings for the directory API."""

    base_uri: str
    access_token: str
    resilience: ResilienceConfig


def _rate_limit_from_env() -> RateLimit | None:
    """Client-side call budget; unset or 0 leaves calls unlimited."""

    max_calls = optional_env_number(MAX_CALLS_PER_SECOND_VAR, 0.0, cast=float)
    if max_calls <= 0:
        return None
    return RateLimit(max_calls=max_calls, per_seconds=1.0)


def get_directory_config(*, resilience: ResilienceConfig | None = None) -> DirectoryConfig:
    values = require_env_vars((BASE_URI_VAR, ACCESS_TOKEN_VAR))
    base_uri = values[BASE_URI_VAR].strip().rstrip("/")
    if resilience is None:
        resilience = ResilienceConfig(
            name="directory",
            base_url=base_uri,
            timeout_seconds=optional_env_number(
                TIMEOUT_VAR, DEFAULT_TIMEOUT_SECONDS, cast=float
            ),
            retry=RetryPolicy(total=max(1, optional_env_number(MAX_RETRIES_VAR, 5, cast=int))),
            ratelimit=_rate_limit_from_env(),
        )
    return DirectoryConfig(
        base_uri=base_uri,
        access_token=values[ACCESS_TOKEN_VAR].strip(),
        resilience=resilience,
    )
