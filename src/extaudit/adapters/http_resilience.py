from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final, TypedDict, Unpack

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import Retry, RetryTransport

from extaudit.config.http_resilience import ResilienceConfig, RetryPolicy
from extaudit.domain.ports.errors import (
    ApiError,
    ApiStatusError,
    ApiTimeoutError,
    VersionConflictError,
)

from .api_stats import ApiStats, RateLimitSnapshot

if TYPE_CHECKING:
    from types import TracebackType

    from httpx._types import QueryParamTypes

log = getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]
Jitter = Callable[[], float]

HTTP_CONFLICT: Final[int] = 409
_EPOCH_MILLIS_THRESHOLD: Final[float] = 1_000_000_000_000
_EPOCH_SECONDS_THRESHOLD: Final[float] = 1_000_000_000
_BODY_SNIPPET_LENGTH: Final[int] = 1000

REQUEST_ID_HEADERS: Final[tuple[str, ...]] = ("x-request-id", "request-id")
CORRELATION_ID_HEADERS: Final[tuple[str, ...]] = ("inin-correlation-id", "x-correlation-id")


class RequestOptions(TypedDict, total=False):
    params: QueryParamTypes | None
    json: object
    headers: Mapping[str, str] | None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def compose_url(base_url: str | None, path: str) -> str:
    if not path.startswith("/"):
        path = "/" + path
    if base_url is None:
        return path
    return base_url.strip().rstrip("/") + path


def path_template(path: str) -> str:
    """Counter key for a request path: leading slash normalised, query string dropped."""

    key = path.split("?", 1)[0]
    return key if key.startswith("/") else "/" + key


def first_header(headers: httpx.Headers, names: tuple[str, ...]) -> str | None:
    for name in names:
        value = headers.get(name)
        if value is not None and value.strip():
            return value
    return None


def _parse_int(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return int(float(raw))
    except ValueError:
        return None


def parse_rate_limit_reset(raw: str | None, *, now: datetime) -> datetime | None:
    """Normalise a reset header given as epoch millis, epoch seconds or relative seconds."""

    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if value > _EPOCH_MILLIS_THRESHOLD:
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    if value > _EPOCH_SECONDS_THRESHOLD:
        return datetime.fromtimestamp(int(value), tz=UTC)
    return now + timedelta(seconds=max(0.0, value))


def parse_retry_after(raw: str | None, *, now: datetime) -> float:
    """Seconds to wait according to a Retry-After header (delta or HTTP date)."""

    if raw is None or not raw.strip():
        return 0.0
    raw = raw.strip()
    try:
        return max(0.0, float(raw))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return 0.0
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - now).total_seconds())


def _truncate(text: str | None, limit: int = _BODY_SNIPPET_LENGTH) -> str | None:
    if not text or len(text) <= limit:
        return text
    return text[:limit] + "..."


class DirectoryRetry(Retry):
    """``Retry`` driven by a :class:`RetryPolicy`.

    Backoff grows by the policy multiplier from its initial value and is capped
    at its maximum. A ``Retry-After`` header only ever lengthens the wait, and
    jitter is added on top. The sleep, clock and jitter are injectable.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = _utcnow,
        jitter: Jitter | None = None,
        attempts_made: int = 0,
    ) -> None:
        super().__init__(
            total=max(0, policy.total - 1),
            allowed_methods=tuple(policy.allowed_methods),
            status_forcelist=tuple(policy.status_forcelist),
            retry_on_exceptions=policy.retry_on_exceptions,
            backoff_factor=policy.initial_backoff_seconds,
            respect_retry_after_header=policy.respect_retry_after_header,
            max_backoff_wait=policy.max_backoff_seconds,
            backoff_jitter=0.0,
            attempts_made=attempts_made,
        )
        self.policy = policy
        self._sleep = sleep
        self._clock = clock
        self._jitter = jitter or (lambda: random.uniform(0.0, policy.max_jitter_seconds))  # noqa: S311

    @property
    def attempts(self) -> int:
        return self.attempts_made + 1

    def is_retryable_status_code(self, status_code: int) -> bool:
        return self.policy.is_retryable(status_code)

    def increment(self) -> DirectoryRetry:
        return DirectoryRetry(
            self.policy,
            sleep=self._sleep,
            clock=self._clock,
            jitter=self._jitter,
            attempts_made=self.attempts_made + 1,
        )

    def backoff_strategy(self) -> float:
        return self.policy.backoff_for(self.attempts_made)

    async def asleep(self, response: httpx.Response | Exception) -> None:
        delay = self.backoff_strategy()
        if self.respect_retry_after_header and isinstance(response, httpx.Response):
            retry_after = parse_retry_after(response.headers.get("Retry-After"), now=self._clock())
            delay = max(delay, retry_after)
        delay += self._jitter()
        log.info("Retrying in %.2fs (attempt %s failed)", delay, self.attempts_made)
        await self._sleep(delay)
        self.elapsed_sleep += delay


class RecordingTransport(httpx.AsyncBaseTransport):
    """Inner transport that accounts for every attempt the retry layer makes.

    Each attempt waits on the optional rate limiter, is counted in
    :class:`ApiStats`, and has its support headers and rate-limit headers
    captured. Failed attempts are logged with their status and ids.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        stats: ApiStats,
        *,
        limiter: AsyncLimiter | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        self._transport = transport
        self._stats = stats
        self._limiter = limiter
        self._clock = clock

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path_key = path_template(request.url.raw_path.decode("ascii"))
        self._stats.record_call(method, path_key)
        log.debug("API %s %s", method, path_key)

        if self._limiter is None:
            response = await self._transport.handle_async_request(request)
        else:
            async with self._limiter:
                response = await self._transport.handle_async_request(request)

        self._capture_support_headers(response)
        self._capture_rate_limit(response)
        if not response.is_success:
            await self._record_failure(method, path_key, response)
        return response

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def _record_failure(self, method: str, path_key: str, response: httpx.Response) -> None:
        await response.aread()
        status = response.status_code
        message = f"HTTP {status} {response.reason_phrase}".strip()
        self._stats.record_error(message)
        log.warning(
            "API failure %s %s",
            method,
            path_key,
            extra={
                "data": {
                    "status": status,
                    "request_id": first_header(response.headers, REQUEST_ID_HEADERS),
                    "correlation_id": first_header(response.headers, CORRELATION_ID_HEADERS),
                    "retry_after": response.headers.get("Retry-After"),
                    "body": _truncate(response.text),
                }
            },
        )

    def _capture_support_headers(self, response: httpx.Response) -> None:
        self._stats.record_last_response(
            response.status_code,
            first_header(response.headers, REQUEST_ID_HEADERS),
            first_header(response.headers, CORRELATION_ID_HEADERS),
        )

    def _capture_rate_limit(self, response: httpx.Response) -> None:
        limit_raw = response.headers.get("X-RateLimit-Limit")
        remaining_raw = response.headers.get("X-RateLimit-Remaining")
        reset_raw = response.headers.get("X-RateLimit-Reset")
        if not any(raw and raw.strip() for raw in (limit_raw, remaining_raw, reset_raw)):
            return

        now = self._clock()
        self._stats.record_rate_limit(
            RateLimitSnapshot(
                limit=_parse_int(limit_raw),
                remaining=_parse_int(remaining_raw),
                reset_at=parse_rate_limit_reset(reset_raw, now=now),
                captured_at=now,
            )
        )


class ResilientClient:
    """Sequential HTTP client with retry/backoff, rate-limit tracking and timeouts.

    Retries run in an ``httpx_retries.RetryTransport`` configured from the
    policy. Timeouts are not retried and surface as :class:`ApiTimeoutError`.
    After a successful response the client pauses until the server's reset time
    when the remaining budget reported by ``X-RateLimit-Remaining`` runs low.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        headers: Mapping[str, str] | None = None,
        stats: ApiStats | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = _utcnow,
        jitter: Jitter | None = None,
    ) -> None:
        self.config = config
        self.stats = stats if stats is not None else ApiStats()
        self._sleep = sleep
        self._clock = clock
        limiter: AsyncLimiter | None = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit
            else None
        )

        recording = RecordingTransport(
            transport or httpx.AsyncHTTPTransport(),
            self.stats,
            limiter=limiter,
            clock=clock,
        )
        retry = DirectoryRetry(config.retry, sleep=sleep, clock=clock, jitter=jitter)
        retry_transport = RetryTransport(transport=recording, retry=retry)

        merged_headers: dict[str, str] = {"Accept": "application/json"}
        if config.default_headers:
            merged_headers.update(config.default_headers)
        if headers:
            merged_headers.update(headers)

        self._client = httpx.AsyncClient(
            timeout=config.timeout_seconds,
            headers=merged_headers,
            transport=retry_transport,
        )

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(self, path: str, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def patch(self, path: str, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        **kwargs: Unpack[RequestOptions],
    ) -> httpx.Response:
        method = method.upper()
        url = compose_url(self.config.base_url, path)
        path_key = path_template(path)

        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            message = (
                f"Request timed out after {self.config.timeout_seconds:g}s: {method} {path_key}"
            )
            self.stats.record_error(message)
            log.error(message)  # noqa: TRY400
            raise ApiTimeoutError(message, method=method, path=path_key) from exc
        except httpx.TransportError as exc:
            message = f"Transport error on {method} {path_key}: {exc}"
            self.stats.record_error(message)
            log.error(message)  # noqa: TRY400
            raise ApiError(message, method=method, path=path_key) from exc

        if response.is_success:
            await self._throttle_if_low()
            return response

        status = response.status_code
        retry = response.extensions.get("retry")
        attempts = retry.attempts if isinstance(retry, DirectoryRetry) else 1
        error_type = VersionConflictError if status == HTTP_CONFLICT else ApiStatusError
        raise error_type(
            f"HTTP {status} {response.reason_phrase} ({method} {path_key})",
            method=method,
            path=path_key,
            status_code=status,
            retryable=self.config.retry.is_retryable(status),
            attempts=attempts,
            request_id=first_header(response.headers, REQUEST_ID_HEADERS),
            correlation_id=first_header(response.headers, CORRELATION_ID_HEADERS),
            body=_truncate(response.text),
        )

    async def _throttle_if_low(self) -> None:
        snapshot = self.stats.rate_limit
        throttle = self.config.throttle
        if snapshot is None or snapshot.remaining is None:
            return
        if snapshot.remaining > throttle.low_water_mark:
            return

        delay = throttle.default_delay_seconds
        if snapshot.reset_at is not None:
            delta = (snapshot.reset_at - self._clock()).total_seconds()
            if delta > 0:
                delay = delta + throttle.padding_seconds
        delay = min(max(delay, 0.0), throttle.max_delay_seconds)
        if delay <= 0:
            return

        log.warning(
            "Rate limit low; throttling",
            extra={
                "data": {
                    "remaining": snapshot.remaining,
                    "limit": snapshot.limit,
                    "reset_at": snapshot.reset_at.isoformat() if snapshot.reset_at else None,
                    "sleep_seconds": round(delay, 3),
                }
            },
        )
        await self._sleep(delay)


__all__ = [
    "ApiError",
    "ApiStatusError",
    "ApiTimeoutError",
    "DirectoryRetry",
    "RecordingTransport",
    "ResilientClient",
    "VersionConflictError",
    "compose_url",
    "parse_rate_limit_reset",
    "parse_retry_after",
    "path_template",
]
