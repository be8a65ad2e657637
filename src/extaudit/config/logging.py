"""Logging setup and the redaction policy applied to structured log data."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Final

REDACTED: Final[str] = "***"
SENSITIVE_KEY_MARKERS: Final[tuple[str, ...]] = (
    "token",
    "password",
    "passwd",
    "secret",
    "authorization",
    "api_key",
    "apikey",
)


def _is_sensitive(key: str, markers: tuple[str, ...]) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in markers)


def redact(value: object, markers: tuple[str, ...] = SENSITIVE_KEY_MARKERS) -> object:
    """Return a copy of ``value`` with sensitive mapping keys masked, recursively."""

    if isinstance(value, Mapping):
        return {
            key: REDACTED if _is_sensitive(str(key), markers) else redact(item, markers)
            for key, item in value.items()
        }
    if isinstance(value, list | tuple):
        return [redact(item, markers) for item in value]
    return value


class RedactingFilter(logging.Filter):
    """Mask sensitive keys inside the ``data`` extra attached to log records."""

    def __init__(self, markers: tuple[str, ...] = SENSITIVE_KEY_MARKERS) -> None:
        super().__init__()
        self._markers = markers

    def filter(self, record: logging.LogRecord) -> bool:
        data = getattr(record, "data", None)
        if data is not None:
            record.data = redact(data, self._markers)
        return True


class _DataFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        data = getattr(record, "data", None)
        if data:
            message = f"{message} {data}"
        return message


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger once with sensible defaults.

    Parameters mirror ``logging.basicConfig`` with a simplified contract: we default
    to INFO level and a terse format suitable for CLI output. Structured payloads
    passed as ``extra={"data": ...}`` are appended after the message once the
    redaction filter has masked sensitive keys. Pass ``force=True`` to reconfigure
    during tests or specialised entry points.
    """

    handler = logging.StreamHandler()
    handler.addFilter(RedactingFilter())
    handler.setFormatter(
        _DataFormatter("%(asctime)s %(levelname)s [%(name)s] %(message)s", datefmt="%H:%M:%S")
    )
    logging.basicConfig(level=level, handlers=[handler], force=force)
