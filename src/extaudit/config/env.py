"""Environment variable loaders for the directory connection settings."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from .errors import InvalidConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence


def _read(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def require_env_vars(names: Sequence[str]) -> dict[str, str]:
    """Return the trimmed values of ``names``; blank values count as missing."""

    values = {name: _read(name) for name in names}
    missing = [name for name, value in values.items() if value is None]
    if missing:
        raise MissingConfigurationError(missing)
    return {name: value for name, value in values.items() if value is not None}


def require_env_var(name: str) -> str:
    return require_env_vars([name])[name]


def optional_env_number[N: (int, float)](name: str, default: N, *, cast: type[N]) -> N:
    """Return a non-negative numeric variable, or ``default`` when unset."""

    raw = _read(name)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError as exc:
        raise InvalidConfigurationError(name, raw, f"expected {cast.__name__}") from exc
    if value < 0:
        raise InvalidConfigurationError(name, raw, "must be non-negative")
    return value
