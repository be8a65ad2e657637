"""Application configuration helpers."""

from __future__ import annotations

from .directory import DirectoryConfig, get_directory_config
from .env import require_env_var, require_env_vars
from .errors import ConfigurationError, InvalidConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy, ThrottlePolicy
from .logging import RedactingFilter, configure_logging, redact

__all__ = [
    "ConfigurationError",
    "DirectoryConfig",
    "InvalidConfigurationError",
    "MissingConfigurationError",
    "RateLimit",
    "RedactingFilter",
    "ResilienceConfig",
    "RetryPolicy",
    "ThrottlePolicy",
    "configure_logging",
    "get_directory_config",
    "redact",
    "require_env_var",
    "require_env_vars",
]
