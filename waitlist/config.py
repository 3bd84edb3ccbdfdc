"""Settings for the waitlist client, read from environment variables once."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlparse

DEFAULT_TABLE            = "signups"
DEFAULT_CHANNEL          = "signups_changed"
DEFAULT_CACHE_TTL        = 300.0
DEFAULT_REFRESH_INTERVAL = 30.0
DEFAULT_HTTP_TIMEOUT     = 10.0
DEFAULT_LOG_LEVEL        = "INFO"

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigurationError(Exception):
    """Raised when required settings are missing or malformed."""
    pass


def require_backend_url(url: str | None) -> str:
    """Return the URL without a trailing slash, or fail if it is not http(s)."""
    if not url or not url.strip():
        raise ConfigurationError("SUPABASE_URL is required")
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"SUPABASE_URL must be an http(s) URL, got {url!r}")
    return url.strip().rstrip("/")


def require_api_key(key: str | None) -> str:
    if not key or not key.strip():
        raise ConfigurationError("SUPABASE_ANON_KEY is required")
    return key.strip()


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive finite number, got {raw!r}")
    return value


def _log_level(env: Mapping[str, str]) -> str:
    level = (env.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).strip().upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
    return level


@dataclass(frozen=True)
class Settings:
    backend_url:      str
    api_key:          str
    database_url:     str | None = None
    table:            str = DEFAULT_TABLE
    channel:          str = DEFAULT_CHANNEL
    cache_ttl:        float = DEFAULT_CACHE_TTL
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    http_timeout:     float = DEFAULT_HTTP_TIMEOUT
    log_level:        str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """
        Build settings from the environment.
        Fails fast with ConfigurationError rather than falling back to a
        client that can never reach the backend.
        """
        env = os.environ if env is None else env
        return cls(
            backend_url      = require_backend_url(env.get("SUPABASE_URL")),
            api_key          = require_api_key(env.get("SUPABASE_ANON_KEY")),
            database_url     = env.get("DATABASE_URL") or None,
            table            = env.get("SIGNUPS_TABLE") or DEFAULT_TABLE,
            channel          = env.get("SIGNUPS_CHANNEL") or DEFAULT_CHANNEL,
            cache_ttl        = _positive_float(env, "COUNT_CACHE_TTL", DEFAULT_CACHE_TTL),
            refresh_interval = _positive_float(env, "COUNTER_REFRESH_INTERVAL", DEFAULT_REFRESH_INTERVAL),
            http_timeout     = _positive_float(env, "HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            log_level        = _log_level(env),
        )
