"""
Configuration management for the stats dashboard.

Loads configuration from a TOML file, fills in defaults, applies
``MAXHASH_*`` environment overrides and provides structured access.
"""

from __future__ import annotations

import copy
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import tomli
import tomli_w

from .web.proxy import parse_target_url

logger = structlog.get_logger(__name__)

ENV_PREFIX = "MAXHASH_"

LOG_LEVELS = ("debug", "info", "warning", "error")

DEFAULTS: dict[str, Any] = {
    "log_level": "info",
    "http": {
        "addr": "[::]:8080",
        "shutdown_grace": "15s",
        "rate_limiter": {
            "enabled": False,
            "rps": 5.0,
            "burst": 10,
        },
        "cache": {
            "enabled": True,
            "ttl": "1m",
        },
        "proxy": {
            "enabled": False,
            "target_host_url": "http://main.maxhash.io:8080",
            "max_connections": 100,
            "max_keepalive_connections": 100,
            "keepalive_expiry": "1m",
            "connect_timeout": "5s",
            "timeout": "10s",
        },
    },
    "ckpool": {
        "log_dir": "/var/log/ckpool",
    },
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_duration(value: Any, *, key: str) -> float:
    """Convert seconds (int/float) or a duration string like ``"1m30s"`` into seconds."""
    if isinstance(value, bool):
        raise ValueError(f"{key} must be a duration, got {value!r}")
    if isinstance(value, int | float):
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a duration, got {value!r}")

    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass

    sign = 1.0
    if text.startswith("-"):
        sign, text = -1.0, text[1:]
    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if not text or position != len(text):
        raise ValueError(f"{key} must be a duration such as '30s', '1m' or '1h30m', got {value!r}")
    return sign * total


def _as_bool(value: Any, *, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"{key} must be a boolean, got {value!r}")


def _as_int(value: Any, *, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def _as_float(value: Any, *, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return float(value)


def _as_str(value: Any, *, key: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value


@dataclass
class RateLimiterConfig:
    """Global token bucket settings."""

    enabled: bool
    rps: float
    burst: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RateLimiterConfig:
        config = cls(
            enabled=_as_bool(data["enabled"], key="http.rate_limiter.enabled"),
            rps=_as_float(data["rps"], key="http.rate_limiter.rps"),
            burst=_as_int(data["burst"], key="http.rate_limiter.burst"),
        )
        if config.enabled:
            if config.rps <= 0:
                raise ValueError("http.rate_limiter.rps must be greater than 0 when rate limiting is enabled")
            if config.burst < 1:
                raise ValueError("http.rate_limiter.burst must be at least 1 when rate limiting is enabled")
        return config


@dataclass
class CacheConfig:
    """Response cache settings."""

    enabled: bool
    ttl: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CacheConfig:
        config = cls(
            enabled=_as_bool(data["enabled"], key="http.cache.enabled"),
            ttl=parse_duration(data["ttl"], key="http.cache.ttl"),
        )
        if config.enabled and config.ttl <= 0:
            raise ValueError("http.cache.ttl must be greater than 0 when caching is enabled")
        return config


@dataclass
class ProxyConfig:
    """Reverse proxy settings."""

    enabled: bool
    target_host_url: str
    max_connections: int
    max_keepalive_connections: int
    keepalive_expiry: float
    connect_timeout: float
    timeout: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProxyConfig:
        config = cls(
            enabled=_as_bool(data["enabled"], key="http.proxy.enabled"),
            target_host_url=_as_str(data["target_host_url"], key="http.proxy.target_host_url").strip(),
            max_connections=_as_int(data["max_connections"], key="http.proxy.max_connections"),
            max_keepalive_connections=_as_int(
                data["max_keepalive_connections"], key="http.proxy.max_keepalive_connections"
            ),
            keepalive_expiry=parse_duration(data["keepalive_expiry"], key="http.proxy.keepalive_expiry"),
            connect_timeout=parse_duration(data["connect_timeout"], key="http.proxy.connect_timeout"),
            timeout=parse_duration(data["timeout"], key="http.proxy.timeout"),
        )
        if config.enabled:
            parse_target_url(config.target_host_url)
            if config.max_connections < 1:
                raise ValueError("http.proxy.max_connections must be at least 1")
            if config.max_keepalive_connections < 0:
                raise ValueError("http.proxy.max_keepalive_connections must not be negative")
            if config.connect_timeout <= 0 or config.timeout <= 0:
                raise ValueError("http.proxy timeouts must be greater than 0")
        return config


@dataclass
class HTTPConfig:
    """HTTP listener settings."""

    addr: str
    shutdown_grace: float
    rate_limiter: RateLimiterConfig
    cache: CacheConfig
    proxy: ProxyConfig


@dataclass
class CKPoolConfig:
    """Location of the ckpool status files."""

    log_dir: str

    @property
    def log_dir_path(self) -> Path:
        return Path(os.path.expanduser(self.log_dir))


@dataclass
class DashboardConfig:
    """Complete dashboard configuration."""

    log_level: str
    http: HTTPConfig
    ckpool: CKPoolConfig

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DashboardConfig:
        """Create configuration from a parsed TOML dictionary merged over ``DEFAULTS``."""
        merged = _deep_merge(DEFAULTS, data)

        log_level = _as_str(merged["log_level"], key="log_level").strip().lower()
        if log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {merged['log_level']!r}")

        http_data = merged["http"]
        shutdown_grace = parse_duration(http_data["shutdown_grace"], key="http.shutdown_grace")
        if shutdown_grace < 0:
            raise ValueError("http.shutdown_grace must not be negative")

        log_dir = _as_str(merged["ckpool"]["log_dir"], key="ckpool.log_dir").strip()
        if not log_dir:
            raise ValueError("ckpool.log_dir is not set")

        return cls(
            log_level=log_level,
            http=HTTPConfig(
                addr=_as_str(http_data["addr"], key="http.addr").strip(),
                shutdown_grace=shutdown_grace,
                rate_limiter=RateLimiterConfig.from_dict(http_data["rate_limiter"]),
                cache=CacheConfig.from_dict(http_data["cache"]),
                proxy=ProxyConfig.from_dict(http_data["proxy"]),
            ),
            ckpool=CKPoolConfig(log_dir=log_dir),
        )

    @classmethod
    def load(cls, config_path: str | Path, environ: Mapping[str, str] | None = None) -> DashboardConfig:
        """Load configuration from a TOML file, writing one with defaults if it does not exist."""
        path = Path(config_path)
        if not path.exists():
            write_default_config(path)
            logger.warning("Wrote default config", path=str(path))

        with path.open("rb") as f:
            data = tomli.load(f)

        merged = _deep_merge(DEFAULTS, data)
        apply_env_overrides(merged, os.environ if environ is None else environ)
        return cls.from_dict(merged)


def write_default_config(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("xb") as f:
        tomli_w.dump(DEFAULTS, f)


def env_var_name(key: str) -> str:
    return ENV_PREFIX + key.upper().replace(".", "_")


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> None:
    """Override every default key from ``MAXHASH_<KEY>`` (dots become underscores) in place."""
    for key, default in _flatten(DEFAULTS):
        raw = environ.get(env_var_name(key))
        if raw is None:
            continue
        *parents, leaf = key.split(".")
        target = data
        for parent in parents:
            target = target.setdefault(parent, {})
        target[leaf] = _coerce_env(raw, default, key=key)


def _coerce_env(raw: str, default: Any, *, key: str) -> Any:
    name = env_var_name(key)
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"{name} must be a boolean, got {raw!r}")
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError as exc:
            raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if isinstance(default, float):
        try:
            return float(raw)
        except ValueError as exc:
            raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    return raw


def _flatten(data: Mapping[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    items: list[tuple[str, Any]] = []
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, Mapping):
            items.extend(_flatten(value, prefix=f"{dotted}."))
        else:
            items.append((dotted, value))
    return items


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
