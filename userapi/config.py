"""Configuration management for the user directory service."""
from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger("userapi.config")

DEFAULT_TOKEN_TTL = timedelta(hours=1)
DEFAULT_RATE_LIMIT_WINDOW = timedelta(minutes=1)
DEFAULT_RATE_LIMIT_CEILING = 120
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

# Maps environment variables onto the keys accepted by ``Settings.from_dict``.
_ENV_KEYS = {
    "USERAPI_DB_PATH": "database_path",
    "USERAPI_TOKEN_SECRET": "token_secret",
    "USERAPI_TOKEN_TTL": "token_ttl",
    "USERAPI_HOST": "host",
    "USERAPI_PORT": "port",
    "USERAPI_RATE_LIMIT_WINDOW": "rate_limit_window",
    "USERAPI_RATE_LIMIT_CEILING": "rate_limit_ceiling",
    "USERAPI_LOG_LEVEL": "log_level",
}


class ConfigError(ValueError):
    """Raised when configuration values are missing or malformed."""


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "userapi.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "userapi.yaml").resolve(strict=False)


def _seconds(value: object, name: str) -> timedelta:
    try:
        seconds = int(str(value).strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be a whole number of seconds") from exc
    if seconds <= 0:
        raise ConfigError(f"{name} must be positive")
    return timedelta(seconds=seconds)


def _integer(value: object, name: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer") from exc


@dataclass(frozen=True)
class Settings:
    """Runtime settings handed explicitly to each service at construction."""

    database_path: Path
    token_secret: str = field(repr=False)
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    host: str = "0.0.0.0"
    port: int = 8000
    rate_limit_window: timedelta = DEFAULT_RATE_LIMIT_WINDOW
    rate_limit_ceiling: int = DEFAULT_RATE_LIMIT_CEILING
    log_level: str = "INFO"

    @staticmethod
    def from_dict(data: Mapping[str, Any], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw values, applying defaults for absent keys."""

        raw_db_path = data.get("database_path")
        if raw_db_path:
            candidate = Path(str(raw_db_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        secret = str(data.get("token_secret") or "").strip()
        if not secret:
            logger.warning(
                "No token secret configured; generated an ephemeral one. "
                "Issued tokens will not survive a restart."
            )
            secret = secrets.token_urlsafe(48)

        port = _integer(data.get("port", 8000), "port")
        if not 1 <= port <= 65535:
            raise ConfigError("port must be between 1 and 65535")

        ceiling = _integer(data.get("rate_limit_ceiling", DEFAULT_RATE_LIMIT_CEILING), "rate_limit_ceiling")

        token_ttl = DEFAULT_TOKEN_TTL
        if data.get("token_ttl") is not None:
            token_ttl = _seconds(data["token_ttl"], "token_ttl")

        window = DEFAULT_RATE_LIMIT_WINDOW
        if data.get("rate_limit_window") is not None:
            window = _seconds(data["rate_limit_window"], "rate_limit_window")

        log_level = str(data.get("log_level") or "INFO").strip().upper()
        if log_level not in _LOG_LEVELS:
            raise ConfigError(f"Unknown log level '{log_level}'")

        return Settings(
            database_path=database_path,
            token_secret=secret,
            token_ttl=token_ttl,
            host=str(data.get("host") or "0.0.0.0"),
            port=port,
            rate_limit_window=window,
            rate_limit_ceiling=ceiling,
            log_level=log_level,
        )


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from the optional YAML file, then apply environment overrides."""

    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get("USERAPI_CONFIG"))

    raw: Dict[str, Any] = {}
    base_path: Path | None = None
    if config_path.is_file():
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Configuration file {config_path} must contain a mapping")
        raw.update(loaded)
        base_path = config_path.parent

    for env_name, key in _ENV_KEYS.items():
        value = env.get(env_name)
        if value:
            raw[key] = value

    return Settings.from_dict(raw, base_path=base_path)


__all__ = [
    "ConfigError",
    "Settings",
    "load_settings",
    "resolve_config_path",
    "resolve_database_path",
]
