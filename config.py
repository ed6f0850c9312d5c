"""Configuration management for teleprompt-relay."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict

DEFAULT_MODEL_MAP: Dict[str, str] = {
    "teleprompt-reason": "/api/v1/prompt/optimize_reason_auth",
    "teleprompt-standard": "/api/v1/prompt/optimize_auth",
    "teleprompt-apps": "/api/v1/prompt/optimize_apps_auth",
}


def _env_bool(name: str, default: bool) -> bool:
    """Get boolean environment variable with fallback."""
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    """Get float environment variable with fallback."""
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    """Get integer environment variable with fallback."""
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    """Get string environment variable with fallback."""
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip()


def parse_model_map(raw: str) -> Dict[str, str]:
    """
    Parse a ``name=/path,name=/path`` list into a model table.

    Entries without ``=`` or with an empty side are ignored. Paths are
    normalized to start with a slash.
    """
    table: Dict[str, str] = {}
    for item in raw.split(","):
        name, sep, path = item.partition("=")
        name, path = name.strip(), path.strip()
        if not sep or not name or not path:
            continue
        if not path.startswith("/"):
            path = "/" + path
        table[name] = path
    return table


def _env_model_map(name: str) -> Dict[str, str]:
    v = os.getenv(name, "")
    parsed = parse_model_map(v) if v.strip() else {}
    return parsed or dict(DEFAULT_MODEL_MAP)


@dataclass(frozen=True)
class AppConfig:
    """Application configuration."""

    # Client-facing auth
    api_master_key: str
    auth_disabled: bool

    # Upstream settings
    upstream_base_url: str
    upstream_email: str
    upstream_proxy: str
    user_agent: str
    request_timeout_s: float

    # Model routing
    default_model: str
    model_owner: str

    # Pseudo-streaming
    stream_delay_s: float
    stream_chunk_size: int

    # Server settings
    port: int
    log_level: str
    log_path: str

    model_map: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MODEL_MAP))
    log_color: bool = True

    @property
    def auth_enabled(self) -> bool:
        """Bearer auth is enforced only with a key set and open mode off."""
        return bool(self.api_master_key) and not self.auth_disabled

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from environment variables."""
        return cls(
            api_master_key=_env_str("API_MASTER_KEY", ""),
            auth_disabled=_env_bool("AUTH_DISABLED", False),
            upstream_base_url=_env_str(
                "UPSTREAM_BASE_URL", "https://teleprompt-v2-backend-production.up.railway.app"
            ).rstrip("/"),
            upstream_email=_env_str("UPSTREAM_EMAIL", ""),
            upstream_proxy=_env_str("UPSTREAM_PROXY", ""),
            user_agent=_env_str("USER_AGENT", "teleprompt-relay/1.0.0"),
            request_timeout_s=_env_float("REQUEST_TIMEOUT_S", 60.0),
            default_model=_env_str("DEFAULT_MODEL", "teleprompt-reason"),
            model_owner=_env_str("MODEL_OWNER", "teleprompt-relay"),
            stream_delay_s=_env_int("STREAM_DELAY_MS", 10) / 1000.0,
            stream_chunk_size=_env_int("STREAM_CHUNK_SIZE", 2),
            port=_env_int("PORT", 8000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper().strip(),
            log_path=_env_str("LOG_PATH", "/var/log/teleprompt-relay/teleprompt-relay.log"),
            model_map=_env_model_map("MODEL_MAP"),
            log_color=_env_bool("LOG_COLOR", True),
        )

    def validate(self) -> None:
        """Validate configuration."""
        if not self.upstream_base_url:
            raise ValueError("UPSTREAM_BASE_URL must be non-empty")
        if not self.upstream_base_url.startswith(("http://", "https://")):
            raise ValueError("UPSTREAM_BASE_URL must be an http(s) URL")
        if self.request_timeout_s <= 0:
            raise ValueError("REQUEST_TIMEOUT_S must be > 0")
        if self.stream_delay_s < 0:
            raise ValueError("STREAM_DELAY_MS must be >= 0")
        if self.stream_chunk_size <= 0:
            raise ValueError("STREAM_CHUNK_SIZE must be > 0")
        if not self.model_map:
            raise ValueError("MODEL_MAP must define at least one model")
        if self.default_model not in self.model_map:
            raise ValueError(
                f"DEFAULT_MODEL {self.default_model!r} is not in MODEL_MAP "
                f"({', '.join(sorted(self.model_map))})"
            )
        if not self.log_path:
            raise ValueError("LOG_PATH must be non-empty")
        if not self.user_agent:
            raise ValueError("USER_AGENT must be non-empty")


def load_config() -> AppConfig:
    """Load configuration from environment."""
    return AppConfig.from_env()
