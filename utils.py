"""Startup helpers for teleprompt-relay."""

from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv

from config import AppConfig
from logger import LOGGER_NAME, mask_secret

log = logging.getLogger(LOGGER_NAME)


def load_env_files() -> None:
    """Load .env files from program and current directory."""
    this_dir = Path(__file__).resolve().parent
    p1 = this_dir / ".env"
    p2 = Path.cwd() / ".env"

    loaded_any = False
    if p1.exists():
        loaded_any = load_dotenv(dotenv_path=str(p1), override=True) or loaded_any
        log.info("Loaded .env from %s", str(p1))

    if p2.exists() and p2 != p1:
        loaded_any = load_dotenv(dotenv_path=str(p2), override=True) or loaded_any
        log.info("Loaded .env from %s", str(p2))

    if not loaded_any:
        log.info(".env not loaded (not found or no variables applied).")


def dump_config(config: AppConfig) -> None:
    """Log effective configuration at startup."""
    log.info("=== teleprompt-relay startup config ===")
    log.info("UPSTREAM_BASE_URL=%s", config.upstream_base_url)
    log.info(
        "UPSTREAM_EMAIL_set=%s value=%s",
        bool(config.upstream_email),
        mask_secret(config.upstream_email),
    )
    log.info("UPSTREAM_PROXY=%s", config.upstream_proxy or "-")
    log.info("USER_AGENT=%s", config.user_agent)
    log.info("REQUEST_TIMEOUT_S=%s", config.request_timeout_s)
    log.info(
        "API_MASTER_KEY_set=%s value=%s len=%s",
        bool(config.api_master_key),
        mask_secret(config.api_master_key),
        len(config.api_master_key or ""),
    )
    if not config.auth_enabled:
        log.warning(
            "Client auth is DISABLED (AUTH_DISABLED=%s, key set=%s); /v1 is open to anyone.",
            config.auth_disabled,
            bool(config.api_master_key),
        )
    for name, path in config.model_map.items():
        marker = " (default)" if name == config.default_model else ""
        log.info("MODEL %s -> %s%s", name, path, marker)
    log.info("STREAM_DELAY_S=%s", config.stream_delay_s)
    log.info("STREAM_CHUNK_SIZE=%s", config.stream_chunk_size)
    log.info("LOG_LEVEL=%s", config.log_level)
    log.info("LOG_PATH=%s", config.log_path)
    log.info("WorkingDir=%s", str(Path.cwd()))
    log.info("=======================================")
