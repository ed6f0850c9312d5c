"""Logging setup for teleprompt-relay: one handler shared by the app and uvicorn."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import List

import colorlog

from config import AppConfig

LOGGER_NAME = "teleprompt"

# uvicorn's own loggers write into the same file as the relay.
UVICORN_LOGGERS = ("uvicorn.error", "uvicorn.access")

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s - %(message)s"
LOG_MAX_BYTES = 1_048_576
LOG_BACKUP_COUNT = 3

_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _managed_loggers() -> List[logging.Logger]:
    return [logging.getLogger(LOGGER_NAME)] + [logging.getLogger(n) for n in UVICORN_LOGGERS]


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.upper().strip())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(config: AppConfig) -> logging.Logger:
    """
    Point the ``teleprompt`` logger and uvicorn's loggers at one rotating file.

    The file is LOG_PATH (1 MB, 3 backups); its directory is created when
    missing. If it still cannot be opened, output goes to stderr instead.
    LOG_LEVEL=DISABLE silences all logging.
    """
    loggers = _managed_loggers()
    for lg in loggers:
        lg.handlers.clear()
        lg.propagate = False

    if config.log_level.upper().strip() == "DISABLE":
        logging.disable(logging.CRITICAL)
        for lg in loggers:
            lg.addHandler(logging.NullHandler())
        return loggers[0]

    logging.disable(logging.NOTSET)
    level = _resolve_level(config.log_level)

    handler, fallback_err = _create_log_handler(config.log_path)
    handler.setFormatter(_create_log_formatter(config.log_color))
    for lg in loggers:
        lg.setLevel(level)
        lg.addHandler(handler)

    log = loggers[0]
    if fallback_err is not None:
        log.warning(
            "Failed to open log file %r (%s). Falling back to stderr logging.",
            config.log_path,
            fallback_err,
        )
    return log


def _create_log_handler(log_path: str) -> tuple[logging.Handler, OSError | None]:
    """Rotating file handler, or a stderr StreamHandler if the file is unusable."""
    try:
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        return RotatingFileHandler(
            log_path,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
            errors="backslashreplace",
        ), None
    except OSError as e:
        return logging.StreamHandler(), e


def _create_log_formatter(use_color: bool) -> logging.Formatter:
    if use_color:
        return colorlog.ColoredFormatter(
            "%(log_color)s" + LOG_FORMAT.replace("%(levelname)-8s", "%(levelname)-8s%(reset)s"),
            reset=True,
            log_colors=_LOG_COLORS,
        )
    return logging.Formatter(LOG_FORMAT)


def mask_secret(s: str, keep_start: int = 6, keep_end: int = 4) -> str:
    """Mask a secret string, keeping only start and end characters."""
    s = (s or "").strip()
    if not s:
        return ""
    if len(s) <= keep_start + keep_end:
        return "*" * len(s)
    return f"{s[:keep_start]}...{s[-keep_end:]}"
