from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .config_schema import LoggingConfig


LOGGER_NAME = "prsync"

# Environment variables for configuration
ENV_LOG_DIR = "PRSYNC_LOG_DIR"
ENV_LOG_LEVEL = "PRSYNC_LOG_LEVEL"
ENV_LOG_MAX_BYTES = "PRSYNC_LOG_MAX_BYTES"
ENV_LOG_BACKUP_COUNT = "PRSYNC_LOG_BACKUP_COUNT"
ENV_LOG_DISABLE_FILE = "PRSYNC_LOG_DISABLE_FILE"

# Defaults
DEFAULT_LOG_DIR = Path.home() / ".prsync" / "logs"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

_logger_initialized = False
_session_start: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _get_log_level() -> int:
    """Get log level from environment, defaulting to INFO."""
    level_name = os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper()
    return getattr(logging, level_name, logging.INFO)


def _get_log_file_path(log_dir: Optional[Path] = None, disable_file: Optional[bool] = None) -> Optional[Path]:
    """Get the log file path, creating directories if needed.

    Returns None if file logging is disabled via PRSYNC_LOG_DISABLE_FILE=1.
    """
    global _session_start
    if disable_file is None:
        disable_file = os.getenv(ENV_LOG_DISABLE_FILE, "").lower() in ("1", "true", "yes")
    if disable_file:
        return None

    if log_dir is None:
        log_dir = Path(os.getenv(ENV_LOG_DIR, DEFAULT_LOG_DIR))
    log_dir.mkdir(parents=True, exist_ok=True)

    if _session_start is None:
        _session_start = _utcnow().strftime("%Y-%m-%d_%H%M%S")
    # Session-based filename: prsync_2024-01-15_143022.log
    return log_dir / f"prsync_{_session_start}.log"

def _install_handlers(
    logger: logging.Logger,
    *,
    level: int,
    log_file: Optional[Path],
    max_bytes: int,
    backup_count: int,
) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)

    formatter = logging.Formatter(
        "[%(levelname)s %(asctime)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S"
    )

    if log_file:
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    # Warnings and above also go to stderr
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(max(level, logging.WARNING))
    logger.addHandler(stream_handler)


def _get_logger() -> logging.Logger:
    """Get or initialize the prsync logger.

    By default, logs to ~/.prsync/logs/prsync_<session>.log

    Configuration via environment variables:
    - PRSYNC_LOG_DIR: Directory for log files (default: ~/.prsync/logs/)
    - PRSYNC_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - PRSYNC_LOG_MAX_BYTES: Max log file size before rotation (default: 10MB)
    - PRSYNC_LOG_BACKUP_COUNT: Number of backup files to keep (default: 5)
    - PRSYNC_LOG_DISABLE_FILE: Set to 1 to disable file logging (stderr only)

    ``configure_logging`` replaces this setup with values from the
    ``[logging]`` config section.
    """
    global _logger_initialized
    logger = logging.getLogger(LOGGER_NAME)

    if not _logger_initialized:
        _logger_initialized = True
        _install_handlers(
            logger,
            level=_get_log_level(),
            log_file=_get_log_file_path(),
            max_bytes=int(os.getenv(ENV_LOG_MAX_BYTES, DEFAULT_MAX_BYTES)),
            backup_count=int(os.getenv(ENV_LOG_BACKUP_COUNT, DEFAULT_BACKUP_COUNT)),
        )

    return logger


def configure_logging(settings: "LoggingConfig") -> logging.Logger:
    """(Re)configure the prsync logger from a ``[logging]`` config section."""
    global _logger_initialized
    logger = logging.getLogger(LOGGER_NAME)
    _logger_initialized = True
    _install_handlers(
        logger,
        level=getattr(logging, settings.level, logging.INFO),
        log_file=_get_log_file_path(
            Path(settings.dir).expanduser() if settings.dir else None,
            settings.disable_file,
        ),
        max_bytes=settings.max_bytes,
        backup_count=settings.backup_count,
    )
    return logger


def log_action(
    action: str,
    *,
    outcome: str = "ok",
    duration_ms: Optional[float] = None,
    **fields: Any,
) -> None:
    """Emit a structured log line for an action.

    Fields are serialized to JSON; non-JSON values fall back to ``str``.

    Args:
        action: Name of the action being logged (e.g. "checkout.fork")
        outcome: Result status ("ok", "error", etc.)
        duration_ms: How long the action took in milliseconds
        **fields: Additional fields to include (repo, branch, pr, remote...)
    """
    payload: Dict[str, Any] = {
        "ts": _utcnow().isoformat().replace("+00:00", "Z"),
        "action": action,
        "outcome": outcome,
    }
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 2)
    if fields:
        payload.update(fields)

    _get_logger().info(json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))


def _format(message: str, fields: Dict[str, Any]) -> str:
    if not fields:
        return message
    return f"{message} " + json.dumps(fields, separators=(",", ":"), sort_keys=True, default=str)


def log_debug(message: str, **fields: Any) -> None:
    """Log a debug message with optional structured fields.

    Only emitted when log level is DEBUG.
    """
    logger = _get_logger()
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(_format(message, fields))


def log_warning(message: str, **fields: Any) -> None:
    """Log a warning message with optional structured fields."""
    _get_logger().warning(_format(message, fields))


@contextmanager
def timeit(action: str, **fields: Any):
    """Time a block and emit a structured log on exit.

    On exception, logs outcome="error" with the exception type and re-raises.

    Yields:
        A dict whose entries are merged into the emitted log line
    """
    start = time.perf_counter()
    result_info: Dict[str, Any] = {}
    try:
        yield result_info
    except BaseException as exc:
        duration_ms = (time.perf_counter() - start) * 1000.0
        outcome = "cancelled" if isinstance(exc, asyncio.CancelledError) else "error"
        log_action(
            action,
            outcome=outcome,
            duration_ms=duration_ms,
            **{**fields, **result_info, "error": type(exc).__name__},
        )
        raise
    duration_ms = (time.perf_counter() - start) * 1000.0
    log_action(action, outcome="ok", duration_ms=duration_ms, **{**fields, **result_info})
