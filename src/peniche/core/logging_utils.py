from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

LOG_LEVEL_ENV = "PENICHE_LOG_LEVEL"
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_MAX_VALUE_CHARS = 500


@dataclass(frozen=True)
class LogConfig:
    path: Path
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 3
    level: int = logging.INFO


def sanitize_log_value(value: Any, *, max_chars: int = _MAX_VALUE_CHARS) -> str:
    """Render a field value on a single line, bounded in length."""
    if isinstance(value, BaseException):
        text = f"{type(value).__name__}: {value}"
    elif isinstance(value, Path):
        text = str(value)
    elif isinstance(value, (list, tuple)):
        text = ",".join(str(item) for item in value)
    else:
        text = str(value)
    text = text.replace("\r", "\\r").replace("\n", "\\n")
    if len(text) > max_chars:
        text = text[: max_chars - 3] + "..."
    if not text or any(ch.isspace() for ch in text):
        text = f'"{text}"'
    return text


def format_event(event: str, **fields: Any) -> str:
    if not fields:
        return event
    parts = [event]
    for key, value in fields.items():
        if value is None:
            continue
        parts.append(f"{key}={sanitize_log_value(value)}")
    return " ".join(parts)


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Emit a structured ``event key=value ...`` record."""
    if not logger.isEnabledFor(level):
        return
    safe_log(logger, level, format_event(event, **fields))


def safe_log(
    logger: logging.Logger,
    level: int,
    message: str,
    *args: Any,
    exc: Optional[BaseException] = None,
) -> None:
    try:
        if exc is not None:
            logger.log(level, message, *args, exc_info=exc)
        else:
            logger.log(level, message, *args)
    except Exception:
        # Logging must never take down the caller.
        pass


def resolve_log_level(value: Optional[str], default: int = logging.WARNING) -> int:
    raw = value if value is not None else os.environ.get(LOG_LEVEL_ENV)
    if raw is None:
        return default
    text = str(raw).strip().upper()
    if not text:
        return default
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text)
    if isinstance(level, int):
        return level
    raise ValueError(f"Unknown log level: {raw}")


def setup_rotating_logger(name: str, config: LogConfig) -> logging.Logger:
    """Attach a rotating file handler for ``config.path`` to logger ``name``.

    Repeated calls with the same path reuse the existing handler.
    """
    logger = logging.getLogger(name)
    log_path = config.path.expanduser().resolve()
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler) and Path(
            handler.baseFilename
        ) == log_path:
            return logger
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
    handler.setLevel(config.level)
    logger.addHandler(handler)
    if logger.level == logging.NOTSET or logger.level > config.level:
        logger.setLevel(config.level)
    return logger


def setup_console_logging(name: str, level: int) -> logging.Logger:
    """Route ``name`` records at ``level`` and above to stderr."""
    logger = logging.getLogger(name)
    # The previous stderr may already be closed; swap in a fresh handler.
    for handler in list(logger.handlers):
        if getattr(handler, "_peniche_console", False):
            logger.removeHandler(handler)
            handler.close()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))
    handler.setLevel(level)
    handler._peniche_console = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    if logger.level == logging.NOTSET or logger.level > level:
        logger.setLevel(level)
    return logger
