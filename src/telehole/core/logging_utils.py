from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@dataclass(frozen=True)
class LogConfig:
    path: Optional[Path] = None
    level: str = "INFO"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 3


def _coerce(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_coerce(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _coerce(item) for key, item in value.items()}
    return str(value)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """Emit a single structured log line: ``{"event": ..., **fields}``."""
    if not logger.isEnabledFor(level):
        return
    exc = fields.pop("exc", None)
    payload: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        payload[key] = _coerce(value)
    if isinstance(exc, BaseException):
        payload["error"] = str(exc)
        payload["error_type"] = type(exc).__name__
    elif exc is not None:
        payload["error"] = str(exc)
    try:
        message = json.dumps(payload, ensure_ascii=True, sort_keys=False)
    except (TypeError, ValueError):
        message = str(payload)
    logger.log(level, message)


def setup_logger(name: str, config: LogConfig) -> logging.Logger:
    logger = logging.getLogger(name)
    level = logging.getLevelName(config.level.upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_LOG_FORMAT)
    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if config.path is not None:
        config.path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    return logger
