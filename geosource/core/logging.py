"""Logging configuration helpers."""
from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from typing import Any, Dict

from geosource.core.config import Settings

REDACTED = "[REDACTED]"

SECRET_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "client_secret",
        "code",
        "encryption_key",
        "master_key",
        "authorization",
        "plaintext",
    }
)


class JSONLogFormatter(logging.Formatter):
    """Format log records as JSON strings."""

    def __init__(self, app_env: str) -> None:
        super().__init__()
        self.app_env = app_env
        self._reserved = {
            "args",
            "asctime",
            "created",
            "exc_info",
            "exc_text",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "module",
            "msecs",
            "message",
            "msg",
            "name",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "taskName",
            "thread",
            "threadName",
        }

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - short description inherited
        log_record: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "environment": self.app_env,
        }

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in self._reserved:
                continue
            log_record[key] = redact(key, value)

        return json.dumps(log_record, ensure_ascii=False, default=str)


def redact(key: str, value: Any) -> Any:
    """Mask values whose key names a credential."""

    if _normalise_key(key) in SECRET_KEYS:
        return REDACTED
    if isinstance(value, dict):
        return {inner_key: redact(str(inner_key), inner) for inner_key, inner in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact("", item) for item in value]
    return value


def _normalise_key(key: str) -> str:
    # accessToken and access-token both match access_token
    snake = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", key)
    return snake.replace("-", "_").lower()


def configure_logging(settings: Settings) -> None:
    """Configure application logging to emit JSON formatted logs."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONLogFormatter(settings.app_env))

    logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)

    for logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.setLevel(logging.INFO)
