from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any

from storefront.core.config import settings

_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

# Nunca deben llegar a los logs, aunque alguien los pase en `extra`
_SECRET_FIELDS = frozenset({"token", "authorization", "password", "credential"})
REDACTED = "***"


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: REDACTED if key.lower() in _SECRET_FIELDS else value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line; `extra` fields nested under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        context = _context(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human readable variant for local debugging (``LOG_JSON=false``)."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if context:
            line += " " + " ".join(f"{key}={value}" for key, value in context.items())
        return line


def setup_logging(level_name: str | None = None, *, json_output: bool | None = None) -> None:
    level = getattr(logging, (level_name or settings.LOG_LEVEL).upper(), logging.INFO)
    use_json = settings.LOG_JSON if json_output is None else json_output

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {"()": JsonFormatter if use_json else ConsoleFormatter},
            },
            "handlers": {
                "stderr": {"class": "logging.StreamHandler", "formatter": "structured"},
            },
            "loggers": {
                "storefront": {"handlers": ["stderr"], "level": level, "propagate": False},
                # httpx logs every request line at INFO; the gateway already logs what matters
                "httpx": {"handlers": ["stderr"], "level": max(level, logging.WARNING), "propagate": False},
            },
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def security_alert(message: str, **context: Any) -> None:
    """Warning on ``storefront.security`` flagged with ``alert=True`` for alerting rules."""
    get_logger("storefront.security").warning(message, extra={"alert": True, **context})
