"""JSON logging for the backup service."""

from __future__ import annotations

import copy
import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict

from .diagnostics import sanitize_details
from .http import get_trace_context

SERVICE_LOGGER = "qreport.backup"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line.

    Records emitted while a request is in flight carry its ``trace_id``;
    ``extra_payload`` dictionaries are merged in after redaction.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        trace_id = get_trace_context().get()
        if trace_id:
            payload["trace_id"] = trace_id
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        extra = getattr(record, "extra_payload", None)
        if isinstance(extra, dict):
            payload.update(sanitize_details(extra))
        return json.dumps(payload, ensure_ascii=False, default=str)


LOGGING_CONFIG: Dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "qreport.backup.logging_config.JsonFormatter",
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
        }
    },
    "loggers": {
        "uvicorn.access": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "uvicorn.error": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "apscheduler": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        SERVICE_LOGGER: {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
}


def build_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """Return the dictConfig mapping with the service logger set to ``level``."""

    normalised = level.upper()
    if normalised not in LOG_LEVELS:
        raise ValueError(f"Unsupported log level: {level}")
    config = copy.deepcopy(LOGGING_CONFIG)
    config["loggers"][SERVICE_LOGGER]["level"] = normalised
    return config


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(build_logging_config(level))


__all__ = ["JsonFormatter", "LOGGING_CONFIG", "LOG_LEVELS", "build_logging_config", "configure_logging"]
