"""Structured logging configuration for the trace service."""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone


# LoggerAdapter extras the store attaches to every record
CONTEXT_FIELDS = ("request_id", "account_id", "function")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging, one object per line."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "caller": f"{record.module}:{record.lineno}",
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str | None = None) -> None:
    """
    Setup structured logging on stdout.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                   Defaults to GWTRACE_LOG_LEVEL env var or INFO.
    """
    if log_level is None:
        log_level = os.getenv("GWTRACE_LOG_LEVEL", "INFO")

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "gwtrace.logging_config.JSONFormatter",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": log_level.upper(),
            "handlers": ["console"],
        },
    }

    logging.config.dictConfig(logging_config)
