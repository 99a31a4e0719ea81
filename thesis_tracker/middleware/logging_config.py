"""
Logging setup for the tracker.

Development and testing get a short colored line per record; production gets
one JSON object per line for the log shipper.  LOG_LEVEL overrides the level
in every environment.

Request-scoped fields (request id, method, path, week id ...) reach the
formatters either through ``extra=`` or, for the request id, through
:class:`RequestContextFilter`.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Attributes copied from a record into the JSON payload when present
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "week_id",
    "entity_type",
)

QUIET_LOGGERS = ("werkzeug", "urllib3", "sqlalchemy.engine", "alembic")


class RequestContextFilter(logging.Filter):
    """Stamp ``request_id`` from ``flask.g`` onto records logged during a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        payload.update(
            (name, getattr(record, name))
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [12ms] (req=abc123)`` in color."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        color = self.LEVEL_COLORS.get(record.levelno, "")
        line = f"{color}{stamp} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        request_id = getattr(record, "request_id", None)
        if request_id:
            line += f" (req={request_id})"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _is_production(app) -> bool:
    return not app.debug and not app.testing


def _resolve_level(app) -> tuple[str, int]:
    default = "INFO" if _is_production(app) else "DEBUG"
    name = os.getenv("LOG_LEVEL", default).upper()
    return name, getattr(logging, name, logging.INFO)


def configure_logging(app):
    """Install one stderr handler on the root logger for *app*.

    Safe to call repeatedly: existing root handlers are replaced, so tests
    that build several apps do not duplicate output.
    """
    level_name, level = _resolve_level(app)
    json_output = _is_production(app)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_output else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.testing:
        app.logger.info("Logging ready: level=%s output=%s",
                        level_name, "json" if json_output else "text")
