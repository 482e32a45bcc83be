"""
Structured logging configuration.

- Development / testing: one line per record, context as ``key=value`` pairs
- Production: JSON lines for the log aggregator
- Log level: LOG_LEVEL env variable

Services pass case/provider context through ``extra=``.  Inside a request
the filter below also stamps the authenticated user and the request path,
so a failed CRM sync or translation can be traced back to who triggered it.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# Order is the order they appear in readable output.
_CONTEXT_KEYS = ("case_id", "user_id", "provider", "path")

_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "openpyxl")


class RequestContextFilter(logging.Filter):
    """Fill ``user_id`` and ``path`` from the current request when absent."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        if getattr(record, "user_id", None) is None:
            user = g.get("current_user")
            if user is not None:
                record.user_id = user.id
        if getattr(record, "path", None) is None:
            record.path = f"{request.method} {request.path}"
        return True


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in _CONTEXT_KEYS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 WARNING  app.services.crm_service: msg  case=4 provider=insightly``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{ts} {record.levelname:<8} {record.name}: {record.getMessage()}"
        context = " ".join(f"{k}={v}" for k, v in _context(record).items())
        if context:
            line += f"  {context}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    # Cleared first so repeated create_app() in tests does not stack handlers.
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "json" if is_prod else "readable")
