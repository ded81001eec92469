"""
Logging setup for the phase workflow service.

Development prints one readable line per record; any other non-test run
emits JSON lines. Request and workflow ids passed through ``extra=`` are
carried into the JSON output.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Extra fields copied from ``logger.x(..., extra={...})`` into JSON output
CONTEXT_FIELDS = (
    "request_id",
    "tenant_id",
    "user_id",
    "project_id",
    "phase_id",
    "sub_phase_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)

_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({
            key: getattr(record, key)
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger (request_id): message [duration]`` for local runs."""

    def __init__(self):
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        rid = getattr(record, "request_id", None)
        duration = getattr(record, "duration_ms", None)
        line = "{} {:<8} {}{}: {}{}".format(
            self.formatTime(record, self.datefmt),
            record.levelname,
            record.name,
            f" ({rid})" if rid else "",
            record.getMessage(),
            f" [{duration:.0f}ms]" if duration is not None else "",
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    Level comes from ``LOG_LEVEL`` (DEBUG in development, INFO otherwise).
    """
    is_testing = app.config.get("TESTING", False)
    is_dev = app.config.get("DEBUG", False) or is_testing

    level_name = (app.config.get("LOG_LEVEL") or ("DEBUG" if is_dev else "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ReadableFormatter() if is_dev else JSONFormatter())

    # cleared first so repeated create_app() calls in tests do not stack handlers
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "readable" if is_dev else "JSON")
