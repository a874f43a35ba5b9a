"""
Log output for the stepwise service.

One stderr handler on the root logger. Lines are JSON objects in production
(or when LOG_FORMAT=json) and short colored lines otherwise, so request and
ordering fields such as ``request_id`` or ``test_case_id`` stay searchable.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# LogRecord attributes set through ``extra=`` that JSON lines carry along
_EXTRA_KEYS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "actor",
    "project_id",
    "test_case_id",
    "operation",
)

_LIBRARY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(
            (key, getattr(record, key))
            for key in _EXTRA_KEYS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [Nms]`` with the level colored."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        line = (
            f"{color}{datetime.now():%H:%M:%S} {record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}"
        )
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _wants_json(app, is_prod: bool) -> bool:
    log_format = (app.config.get("LOG_FORMAT") or "").lower()
    if log_format == "json":
        return True
    return is_prod and log_format != "readable"


def configure_logging(app):
    """
    Install the stderr handler and set levels for ``app``.

    LOG_LEVEL is read from the app config, then the environment; it defaults
    to INFO in production and DEBUG elsewhere. LOG_FORMAT=readable keeps
    plain lines in production.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = (
        app.config.get("LOG_LEVEL")
        or os.getenv("LOG_LEVEL")
        or ("INFO" if is_prod else "DEBUG")
    )
    level = getattr(logging, level_name.upper(), logging.INFO)
    use_json = _wants_json(app, is_prod)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json else ReadableFormatter())
    handler.setLevel(level)

    # a second call replaces the handler instead of stacking another
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info(
            "Logging configured: level=%s format=%s", level_name, "json" if use_json else "readable",
        )
