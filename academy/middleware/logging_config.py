"""
Structured logging configuration.

Two output formats share one record shape:

- ``text``: single line per record, level highlighted, for a terminal
- ``json``: one JSON object per record, for log shipping

Records emitted while a request is active are stamped with the request id
and the caller's identity by ``RequestContextFilter``, so service-layer
log lines can be correlated with the access log written by
``academy.middleware.timing``.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Attributes copied from the record into JSON output when present
_CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "role",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "event_type",
    "security_code",
)

_LEVEL_STYLE = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[34m",
    logging.WARNING: "\033[33;1m",
    logging.ERROR: "\033[31;1m",
    logging.CRITICAL: "\033[41;97m",
}
_PLAIN = "\033[0m"


class RequestContextFilter(logging.Filter):
    """Attach request id and identity to every record logged inside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            identity = getattr(g, "identity", None)
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "user_id", None) is None and identity is not None:
                record.user_id = identity.id
                record.role = identity.role
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "src": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update({
            field: getattr(record, field)
            for field in _CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    def __init__(self, color: bool = True):
        super().__init__(datefmt="%H:%M:%S")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<7}"
        if self.color:
            level = f"{_LEVEL_STYLE.get(record.levelno, '')}{level}{_PLAIN}"

        parts = [self.formatTime(record, self.datefmt), level, f"{record.name}:"]
        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(f"[{request_id}]")
        parts.append(record.getMessage())

        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _resolve(app) -> tuple[int, str]:
    testing = app.config.get("TESTING", False)
    debug = app.config.get("DEBUG", False)

    fmt = (app.config.get("LOG_FORMAT") or ("text" if debug or testing else "json")).lower()
    default_level = "WARNING" if testing else ("DEBUG" if debug else "INFO")
    level_name = (app.config.get("LOG_LEVEL") or default_level).upper()
    return logging.getLevelNamesMapping().get(level_name, logging.INFO), fmt


def configure_logging(app):
    """Install one stderr handler on the root logger for this app."""
    level, fmt = _resolve(app)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        JSONFormatter() if fmt == "json" else ReadableFormatter(color=sys.stderr.isatty())
    )
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)

    for chatty in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(chatty).setLevel(max(level, logging.WARNING))

    app.logger.debug("Logging ready (level=%s, format=%s)", logging.getLevelName(level), fmt)
