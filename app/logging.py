import logging
import json
import os
from typing import Any, Dict
from flask import g, has_request_context, request
from opentelemetry.trace import get_current_span


SENSITIVE_KEYS = {"password", "token", "email", "whatsapp_phone", "phone", "session_id"}
REDACTED = "[REDACTED]"


def _request_fields() -> Dict[str, str]:
    if not has_request_context():
        return {"request_id": "n/a", "user_id": "n/a", "path": "n/a"}
    user = getattr(g, "user", None)
    return {
        "request_id": getattr(g, "request_id", None) or "n/a",
        "user_id": str(user.id) if user is not None else "anonymous",
        "path": request.path,
    }


def _trace_fields() -> Dict[str, str]:
    ctx = get_current_span().get_span_context()
    if not ctx.is_valid:
        return {"trace_id": "n/a", "span_id": "n/a"}
    return {"trace_id": format(ctx.trace_id, "032x"), "span_id": format(ctx.span_id, "016x")}


class RequestContextFilter(logging.Filter):
    """Stamp every record with request, caller and trace identifiers."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in {**_request_fields(), **_trace_fields()}.items():
            setattr(record, key, value)
        return True


def mask(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            key: (REDACTED if key in SENSITIVE_KEYS else mask(value))
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [mask(v) for v in data]
    return data


class MaskingFilter(logging.Filter):
    """Redact sensitive keys of dict log messages unless debugging outside production."""

    def filter(self, record: logging.LogRecord) -> bool:
        env = os.getenv("APP_ENV", "development").lower()
        if record.levelno == logging.DEBUG and env != "production":
            return True
        if isinstance(record.msg, dict):
            record.msg = mask(record.msg)
        if isinstance(record.args, dict):
            record.args = mask(record.args)
        return True


class JsonFormatter(logging.Formatter):
    CONTEXT_KEYS = ("request_id", "user_id", "path", "trace_id", "span_id")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        base = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
        }
        for key in self.CONTEXT_KEYS:
            base[key] = getattr(record, key, "n/a")
        if isinstance(record.msg, dict):
            base.update(record.msg)
        else:
            base["message"] = record.getMessage()
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        # checkout events carry Decimal totals and datetimes
        return json.dumps(base, default=str)


def _level(app) -> int:
    level_name = os.getenv("LOG_LEVEL")
    if level_name:
        return getattr(logging, level_name.upper(), logging.INFO)
    return logging.DEBUG if app.config.get("DEBUG") else logging.INFO


def configure_logging(app) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z"))
    handler.addFilter(RequestContextFilter())
    handler.addFilter(MaskingFilter())

    level = _level(app)
    app.logger.handlers.clear()
    app.logger.addHandler(handler)
    app.logger.setLevel(level)

    root = logging.getLogger()
    if not any(isinstance(h.formatter, JsonFormatter) for h in root.handlers):
        root.addHandler(handler)
    root.setLevel(level)

    for name in ("werkzeug", "celery"):
        lib = logging.getLogger(name)
        lib.setLevel(level)
        lib.handlers.clear()
        lib.addHandler(handler)
        lib.propagate = False
