"""
Structured Logging Configuration

JSON lines in production / staging, a readable single-line format in dev.
Every line carries the request id, and the user / profile ids once the
request has been authenticated. Verification tokens and bearer credentials
are redacted before a message is written.
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from typing import Any

from app.config import settings

# ── Context variables for request tracking ──
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
user_id_ctx: ContextVar[str] = ContextVar("user_id", default="-")
profile_id_ctx: ContextVar[str] = ContextVar("profile_id", default="-")


def generate_request_id() -> str:
    return str(uuid.uuid4())[:8]


_REDACT_PATTERNS = [
    (re.compile(rf"({re.escape(settings.TXT_VERIFY_PREFIX)}=)[^\s\"',;]+"), r"\1***"),
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.I), r"\1***"),
    (re.compile(r'("?(?:token|secret|password)"?\s*[:=]\s*)"[^"]*"', re.I), r'\1"***"'),
]


def redact(text: str) -> str:
    """Hide TXT verification values and credentials in a log message."""
    for pattern, replacement in _REDACT_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S.000Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
            "request_id": request_id_ctx.get(),
            "user_id": user_id_ctx.get(),
            "profile_id": profile_id_ctx.get(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        log_entry = {k: v for k, v in log_entry.items() if v and v != "-"}
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class HumanFormatter(logging.Formatter):
    FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-16s | [%(request_id)s %(profile_id)s] %(message)s"

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = request_id_ctx.get()
        record.profile_id = profile_id_ctx.get()
        record.msg, record.args = redact(record.getMessage()), None
        return super().format(record)


def setup_logging() -> None:
    """Configure application-wide logging."""
    root = logging.getLogger()
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if settings.is_production or settings.is_staging:
        handler.setFormatter(JSONFormatter())
        root.setLevel(logging.INFO)
    else:
        handler.setFormatter(HumanFormatter(HumanFormatter.FORMAT, datefmt="%H:%M:%S"))
        root.setLevel(logging.DEBUG)

    root.addHandler(handler)

    # Quiet noisy third-party loggers
    for name in ("uvicorn.access", "httpcore", "httpx", "celery.redirected"):
        logging.getLogger(name).setLevel(logging.WARNING)
