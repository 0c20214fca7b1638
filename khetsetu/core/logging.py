"""JSON-lines logging for the client, the CLI and the backend.

Records carry the request correlation id when one is set. Anything shaped
like a bearer credential or a JWT is masked before the line is written, so
session tokens never reach log sinks.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, TextIO

CORRELATION_ID_CTX: ContextVar[str] = ContextVar("correlation_id", default="")

_CONTEXT_FIELDS = ("endpoint", "url", "method", "status_code", "path", "user_id")
_SECRET_RE = re.compile(
    r"(Bearer\s+)\S+|eyJ[\w-]+\.[\w-]+\.[\w-]+", flags=re.IGNORECASE
)
_NOISY_LOGGERS = ("urllib3", "httpx", "pymongo")


def redact(text: str) -> str:
    """Mask bearer credentials and JWTs inside ``text``."""
    return _SECRET_RE.sub(lambda m: f"{m.group(1) or ''}[redacted]", text)


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        if correlation_id := CORRELATION_ID_CTX.get():
            entry["correlation_id"] = correlation_id
        entry.update(
            (field, getattr(record, field))
            for field in _CONTEXT_FIELDS
            if getattr(record, field, None) not in (None, "")
        )
        if record.exc_info:
            entry["exception"] = redact(self.formatException(record.exc_info))
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", stream: TextIO | None = None) -> None:
    """Route the root logger to one JSON handler.

    Defaults to stderr so command output on stdout stays machine-readable.
    """
    handler = logging.StreamHandler(stream=stream or sys.stderr)
    handler.setFormatter(JsonLogFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(handler)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_correlation_id(correlation_id: str) -> None:
    CORRELATION_ID_CTX.set(correlation_id)
