"""Structured Logging — JSON / text formatters and a request logging middleware.

Invariants:
    - Every line carries timestamp, level, logger name and message
    - Known extra fields (remittance_id, tce_module, duration_ms, ...) are emitted when present,
      in JSON as keys and in text mode as trailing key=value pairs
    - setup_logging is idempotent: reloads and test runs never stack handlers
    - Each HTTP request produces one access line with method, path, status_code, duration_ms

Design Decisions:
    - stdlib logging with a JSONFormatter: no structlog dependency
    - "tce_module" instead of "module": LogRecord already owns the module attribute
"""

import json
import logging
import time
from datetime import datetime, timezone

from fastapi import Request

_EXTRA_FIELDS = (
    "remittance_id", "source_record_id", "user_id", "error_code",
    "method", "path", "status_code", "duration_ms", "tce_module",
)

_HANDLER_NAME = "remessa"

access_logger = logging.getLogger("remessa.access")


def _extras(record: logging.LogRecord) -> dict:
    return {
        key: record.__dict__[key]
        for key in _EXTRA_FIELDS
        if record.__dict__.get(key) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_extras(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines for local development."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extras(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        return line


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    for existing in list(logging.root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            logging.root.removeHandler(existing)
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))


async def log_requests(request: Request, call_next):
    """HTTP middleware: one access log line per request."""
    started = time.perf_counter()
    response = await call_next(request)
    access_logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": int((time.perf_counter() - started) * 1000),
            "user_id": request.headers.get("x-user-id"),
        },
    )
    return response
