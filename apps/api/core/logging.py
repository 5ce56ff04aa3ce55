"""
Logging setup for the API and the Celery worker.

One JSON object per line in production (LOG_FORMAT=json or
ENVIRONMENT=production), human-readable text otherwise. Structured context
goes through `extra={"extra_fields": {...}}`.

Reflections, notes and credentials must never reach the logs, so known
sensitive keys in extra_fields are masked before formatting.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict
from core.config import settings

SERVICE_NAME = "shonin-api"

REDACTED = "[redacted]"
SENSITIVE_FIELDS = frozenset({
    "password",
    "token",
    "authorization",
    "mood_notes",
    "additional_notes",
    "notes",
    "content",
    "stripe-signature",
})


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (REDACTED if k.lower() in SENSITIVE_FIELDS else v) for k, v in fields.items()}


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "environment": settings.ENVIRONMENT,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            entry.update(redact(extra_fields))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Plain text with extra_fields appended as key=value pairs."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict) and extra_fields:
            pairs = " ".join(f"{k}={v}" for k, v in redact(extra_fields).items())
            line = f"{line} [{pairs}]"
        return line


def setup_logging() -> logging.Logger:
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    use_json = settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production"
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter() if use_json else TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for noisy in ("sqlalchemy.engine", "urllib3", "httpx", "anthropic", "stripe"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger
