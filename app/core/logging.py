"""Centralized logging configuration."""

import json
import logging
import re
import sys
from datetime import datetime, timezone

from app.core.config import settings

REDACTED = "[REDACTED]"

# key=... in query strings (Gemini passes its key this way)
_KEY_PARAM_PATTERN = re.compile(r"([?&](?:key|api-key|api_key)=)[^&\s'\"]+", re.IGNORECASE)


def redact_secrets(message: str, secrets: list[str] | None = None) -> str:
    """Replace API keys in a rendered message with a placeholder."""
    if not message:
        return message
    for secret in secrets if secrets is not None else settings.provider_secrets():
        if secret and secret in message:
            message = message.replace(secret, REDACTED)
    return _KEY_PARAM_PATTERN.sub(rf"\1{REDACTED}", message)


class SecretRedactingFilter(logging.Filter):
    """Strips provider API keys from every record before it is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        rendered = record.getMessage()
        cleaned = redact_secrets(rendered)
        if cleaned != rendered:
            record.msg = cleaned
            record.args = None
        return True


class RedactingFormatter(logging.Formatter):
    """Formatter whose tracebacks and stack dumps are run through redaction.

    The filter only sees the message; exception text is rendered here.
    """

    def formatException(self, ei) -> str:
        return redact_secrets(super().formatException(ei))

    def formatStack(self, stack_info: str) -> str:
        return redact_secrets(super().formatStack(stack_info))


class JSONFormatter(RedactingFormatter):
    """Structured JSON log formatter for production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_data["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "job_id"):
            log_data["job_id"] = record.job_id
        return json.dumps(log_data, ensure_ascii=False)


def setup_logging() -> None:
    """Configure logging for the entire application."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(SecretRedactingFilter())

    if settings.log_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            RedactingFormatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root.addHandler(handler)

    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING if not settings.app_debug else level)
    logging.getLogger("celery").setLevel(level)
