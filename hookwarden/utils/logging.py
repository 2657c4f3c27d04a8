"""
Structured JSON logging with correlation IDs and webhook context.

Each line is one JSON object: timestamp, level, correlation_id, module and
message, plus whichever webhook fields the call site attached through
webhook_extra(). The correlation ID is set per request by the middleware in
main.py; log lines written by retry tasks carry the ID of the request that
scheduled them because asyncio tasks copy the current context.
"""
import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Fields the formatter lifts from LogRecord attributes, in output order
WEBHOOK_FIELDS = (
    "provider",
    "event",
    "status",
    "attempt",
    "external_id",
    "log_id",
    "delay_seconds",
    "failure_count",
)

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx")


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_ctx.set(cid)


def generate_correlation_id() -> str:
    """UUID4 hex, 32 chars."""
    return uuid.uuid4().hex


def webhook_extra(provider: str, event: Optional[str] = None, **fields: Any) -> dict:
    """
    Build the `extra=` mapping for a webhook log call.

    Unknown keys are rejected so a typo cannot silently drop a field from the
    JSON output; None values are omitted.
    """
    unknown = set(fields) - set(WEBHOOK_FIELDS)
    if unknown:
        raise ValueError(f"Unknown webhook log fields: {', '.join(sorted(unknown))}")
    extra = {"provider": provider, "event": event, **fields}
    return {key: value for key, value in extra.items() if value is not None}


class StructuredJsonFormatter(logging.Formatter):
    """Formats records as single-line JSON with webhook context fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }

        for key in WEBHOOK_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_structured_logging(
    log_level: str = "INFO",
    quiet_loggers: Iterable[str] = QUIET_LOGGERS,
) -> None:
    """Install the JSON formatter on the root logger. Called by create_app()."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())
    root_logger.addHandler(handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)
