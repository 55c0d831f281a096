"""
Logging Configuration

Structured logging setup with JSON output for production.
Event-style log lines use dotted names (e.g. "mcp.secret.admin.created")
with the context fields passed through `extra`.
"""
import logging
import sys
from typing import Any, Dict
import json
from datetime import datetime

# Context fields copied from `extra` into JSON log lines
CONTEXT_FIELDS = (
    "tenant_id",
    "user_id",
    "request_id",
    "provider",
    "secret_id",
    "event_type",
    "path",
    "method",
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        event_fields = getattr(record, "event_fields", None)
        if event_fields:
            log_data.update(event_fields)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format for structured logging
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)

    root_logger.addHandler(handler)

    # Reduce noise from noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)


def log_event(
    logger: logging.Logger,
    msg: str,
    level: int = logging.INFO,
    **fields: Any
) -> None:
    """
    Log a named event with structured fields.

    Known context fields (tenant_id, request_id, ...) become record
    attributes; everything else is grouped under `event_fields`.
    """
    extra: Dict[str, Any] = {}
    event_fields: Dict[str, Any] = {}
    for key, value in fields.items():
        if key in CONTEXT_FIELDS:
            extra[key] = value
        else:
            event_fields[key] = value
    extra["event_fields"] = event_fields
    logger.log(level, msg, extra=extra)


def log_security_event(event_type: str, details: Dict[str, Any], logger: logging.Logger) -> None:
    """
    Log security-related events.

    Event types:
    - failed_login: Failed authentication attempt
    - tenant_isolation_violation: Attempted cross-tenant access
    - access_denied: Role check failed
    - invalid_signature: Webhook signature did not verify
    - secret_revealed: A signing secret was shown to a user
    """
    log_data = {
        "security_event": True,
        "event_type": event_type,
    }
    for key, value in details.items():
        if key in CONTEXT_FIELDS:
            log_data[key] = value
        else:
            log_data.setdefault("event_fields", {})[key] = value

    logger.warning(f"SECURITY EVENT: {event_type}", extra=log_data)
