"""
JSON logs for the API and Celery workers: one object per line, event name in "message",
payment context passed via extra= (payment_id, provider, old_status -> new_status, ...).
"""
import json
import logging
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone

from app.core.config import settings

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "stripe")


class JsonFormatter(logging.Formatter):
    """JSON log formatter; only whitelisted extra fields are emitted."""

    PAYMENT_FIELDS = (
        "payment_id", "user_id", "provider", "provider_tx_id", "payment_type",
        "old_status", "new_status", "raw_status", "outcome",
        "media_id", "message_id", "plan_id",
    )
    REQUEST_FIELDS = ("request_id", "path", "method", "status_code", "latency_ms")
    BREAKER_FIELDS = ("breaker_name", "old_state", "new_state")

    def __init__(self, service: str | None = None):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            payload["service"] = self.service

        for field in (*self.PAYMENT_FIELDS, *self.REQUEST_FIELDS, *self.BREAKER_FIELDS, "error"):
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # Decimal amounts and enums
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    formatter = JsonFormatter(service=settings.log_service)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(
            RotatingFileHandler(
                settings.log_file,
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backup_count,
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    root.handlers = handlers
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
