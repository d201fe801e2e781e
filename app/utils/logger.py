import logging
import json
import os
import sys
from pathlib import Path
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

# Fields lifted from logger.info("event", extra={...}) into the JSON entry
EXTRA_FIELDS = (
    "method", "path", "status", "duration_ms", "client_ip",
    "error", "error_type", "service", "circuit_state",
    "job_post_id", "client_id", "payment_intent_id", "transaction_id",
    "event_id", "event_type", "outcome", "classification", "amount_cents",
    "outbox_id", "kind", "dedupe_key", "attempt", "recipients", "message_id",
)


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter with correlation ID injection"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Correlation ID is set by the correlation middleware
        correlation_id = getattr(record, "correlation_id", None)
        if not correlation_id:
            from app.middleware.correlation import get_correlation_id
            correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)

        # Add source location for errors
        if record.levelno >= logging.WARNING:
            entry["source"] = f"{record.filename}:{record.lineno}"

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str)


class SimpleFormatter(logging.Formatter):
    """Human-readable formatter for local development"""

    def __init__(self):
        super().__init__(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = {key: getattr(record, key) for key in EXTRA_FIELDS if hasattr(record, key)}
        if context:
            base += " " + " ".join(f"{k}={v}" for k, v in context.items())
        return base


def setup_logger(name: str = "groundup_payments", level: str = "INFO") -> logging.Logger:
    """
    Setup application logger with structured JSON output.

    In production (Railway), outputs JSON to stdout for log drain ingestion.
    Optionally writes to file for local development.
    """
    logger = logging.getLogger(name)

    # Don't add handlers if they already exist
    if logger.handlers:
        return logger

    log_level = getattr(logging, os.getenv("LOG_LEVEL", level).upper(), logging.INFO)
    logger.setLevel(log_level)

    is_production = bool(os.getenv("RAILWAY_ENVIRONMENT")) or os.getenv("LOG_FORMAT") == "json"

    # Console handler (stdout) - always present
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(StructuredFormatter() if is_production else SimpleFormatter())
    logger.addHandler(console_handler)

    # Rotating file handler for local development only
    if not is_production and os.getenv("LOG_TO_FILE", "1") == "1":
        try:
            log_dir = Path("logs")
            log_dir.mkdir(exist_ok=True)

            file_handler = RotatingFileHandler(
                log_dir / "groundup_payments.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(StructuredFormatter())
            logger.addHandler(file_handler)
        except Exception as e:
            # Railway has read-only filesystem
            logger.warning(f"Could not setup file logging: {e}")

    return logger


# Create default logger instance
logger = setup_logger()


def get_logger(name: str = None) -> logging.Logger:
    """Get logger instance"""
    if name:
        return logger.getChild(name)
    return logger
