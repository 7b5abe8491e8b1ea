"""Structured logging configuration for EHS Identity.

Provides JSON-formatted logs for production and human-readable
logs for development.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

from .config import get_settings

# Attributes present on every LogRecord; anything else arrived through `extra`
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.funcName:
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(stream: TextIO | None = None) -> None:
    """Configure logging based on settings.

    Args:
        stream: Destination stream (default: stdout)
    """
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(stream or sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)

    logger = get_logger(__name__)
    logger.info(
        "Logging initialized",
        extra={
            "environment": settings.environment,
            "log_level": settings.log_level,
            "log_format": settings.log_format,
        },
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds context to all log messages."""

    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        """Process the logging message and add extra context."""
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> LoggerAdapter:
    """Get a logger with additional context.

    Args:
        name: Logger name
        **context: Context fields to add to all log messages

    Returns:
        Logger adapter with context

    Usage:
        logger = get_context_logger(__name__, agency="hse")
        logger.info("Resolving offender")  # Includes agency
    """
    return LoggerAdapter(get_logger(name), context)


# =========================
# Convenience functions
# =========================


def log_resolution_event(
    entity_type: str,
    strategy: str,
    source_name: str,
    matched_id: str | None,
    confidence: float,
    created: bool = False,
) -> None:
    """Log an entity resolution event.

    Args:
        entity_type: "offender" or "legislation"
        strategy: How the entity was found (registration_number, exact, fuzzy, created, retry)
        source_name: Name or title being resolved
        matched_id: Resolved entity ID (if any)
        confidence: Match confidence score
        created: Whether a new record was created
    """
    logger = get_logger("ehs_identity.resolution")
    logger.debug(
        f"Resolution {strategy}: {source_name} -> {matched_id or 'no match'}",
        extra={
            "entity_type": entity_type,
            "strategy": strategy,
            "source_name": source_name,
            "matched_id": matched_id,
            "confidence": confidence,
            "was_created": created,
            "event": "entity_resolution",
        },
    )


def log_merge_event(
    master_id: str,
    duplicate_ids: list[str],
    outcome: str,
    dry_run: bool,
    details: dict[str, Any] | None = None,
) -> None:
    """Log an offender merge attempt.

    Args:
        master_id: Master offender ID
        duplicate_ids: Offenders merged (or to be merged) into the master
        outcome: completed, previewed, blocked or failed
        dry_run: True for previews
        details: Additional context (totals, similarity)
    """
    logger = get_logger("ehs_identity.merge")
    level = logging.WARNING if outcome in ("blocked", "failed") else logging.INFO
    logger.log(
        level,
        f"Merge {outcome}: {len(duplicate_ids)} duplicate(s) into {master_id}",
        extra={
            "master_id": master_id,
            "duplicate_ids": duplicate_ids,
            "outcome": outcome,
            "dry_run": dry_run,
            "details": details,
            "event": "offender_merge",
        },
    )
