"""
Structured Logging
==================

JSON-structured logging with trace ID tracking.

Provides:
- Structured JSON logs on stdout
- Trace ID propagation through one triage run
- Latency timing for retrieval tiers and workflow steps

Usage:
    from helpdesk_ai.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Suggestion stored", extra={"ticket_id": ticket_id})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Union

from pythonjsonlogger import jsonlogger

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

_SENSITIVE_KEYS = ("password", "api_key", "secret")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding timestamp, trace_id and environment.

    String values under sensitive-looking keys are redacted.
    """

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if hasattr(record, "trace_id"):
            log_record["trace_id"] = record.trace_id

        log_record["environment"] = self._environment

        for key, value in list(log_record.items()):
            if not isinstance(value, str):
                continue
            lowered = key.lower()
            if any(marker in lowered for marker in _SENSITIVE_KEYS):
                log_record[key] = "***REDACTED***"
            elif "token" in lowered and not lowered.endswith("tokens"):
                log_record[key] = "***REDACTED***"


class TraceLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its context into per-call ``extra``."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: Environment name stamped on every record
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(
        CustomJsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
            environment=environment,
        )
    )
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        logging.Logger: Configured logger instance
    """
    return logging.getLogger(name)


def get_context_logger(name: str, trace_id: str | None = None) -> LoggerLike:
    """
    Get a logger that stamps ``trace_id`` on every record.

    Args:
        name: Logger name
        trace_id: Trace ID of the triage run or sweep

    Returns:
        Logger, or LoggerAdapter when a trace ID is given
    """
    logger = get_logger(name)
    if trace_id:
        return TraceLoggerAdapter(logger, {"trace_id": trace_id})
    return logger


@contextmanager
def log_latency(logger: LoggerLike, operation: str, **extra_context: Any) -> Iterator[None]:
    """
    Context manager for measuring and logging operation latency.

    Usage:
        with log_latency(logger, "retrieval_tier", tier="vector"):
            results = await store.find_similar(vector)

    Args:
        logger: Logger instance
        operation: Operation name for logging
        **extra_context: Additional context to include in log
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round(latency_ms, 2),
                **extra_context,
            },
        )
