"""
Structured logging setup for the CivicMatch backend.

Every entry is a JSON object with timestamp, level, logger name and service,
plus whatever context is bound for the running matching cycle.
"""

import logging
import sys
from contextlib import AbstractContextManager
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

SERVICE_NAME = "civicmatch"


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog with JSON output and route stdlib logging to stdout.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_name,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    for noisy in ("httpx", "httpcore", "uvicorn.access", "psycopg.pool"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _add_service_name(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def cycle_log_context(week_number: int, cycle: str) -> AbstractContextManager:
    """Bind the cycle's week and cadence to every log entry emitted inside the block."""
    return structlog.contextvars.bound_contextvars(week_number=week_number, cycle=cycle)


def log_health_check(component: str, healthy: bool, latency_ms: float, error: str = None):
    """Log a readiness probe result with consistent fields."""
    logger = get_logger("health")

    log_data = {"component": component, "healthy": healthy, "latency_ms": latency_ms}
    if error:
        log_data["error"] = error

    if healthy:
        logger.debug("Readiness check passed", **log_data)
    else:
        logger.warning("Readiness check failed", **log_data)
