"""
Structured logging for the priority dashboard backend.

structlog renders every entry as JSON (or a readable console line when
LOG_JSON is off) and merges request-scoped context bound by the request
middleware, so collector, cache and route logs share a request_id.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

SERVICE_NAME = "priority-dashboard"
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _add_service_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog and the stdlib root logger it writes through."""
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_service_context,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    level = logging.getLevelName(log_level.upper())
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level if isinstance(level, int) else logging.INFO,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_health_check(service: str, healthy: bool, latency_ms: float, error: str | None = None):
    """One entry per dependency checked by /readyz."""
    fields = {"component": service, "healthy": healthy, "latency_ms": latency_ms}
    if error:
        fields["error"] = error
    log = get_logger("health")
    (log.info if healthy else log.error)("Dependency check", **fields)


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    request_id: str | None = None,
):
    """Access log line; 4xx and 5xx responses are logged at warning level."""
    log = get_logger("http")
    emit = log.warning if status_code >= 400 else log.info
    emit(
        "HTTP request",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        request_id=request_id,
    )
