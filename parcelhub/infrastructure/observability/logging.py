"""
structlog configuration for the parcel hub backend.

Every line goes to stdout as one JSON object. Fields bound with
structlog.contextvars (request_id from the request middleware, job_id and
handover_id from upload jobs) are merged into each event.
"""

import logging
import sys

import structlog
from structlog.stdlib import LoggerFactory

# Third-party loggers that only matter at WARNING and above
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "psycopg.pool")


def _processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def setup_logging(log_level: str = "INFO") -> None:
    """
    Route structlog through stdlib logging and emit JSON lines.

    Args:
        log_level: Root level name, e.g. "DEBUG" or "WARNING"
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_health_check(service: str, healthy: bool, latency_ms: float, error: str | None = None):
    """One event per dependency probed by /readyz."""
    fields = {"service": service, "healthy": healthy, "latency_ms": latency_ms}
    if error:
        fields["error"] = error

    logger = get_logger("health")
    if healthy:
        logger.info("Dependency healthy", **fields)
    else:
        logger.error("Dependency unhealthy", **fields)


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    request_id: str | None = None,
):
    """Access log line; 5xx at error, 4xx at warning, the rest at info."""
    fields = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
    }
    # Already bound by the middleware when the request went through it
    if request_id and "request_id" not in structlog.contextvars.get_contextvars():
        fields["request_id"] = request_id

    logger = get_logger("http")
    if status_code >= 500:
        logger.error("Request errored", **fields)
    elif status_code >= 400:
        logger.warning("Request rejected", **fields)
    else:
        logger.info("Request served", **fields)
