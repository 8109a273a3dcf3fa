"""
Structured logging for the ledger API and the monthly debt worker.

Accrual events go through structlog. The family, account and Celery task
being processed are bound as context with ``debt_log_context`` and merged
into every event emitted inside it:

    with debt_log_context(family_id=family_id):
        event_logger.info("family_debt_updates_completed", updated_count=3)

Output is JSON when LOG_FORMAT=json or in production, console text otherwise.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator

import structlog
from pythonjsonlogger import jsonlogger

from app.config import settings

SERVICE_NAME = "family-ledger"

# Chatty at INFO during a batch run: one line per query or broker heartbeat
QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "aiosqlite",
    "asyncpg",
    "kombu",
    "amqp",
    "celery.beat",
)

UVICORN_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")


def use_json_logs() -> bool:
    return settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production"


def add_service_fields(logger, method_name: str, event_dict: dict) -> dict:
    """Stamp every event with the service name and deployment environment."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def setup_logging() -> None:
    """
    Configure stdlib logging and structlog for the API process or a worker.

    Called from the FastAPI lifespan and from Celery's ``setup_logging``
    signal, so both processes share one format.
    """
    use_json = use_json_logs()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_service_fields,
        structlog.processors.format_exc_info,
    ]
    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if use_json:
        _configure_uvicorn_json_logging()

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    if settings.ENVIRONMENT == "production":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _configure_uvicorn_json_logging() -> None:
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
        static_fields={"service": SERVICE_NAME},
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    for name in UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.addHandler(handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def debt_log_context(**ids) -> Iterator[None]:
    """
    Bind identifiers (family_id, account_id, task_id) for events logged inside.

    Values are stringified; None values are not bound. Previous bindings of
    the same keys are restored on exit.
    """
    bound = {key: str(value) for key, value in ids.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def log_celery_task(
    logger: structlog.stdlib.BoundLogger,
    task_name: str,
    status: str,
    duration_ms: float = 0,
    **kwargs,
) -> None:
    """Log the outcome of a Celery task. The task id comes from the bound context."""
    logger.info(
        "celery_task",
        task_name=task_name,
        status=status,
        duration_ms=round(duration_ms, 1),
        **kwargs,
    )
