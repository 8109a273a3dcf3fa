"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from app.config import settings
from app.core.logging_config import setup_logging

# Create Celery app
celery_app = Celery(
    "family-ledger",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,   # 5 minutes max
    task_soft_time_limit=270,  # 4.5 minutes soft limit
    # Reliability: re-queue tasks if a worker crashes mid-execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_retry_delay=60,   # 60 seconds base delay before first retry
)


class RetryableTask(celery_app.Task):
    """
    Base task class with automatic exponential-backoff retry on failure.

    All periodic and background tasks inherit this so transient errors
    (DB timeouts, network blips, API rate limits) are handled automatically.
    Override max_retries=0 on tasks that must not retry (e.g., send-once emails).
    """

    abstract = True
    autoretry_for = (Exception,)
    max_retries = 3
    retry_backoff = True        # Exponential: 60s, 120s, 240s
    retry_backoff_max = 600     # Cap at 10 minutes
    retry_jitter = True         # Add jitter to prevent thundering herd on retry wave


celery_app.Task = RetryableTask


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Use the app's structlog setup instead of Celery's default root handler."""
    setup_logging()


# Import tasks here as they're created
from app.workers.tasks import debt_update_tasks  # noqa: F401

# Beat schedule (periodic tasks)
celery_app.conf.beat_schedule = {
    "run-monthly-debt-updates": {
        "task": "run_monthly_debt_updates",
        # 2am UTC on the 1st by default
        "schedule": crontab(
            hour=settings.DEBT_UPDATE_HOUR,
            minute=0,
            day_of_month=settings.DEBT_UPDATE_DAY_OF_MONTH,
        ),
    },
}
