"""Celery task for the monthly debt interest accrual batch."""

import asyncio
import logging
import time

from app.config import settings
from app.core.database import AsyncSessionLocal
from app.core.logging_config import debt_log_context, get_logger, log_celery_task
from app.services.debt_accrual_service import DebtAccrualService
from app.services.ledger_store import SQLAlchemyLedgerStore
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)
task_logger = get_logger(__name__)


async def _run_monthly_debt_updates_async() -> dict:
    """
    Run the monthly update for every family with eligible debt accounts.

    A failing family is logged and recorded; the remaining families still run.
    """
    total_updated = 0
    total_not_due = 0
    errors = []

    async with AsyncSessionLocal() as db:
        service = DebtAccrualService(SQLAlchemyLedgerStore(db))
        family_ids = await service.store.list_families_with_eligible_debts()
        logger.info(f"Monthly debt updates: {len(family_ids)} families with eligible debts")

        for family_id in family_ids:
            try:
                result = await service.run_monthly_updates_for_family(family_id)
            except Exception as e:
                logger.exception(f"Monthly debt updates failed for family {family_id}")
                errors.append({"family_id": str(family_id), "error": str(e)})
                continue

            total_updated += result.updated_count
            total_not_due += result.not_due_count
            errors.extend(
                {
                    "family_id": str(family_id),
                    "account_id": str(failure.account_id) if failure.account_id else None,
                    "error_code": failure.error_code.value,
                    "error": failure.error,
                }
                for failure in result.errors
            )

    logger.info(
        f"Monthly debt updates complete: {total_updated} updated, "
        f"{total_not_due} not due, {len(errors)} errors"
    )
    return {"total_updated": total_updated, "not_due": total_not_due, "errors": errors}


@celery_app.task(bind=True, name="run_monthly_debt_updates")
def run_monthly_debt_updates(self):
    """
    Apply monthly interest to all eligible debt accounts.

    Runs on DEBT_UPDATE_DAY_OF_MONTH at DEBT_UPDATE_HOUR UTC (default 2am on the 1st).
    Accounts whose billing day has not come yet are skipped and picked up by
    a later run or a manual auto-update.
    """
    if not settings.DEBT_UPDATES_ENABLED:
        logger.info("Monthly debt updates disabled, skipping")
        return {"total_updated": 0, "not_due": 0, "errors": [], "skipped": True}

    started = time.monotonic()
    with debt_log_context(task_id=self.request.id):
        summary = asyncio.run(_run_monthly_debt_updates_async())

        log_celery_task(
            task_logger,
            task_name="run_monthly_debt_updates",
            status="success" if not summary["errors"] else "partial",
            duration_ms=(time.monotonic() - started) * 1000,
            total_updated=summary["total_updated"],
            error_count=len(summary["errors"]),
        )
    return summary
