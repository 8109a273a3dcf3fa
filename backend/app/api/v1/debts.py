"""Debt amortization, auto-update and payment API endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from app.dependencies import get_accrual_service, get_payment_service
from app.schemas.debt import (
    AccrualErrorCode,
    AmortizationOverview,
    DebtSummary,
    ManualPaymentCreate,
    ManualPaymentResult,
    MonthlyUpdateResult,
    PaymentHistoryEntry,
)
from app.services.debt_accrual_service import DebtAccrualService
from app.services.debt_payment_service import DebtAccountNotFoundError, DebtPaymentService

router = APIRouter()


@router.get("/accounts/{account_id}/amortization", response_model=AmortizationOverview)
async def get_amortization(
    account_id: UUID,
    family_id: UUID = Query(..., description="Family owning the account"),
    service: DebtAccrualService = Depends(get_accrual_service),
):
    """
    Get the amortization view of a debt account.

    Returns the loan terms, the current balance, the month-by-month schedule
    (absent when the rate or remaining months are unset) and next month's
    payment split.
    """
    overview = await service.get_amortization_overview(account_id, family_id)
    if overview is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Debt account not found")
    return overview


@router.post("/accounts/{account_id}/auto-update", response_model=MonthlyUpdateResult)
async def apply_auto_update(
    account_id: UUID,
    family_id: UUID = Query(..., description="Family owning the account"),
    service: DebtAccrualService = Depends(get_accrual_service),
):
    """
    Apply this month's interest to a debt account if it is due.

    A result that did not apply (not due yet, not eligible, ...) is returned
    with status 400 so the client can show it, e.g. the days until the next
    due date.
    """
    if await service.get_debt_account(account_id, family_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Debt account not found")

    result = await service.apply_monthly_update(account_id)
    if result.success:
        return result

    if result.error_code == AccrualErrorCode.ACCOUNT_NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=result.model_dump(mode="json"),
    )


@router.post(
    "/accounts/{account_id}/payments",
    response_model=ManualPaymentResult,
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    account_id: UUID,
    payment: ManualPaymentCreate,
    family_id: UUID = Query(..., description="Family owning the account"),
    service: DebtPaymentService = Depends(get_payment_service),
):
    """Record a payment against a debt account."""
    try:
        return await service.record_payment(account_id, family_id, payment)
    except DebtAccountNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/accounts/{account_id}/payments", response_model=List[PaymentHistoryEntry])
async def list_payments(
    account_id: UUID,
    family_id: UUID = Query(..., description="Family owning the account"),
    service: DebtPaymentService = Depends(get_payment_service),
):
    """Payment history of a debt account, newest first."""
    try:
        return await service.list_payments(account_id, family_id)
    except DebtAccountNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/families/{family_id}/summary", response_model=List[DebtSummary])
async def get_family_debt_summary(
    family_id: UUID,
    service: DebtAccrualService = Depends(get_accrual_service),
):
    """Overview of every debt account of a family."""
    return await service.get_debt_summaries(family_id)
