"""
Fees API Endpoints

- GET/POST /fees - list own (all for staff) / create (admin)
- GET /fees/summary - totals by status, overdue and upcoming counts
- GET /fees/payments - payment history
- GET /fees/payments/{id}/receipt, POST /fees/payments/{id}/refund
- POST /fees/bulk - one fee per student
- GET/PUT/DELETE /fees/{id}
- POST /fees/{id}/pay (rate limited), POST /fees/{id}/discount-waiver
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Optional

from campus_portal.core.database import get_db
from campus_portal.core.permissions import Capability
from campus_portal.core.rate_limiter import payment_rate_limit
from campus_portal.models.user import User
from campus_portal.models.fee import FeeStatus, FeeType
from campus_portal.modules.auth.dependencies import get_current_user, require_capability
from campus_portal.schemas.common import success_response, to_naive_utc
from campus_portal.schemas.fee import (
    FeeCreate, FeeUpdate, BulkFeeCreate, PaymentRequest, RefundRequest, DiscountWaiverRequest,
    FeeResponse, TransactionResponse,
)
from campus_portal.services.fee_service import fee_service

router = APIRouter(prefix="/fees", tags=["Fees"])


@router.get("")
async def list_fees(
    status_filter: Optional[FeeStatus] = Query(None, alias="status"),
    fee_type: Optional[FeeType] = None,
    academic_year: Optional[str] = None,
    user_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await fee_service.list_fees(
        db, current_user, status_filter, fee_type, academic_year, user_id, page, limit,
    )
    return success_response(data={
        "fees": [FeeResponse.from_fee(f) for f in result["items"]],
        "pagination": result["pagination"],
    })


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_fee(
    data: FeeCreate,
    current_user: User = Depends(require_capability(Capability.MANAGE_FEES)),
    db: AsyncSession = Depends(get_db)
):
    fee = await fee_service.create_fee(db, data)
    return success_response("Fee created successfully", FeeResponse.from_fee(fee))


@router.get("/summary")
async def fee_summary(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return success_response(data=await fee_service.summary(db, current_user))


@router.get("/payments")
async def payment_history(
    from_date: Optional[datetime] = Query(None, alias="fromDate"),
    to_date: Optional[datetime] = Query(None, alias="toDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await fee_service.payment_history(
        db, current_user, to_naive_utc(from_date), to_naive_utc(to_date), page, limit,
    )
    return success_response(data={
        "transactions": [TransactionResponse.model_validate(t) for t in result["items"]],
        "pagination": result["pagination"],
    })


@router.get("/payments/{transaction_id}/receipt")
async def payment_receipt(
    transaction_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return success_response(data=await fee_service.receipt(db, transaction_id, current_user))


@router.post("/payments/{transaction_id}/refund")
async def refund_payment(
    transaction_id: str,
    data: RefundRequest,
    current_user: User = Depends(require_capability(Capability.REFUND_PAYMENTS)),
    db: AsyncSession = Depends(get_db)
):
    transaction = await fee_service.refund(db, transaction_id, data, current_user)
    return success_response("Refund processed successfully", {
        "transaction": TransactionResponse.model_validate(transaction),
        "fee": FeeResponse.from_fee(transaction.fee),
    })


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
async def bulk_create_fees(
    data: BulkFeeCreate,
    current_user: User = Depends(require_capability(Capability.MANAGE_FEES)),
    db: AsyncSession = Depends(get_db)
):
    fees = await fee_service.bulk_create(db, data)
    return success_response(
        f"{len(fees)} fees created successfully",
        [FeeResponse.from_fee(f) for f in fees],
    )


@router.get("/{fee_id}")
async def get_fee(
    fee_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    fee = await fee_service.get_fee(db, fee_id, current_user)
    return success_response(data=FeeResponse.from_fee(fee))


@router.put("/{fee_id}")
async def update_fee(
    fee_id: str,
    data: FeeUpdate,
    current_user: User = Depends(require_capability(Capability.MANAGE_FEES)),
    db: AsyncSession = Depends(get_db)
):
    fee = await fee_service.update_fee(db, fee_id, data)
    return success_response("Fee updated successfully", FeeResponse.from_fee(fee))


@router.delete("/{fee_id}")
async def delete_fee(
    fee_id: str,
    current_user: User = Depends(require_capability(Capability.MANAGE_FEES)),
    db: AsyncSession = Depends(get_db)
):
    await fee_service.delete_fee(db, fee_id)
    return success_response("Fee deleted successfully")


@router.post("/{fee_id}/pay")
@payment_rate_limit()
async def pay_fee(
    request: Request,
    fee_id: str,
    data: Optional[PaymentRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Pay all (default) or part of a fee's outstanding balance (rate limited: 10/min)"""
    result = await fee_service.pay_fee(db, fee_id, current_user, data or PaymentRequest())
    return success_response("Payment processed successfully", {
        "fee": FeeResponse.from_fee(result["fee"]),
        "transaction": TransactionResponse.model_validate(result["transaction"]),
    })


@router.post("/{fee_id}/discount-waiver")
async def apply_discount_or_waiver(
    fee_id: str,
    data: DiscountWaiverRequest,
    current_user: User = Depends(require_capability(Capability.MANAGE_FEES)),
    db: AsyncSession = Depends(get_db)
):
    fee = await fee_service.apply_discount_or_waiver(db, fee_id, data)
    return success_response(f"Fee {data.type} applied successfully", FeeResponse.from_fee(fee))
