"""
Fee Service - fees, payments, refunds, discounts and summaries

A payment writes the transaction row and the fee's new balance/status in
one commit; nothing is persisted if either fails.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List

from campus_portal.core.config import settings
from campus_portal.core.exceptions import (
    ResourceNotFoundError, BusinessRuleError, ValidationError,
    PaymentError, FeeAlreadyPaidError, PaymentAmountError,
)
from campus_portal.core.logging_config import logger
from campus_portal.core.permissions import Capability, ensure_owner_or_capability, has_capability
from campus_portal.models.user import User
from campus_portal.models.fee import (
    Fee, FeeStatus, FeeType, PaymentTransaction, TransactionStatus,
    BALANCE_EPSILON, effective_fee_status, generate_transaction_id,
)
from campus_portal.models.gamification import PointType
from campus_portal.schemas.fee import (
    FeeCreate, FeeUpdate, BulkFeeCreate, PaymentRequest, RefundRequest, DiscountWaiverRequest,
)
from campus_portal.services.gamification_service import gamification_service
from campus_portal.utils.pagination import paginate


def _status_clause(status: FeeStatus, now: datetime):
    """SQL matching the status a fee reads as at ``now``"""
    if status == FeeStatus.OVERDUE:
        return or_(
            Fee.status == FeeStatus.OVERDUE,
            and_(Fee.status == FeeStatus.PENDING, Fee.due_date < now),
        )
    if status == FeeStatus.PENDING:
        return and_(Fee.status == FeeStatus.PENDING, Fee.due_date >= now)
    return Fee.status == status


class FeeService:
    """Service for student fees and their payments"""

    # ==================== FEES ====================

    async def list_fees(
        self,
        db: AsyncSession,
        user: User,
        status: Optional[FeeStatus] = None,
        fee_type: Optional[FeeType] = None,
        academic_year: Optional[str] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        query = select(Fee)
        if has_capability(user.role, Capability.VIEW_ALL_FEES):
            if user_id:
                query = query.where(Fee.user_id == user_id)
        else:
            query = query.where(Fee.user_id == user.id)

        if status:
            query = query.where(_status_clause(status, datetime.utcnow()))
        if fee_type:
            query = query.where(Fee.fee_type == fee_type)
        if academic_year:
            query = query.where(Fee.academic_year == academic_year)

        query = query.order_by(Fee.due_date)
        return await paginate(db, query, page, limit)

    async def get_fee(self, db: AsyncSession, fee_id: str, user: Optional[User] = None) -> Fee:
        fee = await db.get(Fee, fee_id)
        if fee is None:
            raise ResourceNotFoundError("Fee", fee_id)
        if user is not None:
            ensure_owner_or_capability(
                user, fee.user_id, Capability.VIEW_ALL_FEES,
                "You can only view your own fees",
            )
        return fee

    async def create_fee(self, db: AsyncSession, data: FeeCreate) -> Fee:
        if await db.get(User, data.user_id) is None:
            raise ResourceNotFoundError("User", data.user_id)

        fee = Fee(**data.model_dump(), status=FeeStatus.PENDING, paid_amount=0.0, discount_amount=0.0)
        fee.refresh_status()
        db.add(fee)
        await db.commit()
        await db.refresh(fee)
        logger.log_domain_event("fees", "fee_created", fee=str(fee.id), user=str(fee.user_id), amount=fee.amount)
        return fee

    async def bulk_create(self, db: AsyncSession, data: BulkFeeCreate) -> List[Fee]:
        """One fee per student id, all or nothing"""
        student_ids = list(dict.fromkeys(data.student_ids))
        found = await db.execute(select(User.id).where(User.id.in_(student_ids)))
        missing = set(student_ids) - {str(uid) for uid in found.scalars().all()}
        if missing:
            raise ValidationError(f"Unknown student ids: {', '.join(sorted(missing))}", field="student_ids")

        fees = []
        for student_id in student_ids:
            fee = Fee(**data.fee_data.model_dump(), user_id=student_id,
                      status=FeeStatus.PENDING, paid_amount=0.0, discount_amount=0.0)
            fee.refresh_status()
            db.add(fee)
            fees.append(fee)

        await db.commit()
        logger.log_domain_event("fees", "bulk_fees_created", count=len(fees), fee_type=data.fee_data.fee_type.value)
        return fees

    async def update_fee(self, db: AsyncSession, fee_id: str, data: FeeUpdate) -> Fee:
        fee = await self.get_fee(db, fee_id)
        changes = data.model_dump(exclude_unset=True)

        new_amount = changes.get("amount")
        if new_amount is not None and new_amount < (fee.paid_amount or 0) + (fee.discount_amount or 0) - BALANCE_EPSILON:
            raise BusinessRuleError("Amount cannot be less than what has already been paid or discounted")

        for field, value in changes.items():
            if value is None and field not in ("academic_year", "semester"):
                continue
            setattr(fee, field, value)
        fee.refresh_status()

        await db.commit()
        await db.refresh(fee)
        return fee

    async def delete_fee(self, db: AsyncSession, fee_id: str) -> None:
        fee = await self.get_fee(db, fee_id)
        if (fee.paid_amount or 0) > 0:
            raise BusinessRuleError("Cannot delete a fee with payments recorded")
        await db.delete(fee)
        await db.commit()
        logger.log_domain_event("fees", "fee_deleted", fee=str(fee_id))

    # ==================== PAYMENTS ====================

    async def pay_fee(self, db: AsyncSession, fee_id: str, user: User, data: PaymentRequest) -> Dict[str, Any]:
        """
        Apply a (possibly partial) payment to a fee.

        The amount defaults to the outstanding balance. A caller-supplied
        transaction id that already exists is rejected, so retrying a
        payment with the same id never charges twice.

        Returns:
            ``{"fee": Fee, "transaction": PaymentTransaction}``
        """
        fee = await db.get(Fee, fee_id)
        if fee is None:
            raise ResourceNotFoundError("Fee", fee_id)
        ensure_owner_or_capability(
            user, fee.user_id, Capability.PAY_ANY_FEE,
            "You can only pay your own fees",
        )
        if fee.status == FeeStatus.PAID or fee.is_settled:
            raise FeeAlreadyPaidError()

        outstanding = fee.outstanding_balance
        amount = round(data.amount if data.amount is not None else outstanding, 2)
        if amount <= 0 or amount > outstanding + BALANCE_EPSILON:
            raise PaymentAmountError(amount, outstanding)

        transaction_id = data.transaction_id or generate_transaction_id()
        duplicate = await db.execute(
            select(PaymentTransaction.id).where(PaymentTransaction.transaction_id == transaction_id)
        )
        if duplicate.scalar_one_or_none():
            raise PaymentError("Duplicate transaction id", code="DUPLICATE_TRANSACTION",
                               details={"transaction_id": transaction_id})

        now = datetime.utcnow()
        transaction = PaymentTransaction(
            user_id=fee.user_id,
            fee_id=fee.id,
            amount=amount,
            currency=data.currency,
            payment_method=data.payment_method,
            transaction_id=transaction_id,
            status=TransactionStatus.COMPLETED,
            description=f"Payment for {fee.description}",
            processed_by=user.id if str(user.id) != str(fee.user_id) else None,
            created_at=now,
        )
        db.add(transaction)

        fee.paid_amount = round((fee.paid_amount or 0) + amount, 2)
        fee.payment_method = data.payment_method
        fee.transaction_id = transaction_id
        fee.refresh_status(now)

        if fee.status == FeeStatus.PAID and fee.due_date >= now and settings.FEE_PAYMENT_POINTS > 0:
            await gamification_service.add_points(
                db, fee.user_id, settings.FEE_PAYMENT_POINTS, PointType.FEE_PAYMENT,
                f"Paid {fee.fee_type.value} fee on time", reference_id=str(fee.id),
            )

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise PaymentError("Duplicate transaction id", code="DUPLICATE_TRANSACTION",
                               details={"transaction_id": transaction_id})

        await db.refresh(fee)
        await db.refresh(transaction)
        logger.log_domain_event(
            "fees", "payment_completed",
            fee=str(fee.id), amount=amount, transaction_id=transaction_id, status=fee.status.value,
        )
        return {"fee": fee, "transaction": transaction}

    async def payment_history(
        self,
        db: AsyncSession,
        user: User,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        query = select(PaymentTransaction).options(selectinload(PaymentTransaction.fee))
        if not has_capability(user.role, Capability.VIEW_ALL_FEES):
            query = query.where(PaymentTransaction.user_id == user.id)
        if from_date:
            query = query.where(PaymentTransaction.created_at >= from_date)
        if to_date:
            query = query.where(PaymentTransaction.created_at <= to_date)
        query = query.order_by(desc(PaymentTransaction.created_at))
        return await paginate(db, query, page, limit)

    async def _get_transaction(self, db: AsyncSession, transaction_pk: str) -> PaymentTransaction:
        result = await db.execute(
            select(PaymentTransaction)
            .options(selectinload(PaymentTransaction.fee), selectinload(PaymentTransaction.user))
            .where(PaymentTransaction.id == transaction_pk)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise ResourceNotFoundError("Transaction", transaction_pk)
        return transaction

    async def receipt(self, db: AsyncSession, transaction_pk: str, user: User) -> Dict[str, Any]:
        transaction = await self._get_transaction(db, transaction_pk)
        ensure_owner_or_capability(
            user, transaction.user_id, Capability.VIEW_ALL_FEES,
            "You can only view your own receipts",
        )

        student, fee = transaction.user, transaction.fee
        return {
            "receipt_number": transaction.receipt_number,
            "issued_at": datetime.utcnow(),
            "student": {
                "id": student.id,
                "name": student.full_name,
                "email": student.email,
                "student_id": student.student_id,
                "department": student.department,
            },
            "fee": {
                "id": fee.id,
                "fee_type": fee.fee_type,
                "description": fee.description,
                "amount": fee.amount,
                "academic_year": fee.academic_year,
                "semester": fee.semester,
            },
            "payment": {
                "transaction_id": transaction.transaction_id,
                "amount": transaction.amount,
                "currency": transaction.currency,
                "payment_method": transaction.payment_method,
                "status": transaction.status,
                "refund_amount": transaction.refund_amount,
                "paid_at": transaction.created_at,
            },
        }

    async def refund(self, db: AsyncSession, transaction_pk: str, data: RefundRequest, admin: User) -> PaymentTransaction:
        """Refund all or part of a completed payment and reopen its fee"""
        transaction = await self._get_transaction(db, transaction_pk)
        if transaction.status != TransactionStatus.COMPLETED:
            raise PaymentError("Only completed transactions can be refunded", code="REFUND_NOT_ALLOWED")

        refundable = round(transaction.net_amount, 2)
        amount = round(data.amount if data.amount is not None else refundable, 2)
        if amount <= 0 or amount > refundable + BALANCE_EPSILON:
            raise PaymentError(
                "Refund amount exceeds the refundable amount",
                code="INVALID_REFUND_AMOUNT",
                details={"amount": amount, "refundable": refundable},
            )

        now = datetime.utcnow()
        transaction.refund_amount = round((transaction.refund_amount or 0) + amount, 2)
        transaction.refund_reason = data.reason
        transaction.refunded_at = now
        transaction.processed_by = admin.id
        if transaction.net_amount < BALANCE_EPSILON:
            transaction.status = TransactionStatus.REFUNDED

        fee = transaction.fee
        fee.paid_amount = round(max(0.0, (fee.paid_amount or 0) - amount), 2)
        fee.refresh_status(now)

        await db.commit()
        logger.log_domain_event(
            "fees", "payment_refunded",
            transaction_id=transaction.transaction_id, amount=amount, fee_status=fee.status.value,
        )
        return transaction

    async def apply_discount_or_waiver(self, db: AsyncSession, fee_id: str, data: DiscountWaiverRequest) -> Fee:
        fee = await self.get_fee(db, fee_id)
        if fee.status == FeeStatus.PAID:
            raise FeeAlreadyPaidError()

        if data.type == "discount":
            reduction = round(fee.amount * data.percentage / 100, 2)
        else:
            reduction = round(data.amount, 2)

        if reduction > fee.outstanding_balance + BALANCE_EPSILON:
            raise BusinessRuleError(
                "Reduction exceeds the outstanding balance",
                details={"reduction": reduction, "outstanding": fee.outstanding_balance},
            )

        fee.discount_amount = round((fee.discount_amount or 0) + reduction, 2)
        fee.discount_reason = data.reason
        fee.refresh_status()

        await db.commit()
        await db.refresh(fee)
        logger.log_domain_event("fees", f"fee_{data.type}_applied", fee=str(fee.id), reduction=reduction)
        return fee

    # ==================== SUMMARY ====================

    async def summary(self, db: AsyncSession, user: User) -> Dict[str, Any]:
        query = select(Fee)
        if not has_capability(user.role, Capability.VIEW_ALL_FEES):
            query = query.where(Fee.user_id == user.id)
        fees = (await db.execute(query)).scalars().all()

        now = datetime.utcnow()
        upcoming_cutoff = now + timedelta(days=settings.FEE_UPCOMING_WINDOW_DAYS)
        by_status = {s.value: {"count": 0, "total_amount": 0.0} for s in FeeStatus}
        overdue = upcoming = 0
        outstanding = 0.0

        for fee in fees:
            status = effective_fee_status(fee.status, fee.due_date, now)
            by_status[status.value]["count"] += 1
            by_status[status.value]["total_amount"] = round(by_status[status.value]["total_amount"] + fee.amount, 2)
            outstanding += fee.outstanding_balance
            if status == FeeStatus.OVERDUE:
                overdue += 1
            elif status == FeeStatus.PENDING and fee.due_date <= upcoming_cutoff:
                upcoming += 1

        return {
            "by_status": by_status,
            "overdue_fees": overdue,
            "upcoming_fees": upcoming,
            "total_fees": len(fees),
            "outstanding_total": round(outstanding, 2),
            "currency": settings.FEE_CURRENCY,
        }


# Singleton instance
fee_service = FeeService()
