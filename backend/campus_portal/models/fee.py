"""
Fee Models
- Fee: an amount owed by a student (pending -> paid / overdue)
- PaymentTransaction: a payment (or refund) applied to a fee
"""

from sqlalchemy import (
    Column, String, DateTime, Enum as SQLEnum, Float, ForeignKey, CheckConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from typing import Optional
import enum
import time

from campus_portal.core.database import Base
from campus_portal.core.types import GUID, generate_uuid

# Balances below this are treated as settled (float rounding)
BALANCE_EPSILON = 0.005


class FeeType(str, enum.Enum):
    TUITION = "tuition"
    HOSTEL = "hostel"
    LIBRARY = "library"
    EXAMINATION = "examination"
    OTHER = "other"


class FeeStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    WALLET = "wallet"
    CASH = "cash"


class Currency(str, enum.Enum):
    INR = "INR"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


def generate_transaction_id() -> str:
    """TXN followed by epoch milliseconds"""
    return f"TXN{int(time.time() * 1000)}"


def effective_fee_status(status: FeeStatus, due_date: datetime, now: Optional[datetime] = None) -> FeeStatus:
    """A pending fee past its due date reads as overdue"""
    now = now or datetime.utcnow()
    status = FeeStatus(status)
    if status == FeeStatus.PENDING and due_date is not None and due_date < now:
        return FeeStatus.OVERDUE
    return status


class Fee(Base):
    """Fee owed by a student"""
    __tablename__ = "fees"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_fees_amount"),
        CheckConstraint("paid_amount >= 0", name="ck_fees_paid_amount"),
        CheckConstraint("discount_amount >= 0", name="ck_fees_discount_amount"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    fee_type = Column(SQLEnum(FeeType), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    description = Column(String(500), nullable=False)
    due_date = Column(DateTime, nullable=False)
    status = Column(SQLEnum(FeeStatus), default=FeeStatus.PENDING, nullable=False, index=True)

    paid_amount = Column(Float, default=0.0, nullable=False)
    discount_amount = Column(Float, default=0.0, nullable=False)
    discount_reason = Column(String(500), nullable=True)

    paid_at = Column(DateTime, nullable=True)
    payment_method = Column(SQLEnum(PaymentMethod), nullable=True)
    transaction_id = Column(String(100), nullable=True)

    academic_year = Column(String(20), nullable=True)
    semester = Column(String(20), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="fees")
    transactions = relationship("PaymentTransaction", back_populates="fee", cascade="all, delete-orphan")

    @property
    def outstanding_balance(self) -> float:
        balance = (self.amount or 0.0) - (self.discount_amount or 0.0) - (self.paid_amount or 0.0)
        return round(max(0.0, balance), 2)

    @property
    def is_settled(self) -> bool:
        return self.outstanding_balance < BALANCE_EPSILON

    def effective_status(self, now: Optional[datetime] = None) -> FeeStatus:
        return effective_fee_status(self.status, self.due_date, now)

    def refresh_status(self, now: Optional[datetime] = None) -> FeeStatus:
        """Recompute status from the balance and the due date"""
        now = now or datetime.utcnow()
        if self.is_settled:
            self.status = FeeStatus.PAID
            if self.paid_at is None:
                self.paid_at = now
        else:
            self.paid_at = None
            self.status = FeeStatus.OVERDUE if self.due_date < now else FeeStatus.PENDING
        return self.status

    def __repr__(self):
        return f"<Fee {self.fee_type} {self.amount} {self.status}>"


class PaymentTransaction(Base):
    """Money received against a fee"""
    __tablename__ = "payment_transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_txn_amount"),
        CheckConstraint("refund_amount >= 0 AND refund_amount <= amount", name="ck_txn_refund_amount"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_id = Column(GUID, ForeignKey("fees.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Float, nullable=False)
    currency = Column(SQLEnum(Currency), default=Currency.INR, nullable=False)
    payment_method = Column(SQLEnum(PaymentMethod), default=PaymentMethod.CARD, nullable=False)
    transaction_id = Column(String(100), unique=True, nullable=False, default=generate_transaction_id)
    status = Column(SQLEnum(TransactionStatus), default=TransactionStatus.COMPLETED, nullable=False, index=True)
    description = Column(String(500), nullable=True)

    refund_amount = Column(Float, default=0.0, nullable=False)
    refund_reason = Column(String(500), nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    processed_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    fee = relationship("Fee", back_populates="transactions")
    user = relationship("User", foreign_keys=[user_id])

    @property
    def receipt_number(self) -> str:
        return f"RCP-{self.id}"

    @property
    def net_amount(self) -> float:
        return (self.amount or 0.0) - (self.refund_amount or 0.0)

    def __repr__(self):
        return f"<PaymentTransaction {self.transaction_id} {self.amount} {self.status}>"
