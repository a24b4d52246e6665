from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import List, Literal, Optional
from datetime import datetime

from campus_portal.models.fee import (
    Currency, Fee, FeeStatus, FeeType, PaymentMethod, TransactionStatus,
)
from campus_portal.schemas.common import UTCDatetime


class FeeData(BaseModel):
    fee_type: FeeType
    amount: float = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=500)
    due_date: UTCDatetime
    academic_year: Optional[str] = Field(None, max_length=20)
    semester: Optional[str] = Field(None, max_length=20)


class FeeCreate(FeeData):
    user_id: str


class FeeUpdate(BaseModel):
    fee_type: Optional[FeeType] = None
    amount: Optional[float] = Field(None, gt=0)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    due_date: Optional[UTCDatetime] = None
    academic_year: Optional[str] = Field(None, max_length=20)
    semester: Optional[str] = Field(None, max_length=20)


class BulkFeeCreate(BaseModel):
    student_ids: List[str] = Field(..., min_length=1)
    fee_data: FeeData


class PaymentRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0, description="Defaults to the outstanding balance")
    payment_method: PaymentMethod = PaymentMethod.CARD
    transaction_id: Optional[str] = Field(None, min_length=1, max_length=100)
    currency: Currency = Currency.INR


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0, description="Defaults to the full refundable amount")
    reason: str = Field(..., min_length=1, max_length=500)


class DiscountWaiverRequest(BaseModel):
    type: Literal["discount", "waiver"]
    percentage: Optional[float] = Field(None, ge=0, le=100)
    amount: Optional[float] = Field(None, gt=0)
    reason: str = Field(..., min_length=1, max_length=500)

    @model_validator(mode="after")
    def check_value_for_type(self):
        if self.type == "discount" and self.percentage is None:
            raise ValueError("percentage is required for a discount")
        if self.type == "waiver" and self.amount is None:
            raise ValueError("amount is required for a waiver")
        return self


class FeeResponse(BaseModel):
    id: str
    user_id: str
    fee_type: FeeType
    amount: float
    description: str
    due_date: datetime
    status: FeeStatus
    paid_amount: float
    discount_amount: float
    discount_reason: Optional[str] = None
    outstanding_balance: float
    paid_at: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    transaction_id: Optional[str] = None
    academic_year: Optional[str] = None
    semester: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_fee(cls, fee: Fee, now: Optional[datetime] = None) -> "FeeResponse":
        """Serialize with the status as of ``now``"""
        return cls(
            id=fee.id,
            user_id=fee.user_id,
            fee_type=fee.fee_type,
            amount=fee.amount,
            description=fee.description,
            due_date=fee.due_date,
            status=fee.effective_status(now),
            paid_amount=fee.paid_amount,
            discount_amount=fee.discount_amount,
            discount_reason=fee.discount_reason,
            outstanding_balance=fee.outstanding_balance,
            paid_at=fee.paid_at,
            payment_method=fee.payment_method,
            transaction_id=fee.transaction_id,
            academic_year=fee.academic_year,
            semester=fee.semester,
            created_at=fee.created_at,
        )


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    fee_id: str
    amount: float
    currency: Currency
    payment_method: PaymentMethod
    transaction_id: str
    status: TransactionStatus
    description: Optional[str] = None
    refund_amount: float
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    receipt_number: str
    created_at: datetime
