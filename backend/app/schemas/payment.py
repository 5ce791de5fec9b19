"""
Payment Schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from backend.app.models.ledger_enums import PaymentMethod, Polarity


class AllocationCreate(BaseModel):
    """Part of a payment applied to exactly one installment."""
    amount: Decimal = Field(..., decimal_places=2)
    payable_installment_id: Optional[int] = None
    receivable_installment_id: Optional[int] = None


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_date: date
    payment_method: PaymentMethod
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    allocations: List[AllocationCreate]


class PaymentUpdate(BaseModel):
    """Descriptive fields only; amount and allocations cannot be edited."""
    payment_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class QuickPaymentCreate(BaseModel):
    """Single-installment payment."""
    polarity: Polarity
    installment_id: int
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_date: date
    payment_method: PaymentMethod
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class AllocationResponse(BaseModel):
    id: int
    amount: Decimal
    payable_installment_id: Optional[int] = None
    receivable_installment_id: Optional[int] = None

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    organization_id: int
    amount: Decimal
    payment_date: date
    payment_method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    allocations: List[AllocationResponse] = []

    class Config:
        from_attributes = True
