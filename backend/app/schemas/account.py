"""
Account Schemas (payables / receivables).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.app.models.ledger_enums import AccountStatus, PaymentMethod

MAX_INSTALLMENTS = 120


class AccountCreate(BaseModel):
    """Schema for creating a payable or receivable with its installments."""
    counterparty_id: int = Field(..., gt=0, description="Vendor (payable) or customer (receivable)")
    category_id: Optional[int] = None
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    installment_count: int = Field(1, ge=1, le=MAX_INSTALLMENTS)
    due_dates: List[date] = Field(..., min_length=1, max_length=MAX_INSTALLMENTS)
    document_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    @field_validator("due_dates")
    @classmethod
    def due_dates_ascending(cls, value: List[date]) -> List[date]:
        if any(later < earlier for earlier, later in zip(value, value[1:])):
            raise ValueError("Due dates must be in ascending order")
        return value

    @model_validator(mode="after")
    def due_dates_match_count(self):
        if len(self.due_dates) != self.installment_count:
            raise ValueError("Number of due dates must match installment_count")
        return self


class AccountAmountUpdate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)


class AccountUpdate(BaseModel):
    """Partial account edit. A new amount regenerates the installment schedule."""
    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    counterparty_id: Optional[int] = Field(None, gt=0)
    category_id: Optional[int] = None
    document_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class InstallmentUpdate(BaseModel):
    """Partial installment edit. Amount and due date need a PENDING installment without payments."""
    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InstallmentResponse(BaseModel):
    id: int
    account_id: int
    installment_number: int
    total_installments: int
    amount: Decimal
    settled_amount: Decimal
    due_date: date
    status: AccountStatus
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class AccountResponse(BaseModel):
    """Schema for displaying an account with its installment schedule."""
    id: int
    organization_id: int
    counterparty_id: int
    category_id: Optional[int] = None
    document_number: Optional[str] = None
    notes: Optional[str] = None
    total_amount: Decimal
    settled_amount: Decimal
    status: AccountStatus
    created_at: datetime
    updated_at: datetime
    installments: List[InstallmentResponse] = []

    class Config:
        from_attributes = True


class AccountPaymentAllocation(BaseModel):
    allocation_id: int
    installment_id: int
    installment_number: int
    amount: Decimal


class AccountPaymentResponse(BaseModel):
    """A payment as seen from one account: only the allocations that hit it."""
    payment_id: int
    amount: Decimal
    allocated_amount: Decimal
    payment_date: date
    payment_method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    allocations: List[AccountPaymentAllocation]
