"""
Payment allocation database model.

Links part of a payment to exactly one payable OR receivable installment.
"""

from decimal import Decimal
from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, CheckConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.allocation_target import AllocationTarget
from backend.app.models.ledger_enums import Polarity


class PaymentAllocation(Base):
    """
    Payment allocation model.

    Stored as two nullable foreign keys guarded by a CHECK constraint; the
    application side only ever sees the tagged AllocationTarget.
    """
    __tablename__ = "payment_allocations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    payment_id = Column(Integer, ForeignKey('payments.id', ondelete='CASCADE'), nullable=False, index=True)

    payable_installment_id = Column(Integer, ForeignKey('payable_installments.id'), nullable=True, index=True)
    receivable_installment_id = Column(Integer, ForeignKey('receivable_installments.id'), nullable=True, index=True)

    amount = Column(Numeric(14, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            '(payable_installment_id IS NULL) <> (receivable_installment_id IS NULL)',
            name='ck_allocation_single_target',
        ),
        CheckConstraint('amount > 0', name='ck_allocation_positive_amount'),
    )

    @classmethod
    def for_target(cls, target: AllocationTarget, amount: Decimal, **kwargs) -> "PaymentAllocation":
        if target.polarity == Polarity.PAYABLE:
            return cls(payable_installment_id=target.installment_id, amount=amount, **kwargs)
        return cls(receivable_installment_id=target.installment_id, amount=amount, **kwargs)

    @property
    def target(self) -> AllocationTarget:
        if self.payable_installment_id is not None:
            return AllocationTarget.payable(self.payable_installment_id)
        return AllocationTarget.receivable(self.receivable_installment_id)

    def __repr__(self):
        return f"<PaymentAllocation(id={self.id}, target={self.target}, amount={self.amount})>"
