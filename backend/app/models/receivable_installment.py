"""
Receivable installment database model.

One scheduled portion of a receivable's total amount.
"""

from decimal import Decimal
from sqlalchemy import Column, Integer, Numeric, Date, DateTime, Enum, ForeignKey, Text, UniqueConstraint, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import AccountStatus


class ReceivableInstallment(Base):
    """
    Receivable installment model.

    installment_number is dense 1..total_installments within its account.
    """
    __tablename__ = "receivable_installments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Parent (cascading delete)
    account_id = Column(Integer, ForeignKey('receivables.id', ondelete='CASCADE'), nullable=False, index=True)
    organization_id = Column(Integer, nullable=False, index=True)

    # Position
    installment_number = Column(Integer, nullable=False)
    total_installments = Column(Integer, nullable=False)

    # Financials
    amount = Column(Numeric(14, 2), nullable=False)
    settled_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    due_date = Column(Date, nullable=False)
    status = Column(Enum(AccountStatus), default=AccountStatus.PENDING, nullable=False)
    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('account_id', 'installment_number', name='uq_receivable_installment_number'),
        Index('ix_receivable_installments_status_due', 'status', 'due_date'),
    )

    def __repr__(self):
        return (
            f"<ReceivableInstallment(id={self.id}, {self.installment_number}/{self.total_installments}, "
            f"amount={self.amount}, status='{self.status.value}')>"
        )
