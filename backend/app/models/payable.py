"""
Payable (account payable) database model.

Header record for money the organization owes; owns 1..N installments.
"""

from decimal import Decimal
from sqlalchemy import Column, Integer, Numeric, String, Text, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import AccountStatus


class Payable(Base):
    """
    Payable model.

    total_amount and settled_amount are denormalized sums of the installments;
    they are always re-derived from the installments, never adjusted in place.
    """
    __tablename__ = "payables"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    organization_id = Column(Integer, nullable=False, index=True)
    counterparty_id = Column(Integer, nullable=False, index=True)  # Vendor
    category_id = Column(Integer, nullable=True)

    document_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Financials
    total_amount = Column(Numeric(14, 2), nullable=False)
    settled_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    # Status
    status = Column(Enum(AccountStatus), default=AccountStatus.PENDING, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    installments = relationship(
        "PayableInstallment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PayableInstallment.installment_number",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Payable(id={self.id}, status='{self.status.value}', total={self.total_amount})>"
