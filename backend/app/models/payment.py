"""
Payment database model.

A single money-movement event, composed of one or more allocations.
"""

from sqlalchemy import Column, Integer, Numeric, String, Text, Date, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import PaymentMethod


class Payment(Base):
    """
    Payment model.

    amount equals the sum of its allocations. Created and deleted as one unit
    together with its allocations; never edited in place.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    organization_id = Column(Integer, nullable=False, index=True)

    amount = Column(Numeric(14, 2), nullable=False)
    payment_date = Column(Date, nullable=False, index=True)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Timestamps (immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    allocations = relationship(
        "PaymentAllocation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, amount={self.amount}, allocations={len(self.allocations)})>"
