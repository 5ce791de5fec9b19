"""
Ledger enumerations.
"""

import enum


class AccountStatus(str, enum.Enum):
    """
    Status shared by accounts and installments.

    PENDING/PARTIAL/PAID are derived from settled amounts.
    OVERDUE is set only by the overdue sweep, CANCELLED only by explicit cancellation.
    """
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class Polarity(str, enum.Enum):
    """Which side of the books an account sits on."""
    PAYABLE = "payable"  # Money owed by the organization
    RECEIVABLE = "receivable"  # Money owed to the organization


class PaymentMethod(str, enum.Enum):
    """Payment method enumeration."""
    CASH = "CASH"
    PIX = "PIX"
    BANK_TRANSFER = "BANK_TRANSFER"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BOLETO = "BOLETO"
    CHECK = "CHECK"
    OTHER = "OTHER"
