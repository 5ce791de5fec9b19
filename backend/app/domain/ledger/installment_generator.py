"""
Installment Generator.

Splits an account total into N installments whose amounts add up to the total
exactly. Every installment gets floor(total / N) to the cent; the last one
(by number) absorbs the rounding remainder.
"""

from datetime import date
from decimal import Decimal, ROUND_FLOOR
from typing import List, Sequence

from backend.app.core.dates import add_months, parse_date_only
from backend.app.core.exceptions import ValidationError
from backend.app.domain.ledger.money import ZERO, divide, to_money
from backend.app.domain.ledger.registry import side
from backend.app.models.ledger_enums import AccountStatus, Polarity


def split_amount(total, count: int) -> List[Decimal]:
    """
    Split ``total`` into ``count`` parts, remainder on the last part.

    >>> split_amount("100.00", 3)
    [Decimal('33.33'), Decimal('33.33'), Decimal('33.34')]
    """
    if count < 1:
        raise ValidationError("Installment count must be at least 1", details={"count": count})

    total = to_money(total)
    base = divide(total, count, rounding=ROUND_FLOOR)
    remainder = total - base * count

    parts = [base] * count
    parts[-1] = base + remainder
    return parts


def generate_installments(
    total,
    count: int,
    due_dates: Sequence,
    account_id: int,
    organization_id: int,
    polarity: Polarity,
) -> list:
    """
    Build (unsaved) installment rows for an account.

    Args:
        total: Account total amount (> 0)
        count: Number of installments (>= 1)
        due_dates: Exactly ``count`` due dates; due_dates[i] goes to installment i + 1
        account_id: Parent account ID
        organization_id: Owning organization
        polarity: Payable or receivable side

    Returns:
        List of PayableInstallment / ReceivableInstallment instances

    Raises:
        ValidationError: on a non-positive total, count < 1 or a due-date count mismatch
    """
    total = to_money(total)
    if total <= ZERO:
        raise ValidationError("Total amount must be greater than zero", details={"total": str(total)})
    if count < 1:
        raise ValidationError("Installment count must be at least 1", details={"count": count})
    if due_dates is None or len(due_dates) != count:
        raise ValidationError(
            f"Expected exactly {count} due dates",
            details={"count": count, "due_dates": len(due_dates or [])}
        )

    installment_model = side(polarity).installment
    parsed_dates = [parse_date_only(d) for d in due_dates]

    return [
        installment_model(
            account_id=account_id,
            organization_id=organization_id,
            installment_number=number,
            total_installments=count,
            amount=amount,
            settled_amount=ZERO,
            due_date=due_date,
            status=AccountStatus.PENDING,
        )
        for number, (amount, due_date) in enumerate(zip(split_amount(total, count), parsed_dates), start=1)
    ]


def calculate_monthly_due_dates(start: date, count: int) -> List[date]:
    """Monthly schedule starting at ``start`` (day clamped to month length)."""
    start = parse_date_only(start)
    return [add_months(start, i) for i in range(count)]
