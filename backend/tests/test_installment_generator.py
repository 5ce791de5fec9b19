"""
Installment generation tests.
"""

from datetime import date
from decimal import Decimal

import pytest

from backend.app.core.exceptions import ValidationError
from backend.app.domain.ledger.installment_generator import (
    calculate_monthly_due_dates, generate_installments, split_amount
)
from backend.app.models.ledger_enums import AccountStatus, Polarity
from backend.app.models.payable_installment import PayableInstallment
from backend.app.models.receivable_installment import ReceivableInstallment


def test_split_puts_the_remainder_on_the_last_installment():
    assert split_amount("100.00", 3) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
    assert split_amount("10.00", 6) == [Decimal("1.66")] * 5 + [Decimal("1.70")]


@pytest.mark.parametrize("total", ["100.00", "0.05", "999.99", "1234567.89", "1.00", "7"])
def test_split_conserves_the_total(total):
    for count in range(1, 13):
        parts = split_amount(total, count)
        assert len(parts) == count
        assert sum(parts) == Decimal(total)
        assert all(part == parts[0] for part in parts[:-1])


def test_generate_assigns_due_dates_positionally():
    due_dates = [date(2024, 1, 10), "2024-02-10", "2024-03-10T00:00:00Z"]
    installments = generate_installments("300.00", 3, due_dates, 7, 1, Polarity.PAYABLE)

    assert all(isinstance(i, PayableInstallment) for i in installments)
    assert [i.installment_number for i in installments] == [1, 2, 3]
    assert {i.total_installments for i in installments} == {3}
    assert [i.due_date for i in installments] == [date(2024, 1, 10), date(2024, 2, 10), date(2024, 3, 10)]
    assert [i.amount for i in installments] == [Decimal("100.00")] * 3
    assert all(i.status == AccountStatus.PENDING and i.settled_amount == Decimal("0.00") for i in installments)
    assert all(i.account_id == 7 and i.organization_id == 1 for i in installments)


def test_generate_uses_the_receivable_table_for_receivables():
    installments = generate_installments("50.00", 1, ["2024-01-10"], 1, 1, Polarity.RECEIVABLE)
    assert isinstance(installments[0], ReceivableInstallment)


@pytest.mark.parametrize("total, count, due_dates", [
    ("100.00", 3, ["2024-01-10", "2024-02-10"]),
    ("100.00", 1, ["2024-01-10", "2024-02-10"]),
    ("100.00", 0, []),
    ("0.00", 1, ["2024-01-10"]),
    ("-5.00", 1, ["2024-01-10"]),
    ("100.00", 1, ["not-a-date"]),
])
def test_generate_rejects_invalid_input(total, count, due_dates):
    with pytest.raises(ValidationError):
        generate_installments(total, count, due_dates, 1, 1, Polarity.PAYABLE)


def test_monthly_due_dates_clamp_to_month_end():
    assert calculate_monthly_due_dates(date(2024, 1, 31), 4) == [
        date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)
    ]
    assert calculate_monthly_due_dates(date(2024, 11, 15), 3) == [
        date(2024, 11, 15), date(2024, 12, 15), date(2025, 1, 15)
    ]
