"""
Status resolution.

Pure functions mapping settlement progress to statuses. Dates are irrelevant
here: OVERDUE and CANCELLED are never produced by these functions.
"""

from decimal import Decimal
from typing import Iterable

from backend.app.domain.ledger.money import MONEY_EPSILON, ZERO, to_money
from backend.app.models.ledger_enums import AccountStatus

def resolve_status(total, settled, epsilon: Decimal = MONEY_EPSILON) -> AccountStatus:
    """
    PAID if settled >= total - epsilon, PARTIAL if settled > 0, else PENDING.
    """
    total = to_money(total)
    settled = to_money(settled)

    if settled >= total - epsilon:
        return AccountStatus.PAID
    if settled > ZERO:
        return AccountStatus.PARTIAL
    return AccountStatus.PENDING


def resolve_account_status(installment_statuses: Iterable[AccountStatus]) -> AccountStatus:
    """
    Derive an account's status from its installments.

    PAID when every installment is PAID, PARTIAL when any is PAID or PARTIAL,
    PENDING otherwise.
    """
    statuses = list(installment_statuses)
    if statuses and all(s == AccountStatus.PAID for s in statuses):
        return AccountStatus.PAID
    if any(s in (AccountStatus.PAID, AccountStatus.PARTIAL) for s in statuses):
        return AccountStatus.PARTIAL
    return AccountStatus.PENDING
