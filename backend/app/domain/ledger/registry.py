"""
Polarity registry.

Payables and receivables are structurally identical; ledger code picks the
concrete tables through these lookups instead of branching everywhere.
"""

from typing import NamedTuple, Type

from backend.app.models.ledger_enums import Polarity
from backend.app.models.payable import Payable
from backend.app.models.payable_installment import PayableInstallment
from backend.app.models.receivable import Receivable
from backend.app.models.receivable_installment import ReceivableInstallment
from backend.app.models.payment_allocation import PaymentAllocation


class LedgerSide(NamedTuple):
    polarity: Polarity
    account: Type
    installment: Type
    allocation_column: object
    label: str


_SIDES = {
    Polarity.PAYABLE: LedgerSide(
        Polarity.PAYABLE, Payable, PayableInstallment,
        PaymentAllocation.payable_installment_id, "Payable",
    ),
    Polarity.RECEIVABLE: LedgerSide(
        Polarity.RECEIVABLE, Receivable, ReceivableInstallment,
        PaymentAllocation.receivable_installment_id, "Receivable",
    ),
}


def side(polarity: Polarity) -> LedgerSide:
    return _SIDES[Polarity(polarity)]