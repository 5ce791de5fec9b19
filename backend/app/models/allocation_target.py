"""
Allocation target value type.

A payment allocation settles exactly one installment on exactly one side of
the books. Carrying (polarity, installment_id) together makes the
payable-XOR-receivable rule structural instead of two nullable ids.
"""

from typing import NamedTuple

from backend.app.models.ledger_enums import Polarity


class AllocationTarget(NamedTuple):
    polarity: Polarity
    installment_id: int

    @classmethod
    def payable(cls, installment_id: int) -> "AllocationTarget":
        return cls(Polarity.PAYABLE, installment_id)

    @classmethod
    def receivable(cls, installment_id: int) -> "AllocationTarget":
        return cls(Polarity.RECEIVABLE, installment_id)

    def __str__(self) -> str:
        return f"{self.polarity.value}-installment:{self.installment_id}"
