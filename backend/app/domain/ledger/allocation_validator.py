"""
Allocation Validator.

Checks a proposed set of payment allocations before any mutation happens.
Three independent checks, each failing with its own error kind:
    target shape      -> ValidationError
    sum integrity     -> ValidationError
    existence/owner   -> NotFoundError
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, NamedTuple, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import NotFoundError, ValidationError
from backend.app.domain.ledger.money import ZERO, money_equal, money_sum, to_money
from backend.app.domain.ledger.registry import side
from backend.app.models.allocation_target import AllocationTarget
from backend.app.models.ledger_enums import Polarity


@dataclass(frozen=True)
class AllocationRequest:
    """Raw allocation as received from a caller (wire shape: two optional ids)."""
    amount: Decimal
    payable_installment_id: Optional[int] = None
    receivable_installment_id: Optional[int] = None

    @classmethod
    def for_target(cls, target: AllocationTarget, amount) -> "AllocationRequest":
        if target.polarity == Polarity.PAYABLE:
            return cls(amount=amount, payable_installment_id=target.installment_id)
        return cls(amount=amount, receivable_installment_id=target.installment_id)


class ValidatedAllocation(NamedTuple):
    target: AllocationTarget
    amount: Decimal


class AllocationValidator:

    @staticmethod
    def validate_allocation_targets(allocations: Sequence) -> List[ValidatedAllocation]:
        """
        Every allocation must name exactly one installment and a positive amount.

        Accepts any objects exposing ``amount``, ``payable_installment_id`` and
        ``receivable_installment_id`` (AllocationRequest or API schemas).

        Returns:
            The allocations as tagged (target, amount) pairs
        """
        if not allocations:
            raise ValidationError("A payment needs at least one allocation")

        validated = []
        for index, allocation in enumerate(allocations):
            payable_id = getattr(allocation, "payable_installment_id", None)
            receivable_id = getattr(allocation, "receivable_installment_id", None)

            if (payable_id is None) == (receivable_id is None):
                raise ValidationError(
                    "Each allocation must reference exactly one installment (payable or receivable)",
                    details={"allocation_index": index}
                )

            amount = to_money(allocation.amount)
            if amount <= ZERO:
                raise ValidationError(
                    "Allocation amount must be greater than zero",
                    details={"allocation_index": index, "amount": str(amount)}
                )

            if payable_id is not None:
                target = AllocationTarget.payable(payable_id)
            else:
                target = AllocationTarget.receivable(receivable_id)
            validated.append(ValidatedAllocation(target, amount))

        return validated

    @staticmethod
    def validate_allocations_sum(allocations: Iterable, payment_amount) -> None:
        """The allocations must add up to the payment amount (within epsilon)."""
        total_allocated = money_sum(a.amount for a in allocations)
        payment_amount = to_money(payment_amount)

        if not money_equal(total_allocated, payment_amount):
            raise ValidationError(
                f"Allocations total ({total_allocated}) must equal the payment amount ({payment_amount})",
                details={"allocated": str(total_allocated), "payment_amount": str(payment_amount)}
            )

    @staticmethod
    async def validate_installments_exist(
        db: AsyncSession,
        organization_id: int,
        targets: Iterable[AllocationTarget],
    ) -> None:
        """
        Every referenced installment must exist inside the organization.

        The rows found are compared with the full per-polarity target count, so a
        partially matching set and an installment listed twice in the same
        payment are both rejected.
        """
        targets = list(targets)
        for polarity in Polarity:
            requested = [t.installment_id for t in targets if t.polarity == polarity]
            if not requested:
                continue

            model = side(polarity).installment
            result = await db.execute(
                select(model.id).where(
                    model.id.in_(set(requested)),
                    model.organization_id == organization_id,
                )
            )
            found = set(result.scalars().all())

            if len(found) != len(requested):
                missing = sorted(set(requested) - found)
                if not missing:
                    # every id exists, so the surplus comes from repeated ids
                    missing = sorted({i for i in requested if requested.count(i) > 1})
                raise NotFoundError(f"{side(polarity).label} installment", missing[0] if len(missing) == 1 else missing)
