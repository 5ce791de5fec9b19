"""
Balance Ledger (Domain Logic).

Applies and reverses settlement amounts on installments and re-derives the
parent account aggregates. Every method runs on the caller's session and only
flushes; the calling use case owns the transaction.

The account aggregate is always recomputed from the full sibling set read
inside the same transaction, never incremented, so concurrent writers on the
same account converge on the last committed recomputation.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import BusinessRuleError, NotFoundError
from backend.app.domain.ledger.money import MONEY_EPSILON, ZERO, money_sum, to_money
from backend.app.domain.ledger.registry import side
from backend.app.domain.ledger.status_resolver import resolve_account_status, resolve_status
from backend.app.models.allocation_target import AllocationTarget
from backend.app.models.ledger_enums import AccountStatus, Polarity

logger = logging.getLogger(__name__)


class BalanceLedger:

    @staticmethod
    async def apply_settlement(db: AsyncSession, target: AllocationTarget, delta) -> object:
        """
        Add ``delta`` to an installment's settled amount.

        Flow:
        1. Load installment (row lock where supported)
        2. New settled = settled + delta, bounded by amount + epsilon
        3. Resolve status (OVERDUE is kept while the result is still PENDING)
        4. Recompute parent account

        Raises:
            NotFoundError: installment does not exist
            BusinessRuleError: installment cancelled, or delta overshoots the amount
        """
        ledger_side = side(target.polarity)
        installment = await BalanceLedger._load_installment(db, target)

        if installment is None:
            raise NotFoundError(f"{ledger_side.label} installment", target.installment_id)

        if installment.status == AccountStatus.CANCELLED:
            raise BusinessRuleError(
                "Cannot settle a cancelled installment",
                details={"installment_id": installment.id}
            )

        amount = to_money(installment.amount)
        new_settled = to_money(installment.settled_amount) + to_money(delta)

        if new_settled > amount + MONEY_EPSILON:
            raise BusinessRuleError(
                "Allocation exceeds the installment's outstanding balance",
                details={
                    "installment_id": installment.id,
                    "outstanding": str(amount - to_money(installment.settled_amount)),
                    "requested": str(to_money(delta)),
                }
            )

        new_status = resolve_status(amount, new_settled)
        if installment.status == AccountStatus.OVERDUE and new_status == AccountStatus.PENDING:
            new_status = AccountStatus.OVERDUE

        installment.settled_amount = new_settled
        installment.status = new_status
        await db.flush()

        await BalanceLedger.recompute_account(db, target.polarity, installment.account_id)
        return installment

    @staticmethod
    async def reverse_settlement(db: AsyncSession, target: AllocationTarget, delta) -> Optional[object]:
        """
        Subtract ``delta`` from an installment's settled amount.

        Tolerant: a missing installment is a no-op, and the settled amount is
        clamped at zero. Exactly zero settled always resolves to PENDING.
        """
        installment = await BalanceLedger._load_installment(db, target)

        if installment is None:
            logger.debug("Reversal skipped, %s no longer exists", target)
            return None

        current = to_money(installment.settled_amount)
        new_settled = max(ZERO, current - to_money(delta))

        if new_settled == ZERO:
            new_status = AccountStatus.PENDING
        else:
            new_status = resolve_status(installment.amount, new_settled)

        installment.settled_amount = new_settled
        installment.status = new_status
        await db.flush()

        await BalanceLedger.recompute_account(db, target.polarity, installment.account_id)
        return installment

    @staticmethod
    async def recompute_account(
        db: AsyncSession,
        polarity: Polarity,
        account_id: int,
        recompute_total: bool = False,
    ) -> object:
        """
        Re-derive an account's settled amount and status from all its installments.

        CANCELLED accounts keep their status; OVERDUE is kept while the derived
        status would be PENDING. With ``recompute_total`` the account total is
        re-derived as well (structural edits).
        """
        ledger_side = side(polarity)

        result = await db.execute(
            select(ledger_side.account)
            .where(ledger_side.account.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise NotFoundError(ledger_side.label, account_id)

        result = await db.execute(
            select(ledger_side.installment)
            .where(ledger_side.installment.account_id == account_id)
            .order_by(ledger_side.installment.installment_number)
            .execution_options(populate_existing=True)
        )
        installments = result.scalars().all()

        derived = resolve_account_status(i.status for i in installments)

        if account.status == AccountStatus.CANCELLED:
            new_status = AccountStatus.CANCELLED
        elif account.status == AccountStatus.OVERDUE and derived == AccountStatus.PENDING:
            new_status = AccountStatus.OVERDUE
        else:
            new_status = derived

        account.settled_amount = money_sum(i.settled_amount for i in installments)
        account.status = new_status
        if recompute_total:
            account.total_amount = money_sum(i.amount for i in installments)

        await db.flush()
        return account

    @staticmethod
    async def _load_installment(db: AsyncSession, target: AllocationTarget):
        model = side(target.polarity).installment
        result = await db.execute(
            select(model)
            .where(model.id == target.installment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
