"""
Installment Lifecycle (Domain Logic).

Structural edits on an account's installments: delete one, edit one, or
regenerate all of them. After every structural change the installments are
renumbered densely 1..N and the account total is re-derived from them.

Only PENDING installments without allocations may be edited or deleted.
"""

import logging
from typing import List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dates import parse_date_only
from backend.app.core.exceptions import BusinessRuleError, NotFoundError, ValidationError
from backend.app.domain.ledger.balance_ledger import BalanceLedger
from backend.app.domain.ledger.installment_generator import generate_installments
from backend.app.domain.ledger.money import ZERO, to_money
from backend.app.domain.ledger.registry import side
from backend.app.models.ledger_enums import AccountStatus, Polarity
from backend.app.models.payment_allocation import PaymentAllocation

logger = logging.getLogger(__name__)


async def load_account(
    db: AsyncSession,
    polarity: Polarity,
    account_id: int,
    organization_id: int,
    lock: bool = False,
):
    """Fetch an account of the organization (installments refreshed). NotFoundError otherwise."""
    ledger_side = side(polarity)
    stmt = (
        select(ledger_side.account)
        .where(
            ledger_side.account.id == account_id,
            ledger_side.account.organization_id == organization_id,
        )
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()

    account = (await db.execute(stmt)).scalar_one_or_none()
    if account is None:
        raise NotFoundError(ledger_side.label, account_id)
    return account


class InstallmentLifecycle:

    @staticmethod
    async def delete_installment(
        db: AsyncSession,
        polarity: Polarity,
        account_id: int,
        installment_id: int,
        organization_id: int,
    ):
        """
        Delete one installment and compact the rest.

        Runs on the caller's transaction.

        Raises:
            NotFoundError: account or installment missing
            BusinessRuleError: last installment, not PENDING, or has allocations
        """
        ledger_side = side(polarity)
        await load_account(db, polarity, account_id, organization_id, lock=True)

        siblings = await InstallmentLifecycle._load_installments(db, polarity, account_id)
        installment = InstallmentLifecycle._find(siblings, installment_id, ledger_side.label)

        if len(siblings) == 1:
            raise BusinessRuleError(
                "Cannot delete the only installment; delete the account instead",
                details={"account_id": account_id}
            )
        await InstallmentLifecycle._ensure_editable(db, polarity, installment)

        await db.delete(installment)
        await db.flush()

        remaining = [i.id for i in siblings if i.id != installment_id]
        await InstallmentLifecycle._renumber(db, polarity, account_id, remaining)

        logger.info(
            "%s installment %s deleted (account=%s, remaining=%s)",
            ledger_side.label, installment_id, account_id, len(remaining)
        )
        return await BalanceLedger.recompute_account(db, polarity, account_id, recompute_total=True)

    @staticmethod
    async def update_installment(
        db: AsyncSession,
        polarity: Polarity,
        account_id: int,
        installment_id: int,
        organization_id: int,
        amount=None,
        due_date=None,
        notes: Optional[str] = None,
    ):
        """
        Edit an installment's amount, due date and/or notes.

        Notes can always be edited. Changing the amount or the due date needs a
        PENDING installment without allocations; an amount change re-derives
        the account total, a due-date change renumbers by due date.
        """
        ledger_side = side(polarity)
        await load_account(db, polarity, account_id, organization_id, lock=True)

        siblings = await InstallmentLifecycle._load_installments(db, polarity, account_id)
        installment = InstallmentLifecycle._find(siblings, installment_id, ledger_side.label)

        new_amount = to_money(amount) if amount is not None else None
        new_due_date = parse_date_only(due_date) if due_date is not None else None

        amount_changed = new_amount is not None and new_amount != to_money(installment.amount)
        due_date_changed = new_due_date is not None and new_due_date != installment.due_date

        if new_amount is not None and new_amount <= ZERO:
            raise ValidationError("Installment amount must be greater than zero", details={"amount": str(new_amount)})

        if amount_changed or due_date_changed:
            await InstallmentLifecycle._ensure_editable(db, polarity, installment)

        if amount_changed:
            installment.amount = new_amount
        if due_date_changed:
            installment.due_date = new_due_date
        if notes is not None:
            installment.notes = notes.strip() or None
        await db.flush()

        if due_date_changed:
            ordered = sorted(siblings, key=lambda i: (i.due_date, i.installment_number))
            await InstallmentLifecycle._renumber(db, polarity, account_id, [i.id for i in ordered])

        if amount_changed or due_date_changed:
            logger.info(
                "%s installment %s edited (account=%s, amount_changed=%s, due_date_changed=%s)",
                ledger_side.label, installment_id, account_id, amount_changed, due_date_changed
            )
        return await BalanceLedger.recompute_account(db, polarity, account_id, recompute_total=amount_changed)

    @staticmethod
    async def update_installment_amount(db, polarity, account_id, installment_id, organization_id, new_amount):
        return await InstallmentLifecycle.update_installment(
            db, polarity, account_id, installment_id, organization_id, amount=new_amount
        )

    @staticmethod
    async def update_installment_due_date(db, polarity, account_id, installment_id, organization_id, new_due_date):
        return await InstallmentLifecycle.update_installment(
            db, polarity, account_id, installment_id, organization_id, due_date=new_due_date
        )

    @staticmethod
    async def recalculate_installments(
        db: AsyncSession,
        polarity: Polarity,
        account_id: int,
        organization_id: int,
        new_amount,
        count: int,
        due_dates: Sequence,
    ):
        """
        Replace every installment of an account with a fresh split of ``new_amount``.

        Keeps the given count and due-date schedule. Refused when any
        installment has already been (partially) settled.
        """
        ledger_side = side(polarity)
        account = await load_account(db, polarity, account_id, organization_id, lock=True)

        if account.status == AccountStatus.CANCELLED:
            raise BusinessRuleError("Cannot recalculate a cancelled account", details={"account_id": account_id})

        siblings = await InstallmentLifecycle._load_installments(db, polarity, account_id)
        if any(
            to_money(i.settled_amount) > ZERO or i.status in (AccountStatus.PAID, AccountStatus.PARTIAL)
            for i in siblings
        ):
            raise BusinessRuleError(
                "Cannot change the amount of an account that already has payments",
                details={"account_id": account_id}
            )

        installments = generate_installments(
            new_amount, count, due_dates, account_id, organization_id, polarity
        )

        account.installments.clear()
        await db.flush()
        account.installments.extend(installments)
        account.status = AccountStatus.PENDING
        await db.flush()

        logger.info(
            "%s %s installments recalculated (amount=%s, count=%s)",
            ledger_side.label, account_id, to_money(new_amount), count
        )
        return await BalanceLedger.recompute_account(db, polarity, account_id, recompute_total=True)

    @staticmethod
    async def _load_installments(db: AsyncSession, polarity: Polarity, account_id: int) -> List:
        model = side(polarity).installment
        result = await db.execute(
            select(model)
            .where(model.account_id == account_id)
            .order_by(model.installment_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    def _find(installments: Sequence, installment_id: int, label: str):
        for installment in installments:
            if installment.id == installment_id:
                return installment
        raise NotFoundError(f"{label} installment", installment_id)

    @staticmethod
    async def _ensure_editable(db: AsyncSession, polarity: Polarity, installment) -> None:
        if installment.status != AccountStatus.PENDING:
            raise BusinessRuleError(
                "Only PENDING installments can be changed",
                details={"installment_id": installment.id, "status": installment.status.value}
            )

        allocation_column = side(polarity).allocation_column
        allocations = await db.scalar(
            select(func.count()).select_from(PaymentAllocation).where(allocation_column == installment.id)
        )
        if allocations:
            raise BusinessRuleError(
                "Cannot change an installment with registered payments",
                details={"installment_id": installment.id, "allocations": allocations}
            )

    @staticmethod
    async def _renumber(db: AsyncSession, polarity: Polarity, account_id: int, ordered_ids: Sequence[int]) -> None:
        """
        Number ``ordered_ids`` 1..N and store N on each of them.

        Numbers are first moved to negatives so that no intermediate state
        collides with the (account_id, installment_number) unique constraint.
        """
        model = side(polarity).installment
        total = len(ordered_ids)

        await db.execute(
            update(model)
            .where(model.account_id == account_id)
            .values(installment_number=-model.installment_number)
            .execution_options(synchronize_session=False)
        )
        for number, installment_id in enumerate(ordered_ids, start=1):
            await db.execute(
                update(model)
                .where(model.id == installment_id)
                .values(installment_number=number, total_installments=total)
                .execution_options(synchronize_session=False)
            )
