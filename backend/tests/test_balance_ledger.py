"""
Balance ledger tests: applying and reversing settlements.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from backend.app.core.exceptions import BusinessRuleError, NotFoundError
from backend.app.db.session import transaction
from backend.app.domain.ledger.balance_ledger import BalanceLedger
from backend.app.models.allocation_target import AllocationTarget
from backend.app.models.ledger_enums import AccountStatus, Polarity
from backend.app.models.payable import Payable
from backend.app.models.payable_installment import PayableInstallment


async def apply(db, installment_id, delta, polarity=Polarity.PAYABLE):
    async with transaction(db):
        return await BalanceLedger.apply_settlement(db, AllocationTarget(polarity, installment_id), Decimal(delta))


async def reverse(db, installment_id, delta, polarity=Polarity.PAYABLE):
    async with transaction(db):
        return await BalanceLedger.reverse_settlement(db, AllocationTarget(polarity, installment_id), Decimal(delta))


async def test_partial_then_full_settlement(db_session, create_account):
    account = await create_account("300.00", ["2024-03-10", "2024-04-10", "2024-05-10"])
    first = account.installments[0]

    installment = await apply(db_session, first.id, "40.00")
    assert installment.settled_amount == Decimal("40.00")
    assert installment.status == AccountStatus.PARTIAL

    await db_session.refresh(account)
    assert account.status == AccountStatus.PARTIAL
    assert account.settled_amount == Decimal("40.00")

    installment = await apply(db_session, first.id, "60.00")
    assert installment.status == AccountStatus.PAID

    await db_session.refresh(account)
    assert account.status == AccountStatus.PARTIAL
    assert account.settled_amount == Decimal("100.00")


async def test_paying_every_installment_marks_the_account_paid(db_session, create_account):
    account = await create_account("100.00", ["2024-03-10", "2024-04-10", "2024-05-10"])

    for installment in account.installments:
        await apply(db_session, installment.id, installment.amount)

    await db_session.refresh(account)
    assert account.status == AccountStatus.PAID
    assert account.settled_amount == Decimal("100.00")


async def test_apply_and_reverse_restore_the_original_state(db_session, create_account):
    account = await create_account("250.00", ["2024-03-10"])
    installment_id = account.installments[0].id

    await apply(db_session, installment_id, "70.55")
    await apply(db_session, installment_id, "100.00")
    await reverse(db_session, installment_id, "70.55")
    installment = await reverse(db_session, installment_id, "100.00")

    assert installment.settled_amount == Decimal("0.00")
    assert installment.status == AccountStatus.PENDING

    await db_session.refresh(account)
    assert account.status == AccountStatus.PENDING
    assert account.settled_amount == Decimal("0.00")


async def test_reverse_clamps_at_zero(db_session, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    installment_id = account.installments[0].id

    await apply(db_session, installment_id, "30.00")
    await reverse(db_session, installment_id, "30.00")
    installment = await reverse(db_session, installment_id, "30.00")

    assert installment.settled_amount == Decimal("0.00")
    assert installment.status == AccountStatus.PENDING


async def test_reverse_on_missing_installment_is_a_noop(db_session):
    assert await reverse(db_session, 9999, "10.00") is None


async def test_apply_on_missing_installment_raises(db_session):
    with pytest.raises(NotFoundError):
        await apply(db_session, 9999, "10.00")


async def test_overpayment_is_rejected(db_session, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    installment_id = account.installments[0].id

    await apply(db_session, installment_id, "90.00")
    with pytest.raises(BusinessRuleError):
        await apply(db_session, installment_id, "10.02")

    # within epsilon is accepted
    installment = await apply(db_session, installment_id, "10.01")
    assert installment.status == AccountStatus.PAID


async def test_cancelled_installment_cannot_be_settled(db_session, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    installment_id = account.installments[0].id

    await db_session.execute(
        update(PayableInstallment).where(PayableInstallment.id == installment_id).values(status=AccountStatus.CANCELLED)
    )
    await db_session.commit()

    with pytest.raises(BusinessRuleError):
        await apply(db_session, installment_id, "10.00")


async def test_partial_payment_moves_overdue_installment_to_partial(db_session, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    installment_id = account.installments[0].id

    await db_session.execute(
        update(PayableInstallment).where(PayableInstallment.id == installment_id).values(status=AccountStatus.OVERDUE)
    )
    await db_session.commit()

    installment = await apply(db_session, installment_id, "10.00")
    assert installment.status == AccountStatus.PARTIAL

    installment = await reverse(db_session, installment_id, "10.00")
    assert installment.status == AccountStatus.PENDING


async def test_recompute_keeps_cancelled_and_overdue_accounts(db_session, create_account):
    cancelled = await create_account("100.00", ["2024-03-10"])
    overdue = await create_account("100.00", ["2024-03-10"])

    await db_session.execute(
        update(Payable).where(Payable.id == cancelled.id).values(status=AccountStatus.CANCELLED)
    )
    await db_session.execute(
        update(Payable).where(Payable.id == overdue.id).values(status=AccountStatus.OVERDUE)
    )
    await db_session.commit()

    async with transaction(db_session):
        result = await BalanceLedger.recompute_account(db_session, Polarity.PAYABLE, cancelled.id)
        assert result.status == AccountStatus.CANCELLED
        result = await BalanceLedger.recompute_account(db_session, Polarity.PAYABLE, overdue.id)
        assert result.status == AccountStatus.OVERDUE


async def test_receivable_side_uses_receivable_tables(db_session, create_account):
    account = await create_account("80.00", ["2024-03-10"], polarity=Polarity.RECEIVABLE)
    installment = await apply(db_session, account.installments[0].id, "80.00", polarity=Polarity.RECEIVABLE)

    assert installment.status == AccountStatus.PAID
    await db_session.refresh(account)
    assert account.status == AccountStatus.PAID
