"""
Payment orchestration tests: creation, atomicity, deletion and reversal.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from backend.app.core.exceptions import BusinessRuleError, NotFoundError, StorageError, ValidationError
from backend.app.domain.accounts.account_service import AccountService
from backend.app.domain.ledger.allocation_validator import AllocationRequest
from backend.app.domain.ledger.balance_ledger import BalanceLedger
from backend.app.domain.payments.payment_service import PaymentService
from backend.app.models.allocation_target import AllocationTarget
from backend.app.models.ledger_enums import AccountStatus, PaymentMethod, Polarity
from backend.app.models.payment import Payment
from backend.app.models.payment_allocation import PaymentAllocation
from backend.app.services.cache import dashboard_cache_key, list_cache_prefix

ORG_ID = 1
OTHER_ORG_ID = 2
DUE_DATES = ["2024-03-10", "2024-04-10", "2024-05-10"]


def payable(installment, amount=None):
    return AllocationRequest.for_target(
        AllocationTarget.payable(installment.id), Decimal(amount) if amount else installment.amount
    )


async def pay(db, cache, amount, allocations, organization_id=ORG_ID):
    return await PaymentService.create_payment(
        db,
        cache,
        organization_id=organization_id,
        amount=Decimal(amount),
        payment_date=date(2024, 3, 5),
        payment_method=PaymentMethod.PIX,
        allocations=allocations,
    )


async def count_rows(db, model):
    return await db.scalar(select(func.count()).select_from(model))


async def test_end_to_end_payment_lifecycle(db_session, cache, create_account):
    account = await create_account("300.00", DUE_DATES)
    first, second, third = account.installments
    assert [i.amount for i in account.installments] == [Decimal("100.00")] * 3

    await pay(db_session, cache, "100.00", [payable(first)])
    account = await AccountService.get_account(db_session, Polarity.PAYABLE, account.id, ORG_ID)
    assert account.status == AccountStatus.PARTIAL
    assert account.settled_amount == Decimal("100.00")

    payment = await pay(db_session, cache, "200.00", [payable(second), payable(third)])
    account = await AccountService.get_account(db_session, Polarity.PAYABLE, account.id, ORG_ID)
    assert account.status == AccountStatus.PAID
    assert account.settled_amount == Decimal("300.00")

    await PaymentService.delete_payment(db_session, cache, payment.id, ORG_ID)
    account = await AccountService.get_account(db_session, Polarity.PAYABLE, account.id, ORG_ID)
    assert account.status == AccountStatus.PARTIAL
    assert account.settled_amount == Decimal("100.00")
    assert [i.status for i in account.installments] == [
        AccountStatus.PAID, AccountStatus.PENDING, AccountStatus.PENDING
    ]


async def test_payment_spanning_both_polarities(db_session, cache, create_account):
    bill = await create_account("50.00", ["2024-03-10"])
    invoice = await create_account("80.00", ["2024-03-10"], polarity=Polarity.RECEIVABLE)

    payment = await pay(db_session, cache, "70.00", [
        payable(bill.installments[0], "30.00"),
        AllocationRequest.for_target(AllocationTarget.receivable(invoice.installments[0].id), Decimal("40.00")),
    ])

    assert len(payment.allocations) == 2
    assert {a.target.polarity for a in payment.allocations} == {Polarity.PAYABLE, Polarity.RECEIVABLE}

    invoice = await AccountService.get_account(db_session, Polarity.RECEIVABLE, invoice.id, ORG_ID)
    assert invoice.settled_amount == Decimal("40.00")
    assert invoice.status == AccountStatus.PARTIAL


async def test_validation_failures_write_nothing(db_session, cache, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    installment = account.installments[0]

    with pytest.raises(ValidationError):
        await pay(db_session, cache, "100.00", [payable(installment, "60.00")])

    with pytest.raises(ValidationError):
        await pay(db_session, cache, "10.00", [AllocationRequest(amount=Decimal("10.00"))])

    with pytest.raises(NotFoundError):
        await pay(db_session, cache, "10.00", [payable(installment, "10.00")], organization_id=OTHER_ORG_ID)

    assert await count_rows(db_session, Payment) == 0
    assert await count_rows(db_session, PaymentAllocation) == 0


async def test_overpaying_an_installment_rolls_back(db_session, cache, create_account):
    account = await create_account("100.00", ["2024-03-10", "2024-04-10"])
    first, second = account.installments
    account_id = account.id

    with pytest.raises(BusinessRuleError):
        await pay(db_session, cache, "110.00", [payable(first, "10.00"), payable(second, "100.00")])

    assert await count_rows(db_session, Payment) == 0
    account = await AccountService.get_account(db_session, Polarity.PAYABLE, account_id, ORG_ID)
    assert account.settled_amount == Decimal("0.00")
    assert all(i.settled_amount == Decimal("0.00") for i in account.installments)


async def test_same_installment_twice_in_one_payment_is_rejected(db_session, cache, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    installment = account.installments[0]
    account_id = account.id

    with pytest.raises(NotFoundError):
        await pay(db_session, cache, "60.00", [payable(installment, "30.00"), payable(installment, "30.00")])

    assert await count_rows(db_session, Payment) == 0
    assert await count_rows(db_session, PaymentAllocation) == 0
    account = await AccountService.get_account(db_session, Polarity.PAYABLE, account_id, ORG_ID)
    assert account.settled_amount == Decimal("0.00")


async def test_store_failure_mid_payment_rolls_everything_back(db_session, cache, create_account, mocker):
    account = await create_account("300.00", DUE_DATES)
    account_id = account.id
    allocations = [payable(i) for i in account.installments]
    original_apply = BalanceLedger.apply_settlement
    calls = []

    async def flaky_apply(db, target, delta):
        calls.append(target)
        if len(calls) == 2:
            raise OperationalError("UPDATE payable_installments", {}, Exception("could not serialize access"))
        return await original_apply(db, target, delta)

    mocker.patch.object(BalanceLedger, "apply_settlement", new=flaky_apply)

    with pytest.raises(StorageError) as exc_info:
        await pay(db_session, cache, "300.00", allocations)

    assert exc_info.value.message == "Invalid payment data"
    assert len(calls) == 2
    assert await count_rows(db_session, Payment) == 0
    assert await count_rows(db_session, PaymentAllocation) == 0

    account = await AccountService.get_account(db_session, Polarity.PAYABLE, account_id, ORG_ID)
    assert account.status == AccountStatus.PENDING
    assert account.settled_amount == Decimal("0.00")
    assert all(i.settled_amount == Decimal("0.00") for i in account.installments)
    assert all(i.status == AccountStatus.PENDING for i in account.installments)


async def test_delete_payment_of_another_organization_is_not_found(db_session, cache, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    payment = await pay(db_session, cache, "100.00", [payable(account.installments[0])])

    with pytest.raises(NotFoundError):
        await PaymentService.delete_payment(db_session, cache, payment.id, OTHER_ORG_ID)
    with pytest.raises(NotFoundError):
        await PaymentService.delete_payment(db_session, cache, 9999, ORG_ID)

    assert await count_rows(db_session, Payment) == 1


async def test_delete_payment_removes_its_allocations(db_session, cache, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    payment = await pay(db_session, cache, "100.00", [payable(account.installments[0])])

    await PaymentService.delete_payment(db_session, cache, payment.id, ORG_ID)

    assert await count_rows(db_session, Payment) == 0
    assert await count_rows(db_session, PaymentAllocation) == 0


async def test_quick_payment(db_session, cache, create_account):
    account = await create_account("100.00", ["2024-03-10", "2024-04-10"])
    installment = account.installments[1]

    payment = await PaymentService.quick_payment(
        db_session,
        cache,
        organization_id=ORG_ID,
        polarity=Polarity.PAYABLE,
        installment_id=installment.id,
        amount="50.00",
        payment_date="2024-03-01",
        payment_method=PaymentMethod.CASH,
        reference="REC-1",
    )

    assert payment.amount == Decimal("50.00")
    assert payment.reference == "REC-1"
    assert payment.allocations[0].payable_installment_id == installment.id

    account = await AccountService.get_account(db_session, Polarity.PAYABLE, account.id, ORG_ID)
    assert account.installments[1].status == AccountStatus.PAID


async def test_get_and_list_payments(db_session, cache, create_account):
    account = await create_account("100.00", ["2024-03-10", "2024-04-10"])
    first = await pay(db_session, cache, "50.00", [payable(account.installments[0])])
    second = await pay(db_session, cache, "50.00", [payable(account.installments[1])])

    fetched = await PaymentService.get_payment(db_session, first.id, ORG_ID)
    assert fetched.id == first.id
    assert len(fetched.allocations) == 1

    with pytest.raises(NotFoundError):
        await PaymentService.get_payment(db_session, first.id, OTHER_ORG_ID)

    payments = await PaymentService.list_payments(db_session, ORG_ID)
    assert [p.id for p in payments] == [second.id, first.id]
    assert await PaymentService.list_payments(db_session, OTHER_ORG_ID) == []
    assert await PaymentService.list_payments(db_session, ORG_ID, date_from=date(2024, 4, 1)) == []


async def test_payment_invalidates_organization_caches(db_session, cache, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    await cache.set(dashboard_cache_key(ORG_ID), {"stale": True})
    await cache.set(f"{list_cache_prefix(Polarity.PAYABLE, ORG_ID)}all", [])
    await cache.set(dashboard_cache_key(OTHER_ORG_ID), {"other": True})

    payment = await pay(db_session, cache, "100.00", [payable(account.installments[0])])
    assert await cache.get(dashboard_cache_key(ORG_ID)) is None
    assert await cache.get(f"{list_cache_prefix(Polarity.PAYABLE, ORG_ID)}all") is None
    assert await cache.get(dashboard_cache_key(OTHER_ORG_ID)) == {"other": True}

    await cache.set(dashboard_cache_key(ORG_ID), {"stale": True})
    await PaymentService.delete_payment(db_session, cache, payment.id, ORG_ID)
    assert await cache.get(dashboard_cache_key(ORG_ID)) is None


async def test_update_payment_changes_descriptive_fields_only(db_session, cache, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    payment = await pay(db_session, cache, "100.00", [payable(account.installments[0])])
    payment_id = payment.id
    allocation_ids = [a.id for a in payment.allocations]

    updated = await PaymentService.update_payment(
        db_session,
        cache,
        payment_id,
        ORG_ID,
        payment_date="2024-03-07",
        payment_method=PaymentMethod.BANK_TRANSFER,
        reference="TED-9",
    )

    assert updated.payment_date == date(2024, 3, 7)
    assert updated.payment_method == PaymentMethod.BANK_TRANSFER
    assert updated.reference == "TED-9"
    assert updated.notes is None
    assert updated.amount == Decimal("100.00")
    assert [a.id for a in updated.allocations] == allocation_ids

    updated = await PaymentService.update_payment(db_session, cache, payment_id, ORG_ID, notes="late fee waived")
    assert updated.notes == "late fee waived"
    assert updated.reference == "TED-9"

    account = await AccountService.get_account(db_session, Polarity.PAYABLE, account.id, ORG_ID)
    assert account.settled_amount == Decimal("100.00")


async def test_update_payment_invalidates_caches_and_respects_organization(db_session, cache, create_account):
    account = await create_account("100.00", ["2024-03-10"])
    payment = await pay(db_session, cache, "100.00", [payable(account.installments[0])])
    payment_id = payment.id

    await cache.set(dashboard_cache_key(ORG_ID), {"stale": True})
    await cache.set(f"{list_cache_prefix(Polarity.PAYABLE, ORG_ID)}all", [])
    await cache.set(f"{list_cache_prefix(Polarity.RECEIVABLE, ORG_ID)}all", [])

    await PaymentService.update_payment(db_session, cache, payment_id, ORG_ID, payment_date=date(2024, 3, 1))

    assert await cache.get(dashboard_cache_key(ORG_ID)) is None
    assert await cache.get(f"{list_cache_prefix(Polarity.PAYABLE, ORG_ID)}all") is None
    assert await cache.get(f"{list_cache_prefix(Polarity.RECEIVABLE, ORG_ID)}all") is None

    with pytest.raises(NotFoundError):
        await PaymentService.update_payment(db_session, cache, payment_id, OTHER_ORG_ID, notes="not mine")

    payment = await PaymentService.get_payment(db_session, payment_id, ORG_ID)
    assert payment.notes is None


async def test_account_payment_history(db_session, cache, create_account):
    account = await create_account("300.00", DUE_DATES)
    first, second, third = account.installments
    other = await create_account("50.00", ["2024-03-10"])
    invoice = await create_account("80.00", ["2024-03-10"], polarity=Polarity.RECEIVABLE)

    early = await pay(db_session, cache, "100.00", [payable(first)])
    late = await pay(db_session, cache, "200.00", [
        payable(second),
        payable(third, "50.00"),
        payable(other.installments[0], "30.00"),
        AllocationRequest.for_target(AllocationTarget.receivable(invoice.installments[0].id), Decimal("20.00")),
    ])
    receivable_allocation_id = next(a.id for a in late.allocations if a.receivable_installment_id is not None)
    await pay(db_session, cache, "20.00", [payable(other.installments[0], "20.00")])

    history = await AccountService.list_account_payments(db_session, Polarity.PAYABLE, account.id, ORG_ID)

    assert [entry["payment_id"] for entry in history] == [late.id, early.id]
    assert history[0]["amount"] == Decimal("200.00")
    assert history[0]["allocated_amount"] == Decimal("150.00")
    assert [a["installment_number"] for a in history[0]["allocations"]] == [2, 3]
    assert [a["amount"] for a in history[0]["allocations"]] == [Decimal("100.00"), Decimal("50.00")]
    assert history[1]["allocations"][0]["installment_id"] == first.id

    assert await AccountService.list_account_payments(db_session, Polarity.RECEIVABLE, invoice.id, ORG_ID) == [
        {
            "payment_id": late.id,
            "amount": Decimal("200.00"),
            "payment_date": date(2024, 3, 5),
            "payment_method": PaymentMethod.PIX,
            "reference": None,
            "notes": None,
            "allocated_amount": Decimal("20.00"),
            "allocations": [{
                "allocation_id": receivable_allocation_id,
                "installment_id": invoice.installments[0].id,
                "installment_number": 1,
                "amount": Decimal("20.00"),
            }],
        }
    ]

    with pytest.raises(NotFoundError):
        await AccountService.list_account_payments(db_session, Polarity.PAYABLE, account.id, OTHER_ORG_ID)
