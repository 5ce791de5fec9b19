"""
Account Service (Domain Logic).

Use cases on whole payables / receivables: create with installments, read,
list (cached), edit, payment history, cancel and delete. Both polarities
share one implementation; the polarity argument selects the tables.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import BusinessRuleError, ValidationError
from backend.app.db.session import transaction
from backend.app.domain.accounts.installment_lifecycle import InstallmentLifecycle, load_account
from backend.app.domain.ledger.installment_generator import generate_installments
from backend.app.domain.ledger.money import ZERO, to_money
from backend.app.domain.ledger.registry import side
from backend.app.models.ledger_enums import AccountStatus, Polarity
from backend.app.models.payment import Payment
from backend.app.models.payment_allocation import PaymentAllocation
from backend.app.schemas.account import AccountResponse
from backend.app.services.cache import CacheService, invalidate_ledger_caches, list_cache_prefix

logger = logging.getLogger(__name__)

# Amount changes below this are treated as "unchanged"
AMOUNT_CHANGE_THRESHOLD = Decimal("0.001")


class AccountService:

    @staticmethod
    async def create_account(
        db: AsyncSession,
        cache: CacheService,
        polarity: Polarity,
        organization_id: int,
        counterparty_id: int,
        amount,
        due_dates: Sequence,
        installment_count: int = 1,
        category_id: Optional[int] = None,
        document_number: Optional[str] = None,
        notes: Optional[str] = None,
    ):
        """
        Create an account and its installment schedule in one transaction.

        Raises:
            ValidationError: non-positive amount, bad count, due-date count mismatch
        """
        ledger_side = side(polarity)
        total = to_money(amount)

        # Built before the transaction so that validation fails without writes
        installments = generate_installments(
            total, installment_count, due_dates, None, organization_id, polarity
        )

        account = ledger_side.account(
            organization_id=organization_id,
            counterparty_id=counterparty_id,
            category_id=category_id,
            document_number=document_number,
            notes=notes,
            total_amount=total,
            settled_amount=ZERO,
            status=AccountStatus.PENDING,
            installments=installments,
        )

        async with transaction(db):
            db.add(account)
            await db.flush()

        logger.info(
            "%s %s created (org=%s, amount=%s, installments=%s)",
            ledger_side.label, account.id, organization_id, total, installment_count
        )
        await invalidate_ledger_caches(cache, organization_id, [polarity])
        return await AccountService.get_account(db, polarity, account.id, organization_id)

    @staticmethod
    async def get_account(db: AsyncSession, polarity: Polarity, account_id: int, organization_id: int):
        return await load_account(db, polarity, account_id, organization_id)

    @staticmethod
    async def list_accounts(
        db: AsyncSession,
        cache: CacheService,
        polarity: Polarity,
        organization_id: int,
        status: Optional[AccountStatus] = None,
    ) -> List[dict]:
        """
        Accounts of an organization (optionally by status), newest first.

        Cache-aside; the cached value is the JSON form of AccountResponse.
        """
        polarity = Polarity(polarity)
        ledger_side = side(polarity)
        key = f"{list_cache_prefix(polarity, organization_id)}{status.value if status else 'all'}"

        async def compute():
            stmt = select(ledger_side.account).where(ledger_side.account.organization_id == organization_id)
            if status is not None:
                stmt = stmt.where(ledger_side.account.status == status)
            stmt = stmt.order_by(ledger_side.account.created_at.desc(), ledger_side.account.id.desc())

            result = await db.execute(stmt)
            return [
                AccountResponse.model_validate(account).model_dump(mode="json")
                for account in result.scalars().all()
            ]

        return await cache.get_or_set(key, compute, ttl_seconds=settings.cache_ttl_lists)

    @staticmethod
    async def update_account(
        db: AsyncSession,
        cache: CacheService,
        polarity: Polarity,
        account_id: int,
        organization_id: int,
        amount=None,
        counterparty_id: Optional[int] = None,
        category_id: Optional[int] = None,
        document_number: Optional[str] = None,
        notes: Optional[str] = None,
    ):
        """
        Edit an account's counterparty, category, document number, notes
        and/or total amount in one transaction. Fields left as None are kept.

        A new amount regenerates the installments with the same count and due
        dates; a change of at most 0.001 is ignored.
        """
        new_amount = None
        if amount is not None:
            new_amount = to_money(amount)
            if new_amount <= ZERO:
                raise ValidationError("Total amount must be greater than zero", details={"amount": str(new_amount)})

        changes = {
            "counterparty_id": counterparty_id,
            "category_id": category_id,
            "document_number": document_number,
            "notes": notes,
        }
        changes = {field: value for field, value in changes.items() if value is not None}

        async with transaction(db):
            account = await load_account(db, polarity, account_id, organization_id, lock=True)

            if new_amount is not None and abs(to_money(account.total_amount) - new_amount) > AMOUNT_CHANGE_THRESHOLD:
                installments = sorted(account.installments, key=lambda i: i.installment_number)
                await InstallmentLifecycle.recalculate_installments(
                    db,
                    polarity,
                    account_id,
                    organization_id,
                    new_amount,
                    len(installments),
                    [i.due_date for i in installments],
                )

            # After the recalculation, which reloads the account row
            for field, value in changes.items():
                setattr(account, field, value)

        if changes:
            logger.info(
                "%s %s updated (org=%s, fields=%s)",
                side(polarity).label, account_id, organization_id, sorted(changes)
            )
        await invalidate_ledger_caches(cache, organization_id, [polarity])
        return await AccountService.get_account(db, polarity, account_id, organization_id)

    @staticmethod
    async def update_account_amount(
        db: AsyncSession,
        cache: CacheService,
        polarity: Polarity,
        account_id: int,
        organization_id: int,
        new_amount,
    ):
        """Change only the total amount; see update_account."""
        return await AccountService.update_account(
            db, cache, polarity, account_id, organization_id, amount=new_amount
        )

    @staticmethod
    async def list_account_payments(
        db: AsyncSession,
        polarity: Polarity,
        account_id: int,
        organization_id: int,
    ) -> List[dict]:
        """
        Payments that settled installments of this account, newest first.

        Each entry carries only the allocations that hit this account, with the
        installment number they were applied to.
        """
        account = await load_account(db, polarity, account_id, organization_id)
        numbers = {i.id: i.installment_number for i in account.installments}
        if not numbers:
            return []

        column = side(polarity).allocation_column
        result = await db.execute(
            select(PaymentAllocation, Payment)
            .join(Payment, PaymentAllocation.payment_id == Payment.id)
            .where(column.in_(numbers), Payment.organization_id == organization_id)
            .order_by(Payment.payment_date.desc(), Payment.id.desc(), PaymentAllocation.id)
        )

        history: Dict[int, dict] = {}
        for allocation, payment in result.all():
            entry = history.setdefault(payment.id, {
                "payment_id": payment.id,
                "amount": payment.amount,
                "payment_date": payment.payment_date,
                "payment_method": payment.payment_method,
                "reference": payment.reference,
                "notes": payment.notes,
                "allocated_amount": ZERO,
                "allocations": [],
            })
            installment_id = allocation.target.installment_id
            entry["allocated_amount"] += to_money(allocation.amount)
            entry["allocations"].append({
                "allocation_id": allocation.id,
                "installment_id": installment_id,
                "installment_number": numbers[installment_id],
                "amount": to_money(allocation.amount),
            })

        return list(history.values())

    @staticmethod
    async def cancel_account(
        db: AsyncSession,
        cache: CacheService,
        polarity: Polarity,
        account_id: int,
        organization_id: int,
    ):
        """
        Cancel an account and all its installments.

        Raises:
            BusinessRuleError: already cancelled, or an installment has been settled
        """
        ledger_side = side(polarity)

        async with transaction(db):
            account = await load_account(db, polarity, account_id, organization_id, lock=True)

            if account.status == AccountStatus.CANCELLED:
                raise BusinessRuleError(f"{ledger_side.label} is already cancelled", details={"account_id": account_id})
            AccountService._ensure_unsettled(account, "cancel")

            account.status = AccountStatus.CANCELLED
            for installment in account.installments:
                installment.status = AccountStatus.CANCELLED

        logger.info("%s %s cancelled (org=%s)", ledger_side.label, account_id, organization_id)
        await invalidate_ledger_caches(cache, organization_id, [polarity])
        return await AccountService.get_account(db, polarity, account_id, organization_id)

    @staticmethod
    async def delete_account(
        db: AsyncSession,
        cache: CacheService,
        polarity: Polarity,
        account_id: int,
        organization_id: int,
    ) -> None:
        """Delete an account without settlements (installments go with it)."""
        ledger_side = side(polarity)

        async with transaction(db):
            account = await load_account(db, polarity, account_id, organization_id, lock=True)
            AccountService._ensure_unsettled(account, "delete")
            await db.delete(account)

        logger.info("%s %s deleted (org=%s)", ledger_side.label, account_id, organization_id)
        await invalidate_ledger_caches(cache, organization_id, [polarity])

    @staticmethod
    async def delete_installment(
        db: AsyncSession,
        cache: CacheService,
        polarity: Polarity,
        account_id: int,
        installment_id: int,
        organization_id: int,
    ):
        async with transaction(db):
            await InstallmentLifecycle.delete_installment(
                db, polarity, account_id, installment_id, organization_id
            )

        await invalidate_ledger_caches(cache, organization_id, [polarity])
        return await AccountService.get_account(db, polarity, account_id, organization_id)

    @staticmethod
    async def update_installment(
        db: AsyncSession,
        cache: CacheService,
        polarity: Polarity,
        account_id: int,
        installment_id: int,
        organization_id: int,
        amount=None,
        due_date=None,
        notes: Optional[str] = None,
    ):
        async with transaction(db):
            await InstallmentLifecycle.update_installment(
                db, polarity, account_id, installment_id, organization_id,
                amount=amount, due_date=due_date, notes=notes,
            )

        await invalidate_ledger_caches(cache, organization_id, [polarity])
        return await AccountService.get_account(db, polarity, account_id, organization_id)

    @staticmethod
    def _ensure_unsettled(account, action: str) -> None:
        settled = [i.id for i in account.installments if to_money(i.settled_amount) > ZERO]
        if settled:
            raise BusinessRuleError(
                f"Cannot {action} an account with paid installments",
                details={"account_id": account.id, "settled_installments": settled}
            )
