"""
Payment Service (Domain Logic).

Creates and deletes payments as atomic units together with their allocations,
applying or reversing each allocation on its installment through the balance
ledger. Validation runs before the transaction opens; everything after that is
one unit of work.
"""

import logging
from datetime import date
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dates import parse_date_only
from backend.app.core.exceptions import NotFoundError, StorageError
from backend.app.db.session import transaction
from backend.app.domain.ledger.allocation_validator import AllocationRequest, AllocationValidator
from backend.app.domain.ledger.balance_ledger import BalanceLedger
from backend.app.domain.ledger.money import to_money
from backend.app.models.allocation_target import AllocationTarget
from backend.app.models.ledger_enums import PaymentMethod, Polarity
from backend.app.models.payment import Payment
from backend.app.models.payment_allocation import PaymentAllocation
from backend.app.services.cache import CacheService, invalidate_ledger_caches

logger = logging.getLogger(__name__)


class PaymentService:

    @staticmethod
    async def create_payment(
        db: AsyncSession,
        cache: CacheService,
        organization_id: int,
        amount,
        payment_date,
        payment_method: PaymentMethod,
        allocations: Sequence,
        notes: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> Payment:
        """
        Record a payment and settle every allocated installment.

        Flow:
        1. Validate allocation shape and sum (no writes yet)
        2. Transaction: check installments exist, insert payment + allocations,
           apply each settlement
        3. Invalidate organization caches (after commit)

        Raises:
            ValidationError: bad allocation shape, non-positive amount, sum mismatch
            NotFoundError: an installment is missing or belongs to another organization
            BusinessRuleError: allocation overshoots or targets a cancelled installment
            StorageError: the store rejected a write
        """
        validated = AllocationValidator.validate_allocation_targets(allocations)
        AllocationValidator.validate_allocations_sum(validated, amount)

        amount = to_money(amount)
        payment_date = parse_date_only(payment_date)

        try:
            async with transaction(db):
                await AllocationValidator.validate_installments_exist(
                    db, organization_id, (v.target for v in validated)
                )

                payment = Payment(
                    organization_id=organization_id,
                    amount=amount,
                    payment_date=payment_date,
                    payment_method=PaymentMethod(payment_method),
                    reference=reference,
                    notes=notes,
                    allocations=[PaymentAllocation.for_target(v.target, v.amount) for v in validated],
                )
                db.add(payment)
                await db.flush()

                for allocation in validated:
                    await BalanceLedger.apply_settlement(db, allocation.target, allocation.amount)
        except SQLAlchemyError:
            logger.error("Payment rejected by the store (org=%s)", organization_id, exc_info=True)
            raise StorageError()

        logger.info(
            "Payment %s created (org=%s, amount=%s, allocations=%s)",
            payment.id, organization_id, amount, len(validated)
        )

        await invalidate_ledger_caches(
            cache, organization_id, {v.target.polarity for v in validated}
        )
        return await PaymentService._load_payment(db, payment.id, organization_id)

    @staticmethod
    async def quick_payment(
        db: AsyncSession,
        cache: CacheService,
        organization_id: int,
        polarity: Polarity,
        installment_id: int,
        amount,
        payment_date,
        payment_method: PaymentMethod,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Payment:
        """Single-allocation payment against one installment."""
        target = AllocationTarget(Polarity(polarity), installment_id)
        return await PaymentService.create_payment(
            db,
            cache,
            organization_id=organization_id,
            amount=amount,
            payment_date=payment_date,
            payment_method=payment_method,
            allocations=[AllocationRequest.for_target(target, amount)],
            notes=notes,
            reference=reference,
        )

    @staticmethod
    async def delete_payment(
        db: AsyncSession,
        cache: CacheService,
        payment_id: int,
        organization_id: int,
    ) -> None:
        """
        Reverse every allocation of a payment, then delete it.

        Allocations are removed with the payment. Lists of both polarities are
        invalidated since the payment may span both.
        """
        try:
            async with transaction(db):
                payment = await PaymentService._load_payment(db, payment_id, organization_id, lock=True)

                for allocation in payment.allocations:
                    await BalanceLedger.reverse_settlement(db, allocation.target, allocation.amount)

                await db.delete(payment)
        except SQLAlchemyError:
            logger.error("Payment %s deletion rejected by the store", payment_id, exc_info=True)
            raise StorageError()

        logger.info("Payment %s deleted (org=%s)", payment_id, organization_id)
        await invalidate_ledger_caches(cache, organization_id)

    @staticmethod
    async def update_payment(
        db: AsyncSession,
        cache: CacheService,
        payment_id: int,
        organization_id: int,
        payment_date=None,
        payment_method: Optional[PaymentMethod] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Payment:
        """
        Edit a payment's descriptive fields. Fields left as None are kept.

        Amount and allocations are fixed once recorded; to change them, delete
        the payment and create a new one.
        """
        changes = {
            "payment_date": parse_date_only(payment_date) if payment_date is not None else None,
            "payment_method": PaymentMethod(payment_method) if payment_method is not None else None,
            "reference": reference,
            "notes": notes,
        }
        changes = {field: value for field, value in changes.items() if value is not None}

        try:
            async with transaction(db):
                payment = await PaymentService._load_payment(db, payment_id, organization_id, lock=True)
                for field, value in changes.items():
                    setattr(payment, field, value)
        except SQLAlchemyError:
            logger.error("Payment %s update rejected by the store", payment_id, exc_info=True)
            raise StorageError()

        logger.info("Payment %s updated (org=%s, fields=%s)", payment_id, organization_id, sorted(changes))
        # Dashboard windows and lists depend on payment dates
        await invalidate_ledger_caches(cache, organization_id)
        return await PaymentService._load_payment(db, payment_id, organization_id)

    @staticmethod
    async def get_payment(db: AsyncSession, payment_id: int, organization_id: int) -> Payment:
        return await PaymentService._load_payment(db, payment_id, organization_id)

    @staticmethod
    async def list_payments(
        db: AsyncSession,
        organization_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Payment]:
        """Payments of an organization, newest first, optionally bounded by payment date."""
        stmt = select(Payment).where(Payment.organization_id == organization_id)
        if date_from is not None:
            stmt = stmt.where(Payment.payment_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(Payment.payment_date <= date_to)
        stmt = stmt.order_by(Payment.payment_date.desc(), Payment.id.desc())

        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def _load_payment(db: AsyncSession, payment_id: int, organization_id: int, lock: bool = False) -> Payment:
        stmt = select(Payment).where(
            Payment.id == payment_id,
            Payment.organization_id == organization_id,
        ).execution_options(populate_existing=True)
        if lock:
            stmt = stmt.with_for_update()

        payment = (await db.execute(stmt)).scalar_one_or_none()
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment
