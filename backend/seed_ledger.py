"""
Database seeding script for a demo organization.

Creates a few payables and receivables (single and split into installments)
and one payment, so the dashboard has something to show.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from backend.app.core.dates import add_days, today_utc
from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.domain.accounts.account_service import AccountService
from backend.app.domain.ledger.installment_generator import calculate_monthly_due_dates
from backend.app.domain.payments.payment_service import PaymentService
from backend.app.models.ledger_enums import PaymentMethod, Polarity
from backend.app.models.payable import Payable
from backend.app.services.cache import get_cache_service

DEMO_ORGANIZATION_ID = 1


async def seed_ledger():
    """
    Seed demo ledger data for organization 1.

    Creates:
    - 1 single-installment payable (due in 5 days)
    - 1 payable of 1000.00 in 3 monthly installments
    - 1 receivable of 2500.00 in 2 monthly installments
    - 1 payment settling the first payable installment
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    cache = get_cache_service()
    today = today_utc()

    async with AsyncSessionLocal() as db:
        print("🌱 Starting ledger seeding...")

        result = await db.execute(
            select(Payable).where(Payable.organization_id == DEMO_ORGANIZATION_ID).limit(1)
        )
        if result.scalar_one_or_none():
            print("ℹ️  Demo organization already has data, skipping seeding")
            return

        rent = await AccountService.create_account(
            db, cache, Polarity.PAYABLE,
            organization_id=DEMO_ORGANIZATION_ID,
            counterparty_id=1,
            amount="350.00",
            due_dates=[add_days(today, 5)],
            document_number="RENT-001",
        )
        print(f"✅ Created payable {rent.id} (350.00, 1 installment)")

        supplier = await AccountService.create_account(
            db, cache, Polarity.PAYABLE,
            organization_id=DEMO_ORGANIZATION_ID,
            counterparty_id=2,
            amount="1000.00",
            installment_count=3,
            due_dates=calculate_monthly_due_dates(today, 3),
            document_number="INV-2024-17",
        )
        print(f"✅ Created payable {supplier.id} (1000.00, 3 installments)")

        project = await AccountService.create_account(
            db, cache, Polarity.RECEIVABLE,
            organization_id=DEMO_ORGANIZATION_ID,
            counterparty_id=10,
            amount="2500.00",
            installment_count=2,
            due_dates=calculate_monthly_due_dates(add_days(today, 2), 2),
        )
        print(f"✅ Created receivable {project.id} (2500.00, 2 installments)")

        first = supplier.installments[0]
        payment = await PaymentService.quick_payment(
            db, cache,
            organization_id=DEMO_ORGANIZATION_ID,
            polarity=Polarity.PAYABLE,
            installment_id=first.id,
            amount=first.amount,
            payment_date=today,
            payment_method=PaymentMethod.PIX,
        )
        print(f"✅ Created payment {payment.id} ({payment.amount} on installment {first.id})")

        print("\n🎉 Ledger seeding completed successfully!")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_ledger())
