"""
Dashboard Service.

Read-only aggregation over installments for one organization: current-month
totals by status, overdue and upcoming lists, all-time totals and the net
balance. Independent queries run concurrently, each on its own session, and
the summary is cached per organization.
"""

import asyncio
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.config import settings
from backend.app.core.dates import add_days, end_of_month, start_of_month, today_utc
from backend.app.domain.ledger.money import to_money
from backend.app.domain.ledger.registry import side
from backend.app.models.ledger_enums import AccountStatus, Polarity
from backend.app.schemas.dashboard import (
    Balance, DashboardSummary, InstallmentSummary, PolaritySummary, StatusTotals
)
from backend.app.services.cache import CacheService, dashboard_cache_key

logger = logging.getLogger(__name__)

# Buckets that hold the still-open part of an installment
_REMAINING_BUCKETS = {
    AccountStatus.PENDING: "pending",
    AccountStatus.PARTIAL: "partial",
    AccountStatus.OVERDUE: "overdue",
}


class DashboardService:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: CacheService,
        ttl: Optional[int] = None,
        upcoming_days: Optional[int] = None,
        list_limit: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.ttl = ttl or settings.cache_ttl_dashboard
        self.upcoming_days = upcoming_days if upcoming_days is not None else settings.upcoming_days
        self.list_limit = list_limit or settings.dashboard_list_limit

    async def get_summary(self, organization_id: int, today: Optional[date] = None) -> dict:
        """Cached summary (JSON form of DashboardSummary)."""
        return await self.cache.get_or_set(
            dashboard_cache_key(organization_id),
            lambda: self._compute(organization_id, today or today_utc()),
            ttl_seconds=self.ttl,
        )

    async def invalidate(self, organization_id: int) -> None:
        await self.cache.delete(dashboard_cache_key(organization_id))

    async def _compute(self, organization_id: int, today: date) -> dict:
        month_start = start_of_month(today)
        month_end = end_of_month(today)
        upcoming_end = min(add_days(today, self.upcoming_days), month_end)

        polarities = list(Polarity)
        queries = []
        for polarity in polarities:
            queries.extend([
                self._run(self._totals, polarity, organization_id, month_start, month_end),
                self._run(self._totals, polarity, organization_id, None, None),
                self._run(self._installments, polarity, organization_id,
                          [AccountStatus.OVERDUE], month_start, today),
                self._run(self._installments, polarity, organization_id,
                          [AccountStatus.PENDING, AccountStatus.PARTIAL], today, upcoming_end),
            ])
        results = await asyncio.gather(*queries)

        summaries = {}
        for index, polarity in enumerate(polarities):
            current_month, all_time, overdue, upcoming = results[index * 4:index * 4 + 4]
            summaries[polarity] = PolaritySummary(
                current_month=current_month,
                all_time=all_time,
                overdue=overdue,
                upcoming=upcoming,
            )

        to_receive = self._open_amount(summaries[Polarity.RECEIVABLE].all_time)
        to_pay = self._open_amount(summaries[Polarity.PAYABLE].all_time)

        summary = DashboardSummary(
            organization_id=organization_id,
            period_start=month_start,
            period_end=month_end,
            payables=summaries[Polarity.PAYABLE],
            receivables=summaries[Polarity.RECEIVABLE],
            balance=Balance(to_receive=to_receive, to_pay=to_pay, net=to_receive - to_pay),
        )
        logger.debug("Dashboard computed for org %s", organization_id)
        return summary.model_dump(mode="json")

    async def _run(self, query, *args):
        # AsyncSession is not safe for concurrent use
        async with self.session_factory() as session:
            return await query(session, *args)

    @staticmethod
    async def _totals(
        db: AsyncSession,
        polarity: Polarity,
        organization_id: int,
        start: Optional[date],
        end: Optional[date],
    ) -> StatusTotals:
        """Per-status sums; PAID counts the full amount, open buckets the remaining amount."""
        model = side(polarity).installment
        stmt = select(
            model.status,
            func.count(model.id).label("installments"),
            func.coalesce(func.sum(model.amount), 0).label("amount"),
            func.coalesce(func.sum(model.settled_amount), 0).label("settled"),
        ).where(
            model.organization_id == organization_id,
            model.status != AccountStatus.CANCELLED,
        )
        if start is not None:
            stmt = stmt.where(model.due_date >= start, model.due_date <= end)
        stmt = stmt.group_by(model.status)

        totals = StatusTotals()
        for row in await db.execute(stmt):
            amount = to_money(row.amount)
            remaining = amount - to_money(row.settled)

            totals.count += row.installments
            totals.total += amount
            if row.status == AccountStatus.PAID:
                totals.paid += amount
            else:
                bucket = _REMAINING_BUCKETS[row.status]
                setattr(totals, bucket, getattr(totals, bucket) + remaining)
        return totals

    async def _installments(
        self,
        db: AsyncSession,
        polarity: Polarity,
        organization_id: int,
        statuses: List[AccountStatus],
        start: date,
        end: date,
    ) -> List[InstallmentSummary]:
        ledger_side = side(polarity)
        model = ledger_side.installment
        stmt = (
            select(model, ledger_side.account.counterparty_id)
            .join(ledger_side.account, model.account_id == ledger_side.account.id)
            .where(
                model.organization_id == organization_id,
                model.status.in_(statuses),
                model.due_date >= start,
                model.due_date <= end,
            )
            .order_by(model.due_date, model.installment_number)
            .limit(self.list_limit)
        )

        items = []
        for installment, counterparty_id in (await db.execute(stmt)).all():
            items.append(InstallmentSummary(
                id=installment.id,
                account_id=installment.account_id,
                counterparty_id=counterparty_id,
                installment_number=installment.installment_number,
                total_installments=installment.total_installments,
                amount=installment.amount,
                settled_amount=installment.settled_amount,
                remaining=to_money(installment.amount) - to_money(installment.settled_amount),
                due_date=installment.due_date,
                status=installment.status,
            ))
        return items

    @staticmethod
    def _open_amount(totals: StatusTotals):
        return to_money(totals.pending + totals.partial + totals.overdue)
