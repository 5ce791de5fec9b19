"""
Overdue Sweeper.

Bulk transition PENDING -> OVERDUE for installments whose due date lies
strictly before today (UTC). Idempotent: a second run matches nothing, and
PARTIAL / PAID / CANCELLED rows are never touched.
"""

import logging
from datetime import date
from typing import Dict, Optional, Set

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dates import today_utc
from backend.app.db.session import transaction
from backend.app.domain.ledger.registry import side
from backend.app.models.ledger_enums import AccountStatus, Polarity
from backend.app.services.cache import CacheService, invalidate_ledger_caches

logger = logging.getLogger(__name__)


async def sweep_overdue(
    db: AsyncSession,
    today: Optional[date] = None,
    cache: Optional[CacheService] = None,
) -> Dict[str, int]:
    """
    Mark overdue installments of every organization, both polarities, in one transaction.

    Args:
        db: Database session
        today: Reference date (defaults to the current UTC date)
        cache: When given, caches of the affected organizations are invalidated

    Returns:
        {"matched_count": n, "payables": p, "receivables": r}
    """
    today = today or today_utc()
    counts = {}
    affected: Dict[Polarity, Set[int]] = {}

    async with transaction(db):
        for polarity in Polarity:
            model = side(polarity).installment
            overdue = (model.status == AccountStatus.PENDING, model.due_date < today)

            organizations = await db.execute(select(model.organization_id).where(*overdue).distinct())
            affected[polarity] = set(organizations.scalars().all())

            result = await db.execute(
                update(model)
                .where(*overdue)
                .values(status=AccountStatus.OVERDUE)
                .execution_options(synchronize_session=False)
            )
            counts[f"{polarity.value}s"] = result.rowcount or 0

    matched = sum(counts.values())
    logger.info("Overdue sweep (today=%s): %s installments marked OVERDUE", today, matched)

    if cache is not None:
        for organization_id in set().union(*affected.values()):
            polarities = [p for p, orgs in affected.items() if organization_id in orgs]
            await invalidate_ledger_caches(cache, organization_id, polarities)

    return {"matched_count": matched, **counts}


def warn_if_cache_is_process_local(cache_backend: str) -> bool:
    """
    Out-of-process sweeps only reach the API's caches through Redis.

    With the memory backend the API keeps serving its cached dashboard and
    lists until their TTL runs out. Returns True when that warning was logged.
    """
    if cache_backend == "memory":
        logger.warning(
            "CACHE_BACKEND=memory: this sweep cannot invalidate the API process caches; "
            "set CACHE_BACKEND=redis so dashboards and lists refresh right away"
        )
        return True
    return False
