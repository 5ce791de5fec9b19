"""
Admin Operations API Endpoints.

Maintenance endpoints for schedulers and operators.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.domain.accounts.overdue_sweeper import sweep_overdue
from backend.app.schemas.dashboard import SweepResult
from backend.app.services.cache import CacheService, get_cache_service

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.post("/sweep-overdue", response_model=SweepResult)
async def trigger_overdue_sweep(
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """
    Mark PENDING installments due before today (UTC) as OVERDUE.
    Idempotent; safe to call at any interval.
    """
    return await sweep_overdue(db, cache=cache)


@router.post("/clear-cache")
async def clear_system_cache(cache: CacheService = Depends(get_cache_service)):
    """Clear the internal cache."""
    await cache.clear()
    return {"message": "Cache cleared successfully"}
