"""
Request dependencies for FastAPI.

Organization scoping and the shared services handed to the endpoints.
Authentication is handled upstream; the caller's organization arrives in the
X-Organization-ID header.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from backend.app.core.config import settings
from backend.app.db.session import get_session_factory
from backend.app.services.cache import CacheService, get_cache_service
from backend.app.services.dashboard import DashboardService


async def get_organization_id(
    x_organization_id: Optional[str] = Header(None, alias="X-Organization-ID"),
) -> int:
    """
    Resolve the organization every ledger query is scoped to.

    Raises:
        HTTPException: 400 if the header is missing or not a positive integer
    """
    if x_organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Organization-ID header is required",
        )

    try:
        organization_id = int(x_organization_id)
    except ValueError:
        organization_id = 0

    if organization_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Organization-ID must be a positive integer",
        )
    return organization_id


def get_dashboard_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    cache: CacheService = Depends(get_cache_service),
) -> DashboardService:
    return DashboardService(session_factory, cache, ttl=settings.cache_ttl_dashboard)
