"""
Dashboard API Endpoints.
"""

from fastapi import APIRouter, Depends

from backend.app.core.dependencies import get_dashboard_service, get_organization_id
from backend.app.schemas.dashboard import DashboardSummary
from backend.app.services.dashboard import DashboardService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/summary", response_model=DashboardSummary)
async def get_dashboard_summary(
    organization_id: int = Depends(get_organization_id),
    dashboard: DashboardService = Depends(get_dashboard_service),
):
    """Current-month and all-time totals, overdue / upcoming installments and net balance."""
    return await dashboard.get_summary(organization_id)
