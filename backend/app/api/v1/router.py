"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import accounts, admin_ops, dashboard, payments

router = APIRouter()

# Ledger endpoints
router.include_router(accounts.router)
router.include_router(payments.router)

# Read side
router.include_router(dashboard.router)

# Ops endpoints
router.include_router(admin_ops.router)
