"""
FastAPI Application Entry Point.

This is the main application file for the Installment Ledger Backend.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.db.session import engine, Base, AsyncSessionLocal
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.domain.accounts.overdue_sweeper import sweep_overdue
from backend.app.core.redis_client import close_redis, ping_redis
from backend.app.services.cache import get_cache_service

# Import models to ensure they are registered with Base
from backend.app.models.payable import Payable
from backend.app.models.payable_installment import PayableInstallment
from backend.app.models.receivable import Receivable
from backend.app.models.receivable_installment import ReceivableInstallment
from backend.app.models.payment import Payment
from backend.app.models.payment_allocation import PaymentAllocation

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


async def run_periodic_sweep(interval_seconds: int) -> None:
    """Sweep overdue installments every ``interval_seconds`` until cancelled."""
    while True:
        try:
            async with AsyncSessionLocal() as session:
                await sweep_overdue(session, cache=get_cache_service())
        except Exception:
            logger.exception("Periodic overdue sweep failed")
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Starts the periodic overdue sweep when configured.
    3. Stops it and closes the Redis pool on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sweeper = None
    if settings.overdue_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(run_periodic_sweep(settings.overdue_sweep_interval_seconds))
        logger.info("Overdue sweep scheduled every %ss", settings.overdue_sweep_interval_seconds)
    yield
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    if settings.cache_backend == "redis":
        await close_redis()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Installment ledger and payment allocation engine for payables and receivables",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    cache = {"backend": settings.cache_backend}
    if settings.cache_backend == "redis":
        cache["redis"] = "up" if await ping_redis() else "down"

    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "cache": cache,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Installment Ledger Backend API",
        "docs": "/docs",
        "health": "/health",
    }
