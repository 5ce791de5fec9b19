"""
Payments API Endpoints.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_organization_id
from backend.app.db.session import get_db
from backend.app.domain.payments.payment_service import PaymentService
from backend.app.schemas.payment import PaymentCreate, PaymentResponse, PaymentUpdate, QuickPaymentCreate
from backend.app.services.cache import CacheService, get_cache_service

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    payment_data: PaymentCreate,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """
    Record a payment split over one or more installments.

    The allocations must add up to the payment amount; either every
    allocation is applied or none is.
    """
    return await PaymentService.create_payment(
        db,
        cache,
        organization_id=organization_id,
        amount=payment_data.amount,
        payment_date=payment_data.payment_date,
        payment_method=payment_data.payment_method,
        allocations=payment_data.allocations,
        notes=payment_data.notes,
        reference=payment_data.reference,
    )


@router.post("/quick", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def quick_payment(
    payment_data: QuickPaymentCreate,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Pay a single installment."""
    return await PaymentService.quick_payment(
        db,
        cache,
        organization_id=organization_id,
        polarity=payment_data.polarity,
        installment_id=payment_data.installment_id,
        amount=payment_data.amount,
        payment_date=payment_data.payment_date,
        payment_method=payment_data.payment_method,
        reference=payment_data.reference,
        notes=payment_data.notes,
    )


@router.get("", response_model=List[PaymentResponse])
async def list_payments(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService.list_payments(db, organization_id, date_from, date_to)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService.get_payment(db, payment_id, organization_id)


@router.patch("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: int,
    update_data: PaymentUpdate,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Edit date, method, reference or notes. Amount and allocations stay as recorded."""
    return await PaymentService.update_payment(
        db,
        cache,
        payment_id,
        organization_id,
        payment_date=update_data.payment_date,
        payment_method=update_data.payment_method,
        reference=update_data.reference,
        notes=update_data.notes,
    )


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment(
    payment_id: int,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Delete a payment and reverse what it settled."""
    await PaymentService.delete_payment(db, cache, payment_id, organization_id)
