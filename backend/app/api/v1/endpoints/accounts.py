"""
Accounts API Endpoints.

Payables and receivables share one router; the polarity path segment
("payables" / "receivables") selects the side of the books.
"""

from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_organization_id
from backend.app.db.session import get_db
from backend.app.domain.accounts.account_service import AccountService
from backend.app.models.ledger_enums import AccountStatus, Polarity
from backend.app.schemas.account import (
    AccountAmountUpdate, AccountCreate, AccountPaymentResponse, AccountResponse, AccountUpdate, InstallmentUpdate
)
from backend.app.services.cache import CacheService, get_cache_service

router = APIRouter(prefix="/accounts", tags=["Accounts"])


class AccountKind(str, Enum):
    PAYABLES = "payables"
    RECEIVABLES = "receivables"

    @property
    def polarity(self) -> Polarity:
        return Polarity.PAYABLE if self is AccountKind.PAYABLES else Polarity.RECEIVABLE


@router.post("/{kind}", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    account_data: AccountCreate,
    kind: AccountKind = Path(..., description="payables or receivables"),
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Create an account and split its amount into installments."""
    return await AccountService.create_account(
        db,
        cache,
        kind.polarity,
        organization_id=organization_id,
        counterparty_id=account_data.counterparty_id,
        amount=account_data.amount,
        due_dates=account_data.due_dates,
        installment_count=account_data.installment_count,
        category_id=account_data.category_id,
        document_number=account_data.document_number,
        notes=account_data.notes,
    )


@router.get("/{kind}", response_model=List[AccountResponse])
async def list_accounts(
    kind: AccountKind,
    status_filter: Optional[AccountStatus] = Query(None, alias="status"),
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    return await AccountService.list_accounts(db, cache, kind.polarity, organization_id, status_filter)


@router.get("/{kind}/{account_id}", response_model=AccountResponse)
async def get_account(
    kind: AccountKind,
    account_id: int,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    return await AccountService.get_account(db, kind.polarity, account_id, organization_id)


@router.patch("/{kind}/{account_id}", response_model=AccountResponse)
async def update_account(
    kind: AccountKind,
    account_id: int,
    update_data: AccountUpdate,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Edit counterparty, category, document number, notes and/or the total amount."""
    return await AccountService.update_account(
        db,
        cache,
        kind.polarity,
        account_id,
        organization_id,
        amount=update_data.amount,
        counterparty_id=update_data.counterparty_id,
        category_id=update_data.category_id,
        document_number=update_data.document_number,
        notes=update_data.notes,
    )


@router.get("/{kind}/{account_id}/payments", response_model=List[AccountPaymentResponse])
async def list_account_payments(
    kind: AccountKind,
    account_id: int,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    """Payments allocated to this account, with the installment numbers they settled."""
    return await AccountService.list_account_payments(db, kind.polarity, account_id, organization_id)


@router.patch("/{kind}/{account_id}/amount", response_model=AccountResponse)
async def update_account_amount(
    kind: AccountKind,
    account_id: int,
    update_data: AccountAmountUpdate,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Change the total; installments are regenerated on the same due dates."""
    return await AccountService.update_account_amount(
        db, cache, kind.polarity, account_id, organization_id, update_data.amount
    )


@router.post("/{kind}/{account_id}/cancel", response_model=AccountResponse)
async def cancel_account(
    kind: AccountKind,
    account_id: int,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    return await AccountService.cancel_account(db, cache, kind.polarity, account_id, organization_id)


@router.delete("/{kind}/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    kind: AccountKind,
    account_id: int,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    await AccountService.delete_account(db, cache, kind.polarity, account_id, organization_id)


@router.patch("/{kind}/{account_id}/installments/{installment_id}", response_model=AccountResponse)
async def update_installment(
    kind: AccountKind,
    account_id: int,
    installment_id: int,
    update_data: InstallmentUpdate,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """
    Edit one installment.

    Amount / due date only for PENDING installments without payments;
    notes always.
    """
    return await AccountService.update_installment(
        db,
        cache,
        kind.polarity,
        account_id,
        installment_id,
        organization_id,
        amount=update_data.amount,
        due_date=update_data.due_date,
        notes=update_data.notes,
    )


@router.delete("/{kind}/{account_id}/installments/{installment_id}", response_model=AccountResponse)
async def delete_installment(
    kind: AccountKind,
    account_id: int,
    installment_id: int,
    organization_id: int = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Delete a PENDING installment; the remaining ones are renumbered."""
    return await AccountService.delete_installment(
        db, cache, kind.polarity, account_id, installment_id, organization_id
    )
