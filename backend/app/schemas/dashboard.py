"""
Dashboard Schemas.

Money values are serialized as strings ("123.45") so cached summaries keep
their exact decimal form.
"""

from datetime import date
from decimal import Decimal
from typing import List

from pydantic import BaseModel

from backend.app.models.ledger_enums import AccountStatus


class StatusTotals(BaseModel):
    total: Decimal = Decimal("0.00")
    paid: Decimal = Decimal("0.00")
    pending: Decimal = Decimal("0.00")
    partial: Decimal = Decimal("0.00")
    overdue: Decimal = Decimal("0.00")
    count: int = 0


class InstallmentSummary(BaseModel):
    id: int
    account_id: int
    counterparty_id: int
    installment_number: int
    total_installments: int
    amount: Decimal
    settled_amount: Decimal
    remaining: Decimal
    due_date: date
    status: AccountStatus


class PolaritySummary(BaseModel):
    current_month: StatusTotals
    all_time: StatusTotals
    overdue: List[InstallmentSummary] = []
    upcoming: List[InstallmentSummary] = []


class Balance(BaseModel):
    to_receive: Decimal
    to_pay: Decimal
    net: Decimal


class DashboardSummary(BaseModel):
    """Organization summary: payables, receivables and the net balance."""
    organization_id: int
    period_start: date
    period_end: date
    payables: PolaritySummary
    receivables: PolaritySummary
    balance: Balance


class SweepResult(BaseModel):
    matched_count: int
    payables: int
    receivables: int
