"""Pydantic schemas for the admin cashflow screens."""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel


class CompanySummaryOut(BaseModel):
    company_id: UUID
    company_name: str
    tax_id: Optional[str] = None
    plan_name: Optional[str] = None
    plan_active: bool
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    mrr: Decimal
    period_net_income: Decimal
    period_income_with_tax: Decimal
    movement_count: int
    last_movement_at: Optional[datetime] = None
    seats_used: int
    plan_cap: int
    seat_override: Optional[int] = None
    excess_seats: int


class CompanySummaryPage(BaseModel):
    page: int
    page_size: int
    total: int
    items: List[CompanySummaryOut]


class PeriodKpisOut(BaseModel):
    date_from: date
    date_to: date
    mrr: Decimal
    net_income: Decimal
    income_with_tax: Decimal
    arpu: Decimal
    active_companies: int
    churned_companies: int
    upgrades: int
    downgrades: int


class MovementOut(BaseModel):
    id: UUID
    company_id: UUID
    company_name: str
    date: datetime
    type: str
    state: str
    gateway: str
    description: Optional[str] = None
    currency: str
    net_amount: Decimal
    tax: Decimal
    total_with_tax: Decimal


class MovementPage(BaseModel):
    page: int
    page_size: int
    total: int
    items: List[MovementOut]


class SimulatePeriodIn(BaseModel):
    """Range to materialize; dates are inclusive."""
    date_from: date
    date_to: date
    company_id: Optional[UUID] = None
    overwrite: bool = False


class SimulatePeriodOut(BaseModel):
    inserted: int
    skipped: int
    overwritten: int
    periods: List[str]
    details: List[Dict] = []
    warning: Optional[str] = None
