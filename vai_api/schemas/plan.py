"""Pydantic schemas for the plan catalog."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel


class PlanCreate(BaseModel):
    name: str
    max_advisors: int
    net_price: Decimal = Decimal("0")
    extra_advisor_price: Decimal = Decimal("0")
    cycle_days: int = 30
    is_trial: bool = False


class PlanUpdate(BaseModel):
    """Partial update; omitted fields are left untouched."""
    name: Optional[str] = None
    max_advisors: Optional[int] = None
    net_price: Optional[Decimal] = None
    extra_advisor_price: Optional[Decimal] = None
    cycle_days: Optional[int] = None
    is_trial: Optional[bool] = None


class PlanOut(BaseModel):
    id: UUID
    name: str
    net_price: Decimal
    max_advisors: int
    extra_advisor_price: Decimal
    cycle_days: int
    is_trial: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PlanList(BaseModel):
    """Paginated plan list."""
    items: List[PlanOut]
    page: int
    page_size: int
    total: int
