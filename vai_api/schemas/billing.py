"""Pydantic schemas for plan changes and billing status."""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel


class PlanChangeRequest(BaseModel):
    """Request a move to another plan.

    ``company_id`` is only honoured for staff; company users always act on
    their own company.
    """
    new_plan_id: UUID
    company_id: Optional[UUID] = None
    seat_override: Optional[int] = None


class PlanChangeOut(BaseModel):
    action: str
    movement_id: Optional[UUID] = None
    target_plan_id: Optional[UUID] = None
    checkout_url: Optional[str] = None
    delta_net: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    total: Optional[Decimal] = None
    currency: Optional[str] = None
    scheduled: bool = False
    scheduled_for: Optional[date] = None
    next_plan_id: Optional[UUID] = None
    activated: bool = False
    reused: bool = False
    note: Optional[str] = None

    class Config:
        from_attributes = True


class PlanChangePreviewOut(BaseModel):
    action: str
    current_plan_id: UUID
    current_plan_name: str
    target_plan_id: UUID
    target_plan_name: str
    current_price: Decimal
    target_price: Decimal
    cycle_start: date
    cycle_end: date
    days_in_cycle: int
    days_remaining: int
    delta_net: Decimal
    tax: Decimal
    total: Decimal
    currency: str
    applies_from: Optional[date] = None
    scheduled_next_plan_id: Optional[UUID] = None
    scheduled_next_plan_date: Optional[date] = None
    note: Optional[str] = None

    class Config:
        from_attributes = True


class BillingStatusOut(BaseModel):
    """Current plan, cycle and scheduled changes for a company."""
    company_id: UUID
    plan_id: Optional[UUID] = None
    plan_name: Optional[str] = None
    cycle_start: Optional[date] = None
    cycle_end: Optional[date] = None
    subscription_status: Optional[str] = None
    next_plan_id: Optional[UUID] = None
    next_plan_effective_date: Optional[date] = None
    pending_movement_ids: List[UUID] = []

    class Config:
        from_attributes = True
