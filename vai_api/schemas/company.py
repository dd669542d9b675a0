"""Pydantic schemas for company bootstrap."""

from datetime import date
from typing import Optional
from uuid import UUID
from pydantic import BaseModel


class BootstrapOut(BaseModel):
    ok: bool = True
    company_id: UUID
    company_created: bool = False
    trial_assigned: bool = False
    trial_ends_on: Optional[date] = None
