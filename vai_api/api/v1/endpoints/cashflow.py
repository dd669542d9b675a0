"""Admin cashflow: per-company summaries, KPIs, ledger and period simulation."""

import logging
from datetime import date
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.config import settings
from vai_api.core.database import get_db
from vai_api.core.dependencies import require_admin, get_ledger_simulator
from vai_api.models.user import User
from vai_api.schemas.cashflow import (
    CompanySummaryPage,
    PeriodKpisOut,
    MovementPage,
    SimulatePeriodIn,
    SimulatePeriodOut,
)
from vai_api.services import cashflow
from vai_api.services.ledger_simulator import LedgerSimulator

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/companies", response_model=CompanySummaryPage)
async def company_summaries(
    date_from: date = Query(...),
    date_to: date = Query(...),
    q: Optional[str] = Query(None, description="Search by company name or tax id"),
    plan: Optional[str] = Query(None, description="Exact plan name"),
    plan_state: str = Query("all", pattern="^(all|active|inactive)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    sort_by: Optional[str] = Query(None, pattern="^(mrr|income|name|movements|last_movement)$"),
    sort_dir: Optional[str] = Query(None, pattern="^(asc|desc)$"),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await cashflow.company_summaries(
        db, date_from, date_to,
        q=q, plan_name=plan, plan_state=plan_state,
        page=page, page_size=page_size,
        sort_by=sort_by, sort_dir=sort_dir,
        tax_rate=settings.TAX_RATE,
    )


@router.get("/kpis", response_model=PeriodKpisOut)
async def period_kpis(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """MRR, income, ARPU and churn/upgrade/downgrade counts. Defaults to the current month."""
    return await cashflow.period_kpis(db, date_from, date_to, tax_rate=settings.TAX_RATE)


@router.get("/movements", response_model=MovementPage)
async def list_movements(
    date_from: date = Query(...),
    date_to: date = Query(...),
    company_id: Optional[UUID] = Query(None),
    gateway: Optional[str] = Query(None),
    state: Optional[str] = Query(None, pattern="^(pending|paid|failed|refunded)$"),
    type: Optional[str] = Query(None, pattern="^(subscription|extra_asesor|ajuste)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await cashflow.list_movements(
        db, date_from, date_to,
        company_id=company_id, gateway=gateway, state=state, movement_type=type,
        page=page, page_size=page_size, tax_rate=settings.TAX_RATE,
    )


@router.post("/simulate-period", response_model=SimulatePeriodOut)
async def simulate_period(
    body: SimulatePeriodIn,
    current_user: User = Depends(require_admin),
    simulator: LedgerSimulator = Depends(get_ledger_simulator),
):
    """Book simulated subscription and overage charges for the range. Disabled in live mode."""
    logger.info("Period simulation %s..%s requested by %s", body.date_from, body.date_to, current_user.id)
    return await simulator.simulate_period(body.date_from, body.date_to, body.company_id, body.overwrite)
