"""Plan change and billing status endpoints."""

import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.database import get_db
from vai_api.core.dependencies import require_company_user, require_role, get_plan_change_service
from vai_api.core.exceptions import Conflict, NotAuthorized, PlanNotFound
from vai_api.models.user import User, STAFF_ROLES, Role
from vai_api.schemas.billing import PlanChangeRequest, PlanChangeOut, PlanChangePreviewOut, BillingStatusOut
from vai_api.services.identity import resolve_company_for_actor
from vai_api.services.plan_changes import PlanChangeService

router = APIRouter()
logger = logging.getLogger(__name__)

require_billing_reader = require_role(Role.EMPRESA.value, Role.ASESOR.value, *STAFF_ROLES)


async def _company_id(db: AsyncSession, user: User, requested: Optional[UUID]) -> UUID:
    company = await resolve_company_for_actor(db, user, requested)
    if company is None:
        raise NotAuthorized("Could not resolve the company for this user")
    return company.id


@router.post("/change-plan", response_model=PlanChangeOut)
async def change_plan(
    body: PlanChangeRequest,
    current_user: User = Depends(require_company_user),
    db: AsyncSession = Depends(get_db),
    service: PlanChangeService = Depends(get_plan_change_service),
):
    """Upgrade (prorated charge) or schedule a downgrade for the next cycle."""
    company_id = await _company_id(db, current_user, body.company_id)
    try:
        result = await service.change_plan(
            company_id, body.new_plan_id, body.seat_override, payer_email=current_user.email
        )
    except PlanNotFound as e:
        raise Conflict(e.message)
    logger.info("Plan change for company %s: %s", company_id, result.action)
    return result


@router.post("/preview-change", response_model=PlanChangePreviewOut)
async def preview_change(
    body: PlanChangeRequest,
    current_user: User = Depends(require_company_user),
    db: AsyncSession = Depends(get_db),
    service: PlanChangeService = Depends(get_plan_change_service),
):
    """Quote a plan change without applying it."""
    company_id = await _company_id(db, current_user, body.company_id)
    return await service.preview_change(company_id, body.new_plan_id, body.seat_override)


@router.get("/status", response_model=BillingStatusOut)
async def billing_status(
    company_id: Optional[UUID] = Query(None, description="Company to inspect (staff only)"),
    current_user: User = Depends(require_billing_reader),
    db: AsyncSession = Depends(get_db),
    service: PlanChangeService = Depends(get_plan_change_service),
):
    resolved = await _company_id(db, current_user, company_id)
    return await service.billing_status(resolved)
