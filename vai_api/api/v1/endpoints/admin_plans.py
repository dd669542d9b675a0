"""Plan catalog administration (super admins only)."""

import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.database import get_db
from vai_api.core.dependencies import require_admin
from vai_api.models.user import User
from vai_api.schemas.plan import PlanCreate, PlanUpdate, PlanOut, PlanList
from vai_api.services import plan_catalog

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=PlanList)
async def list_plans(
    q: Optional[str] = Query(None, description="Search by name"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    plans, total = await plan_catalog.list_plans(db, q, page, page_size)
    return PlanList(
        items=[PlanOut.model_validate(p) for p in plans],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.post("", response_model=PlanOut, status_code=201)
async def create_plan(
    body: PlanCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await plan_catalog.create_plan(db, current_user, body.model_dump())


@router.patch("/{plan_id}", response_model=PlanOut)
async def update_plan(
    plan_id: UUID,
    body: PlanUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await plan_catalog.update_plan(db, current_user, plan_id, body.model_dump(exclude_unset=True))


@router.delete("/{plan_id}")
async def delete_plan(
    plan_id: UUID,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await plan_catalog.delete_plan(db, current_user, plan_id)
    return {"ok": True}
