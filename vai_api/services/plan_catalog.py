"""Admin management of the plan catalog. Every mutation is audited."""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.exceptions import Conflict, InvalidInput
from vai_api.models.company_plan import CompanyPlan
from vai_api.models.plan import Plan
from vai_api.models.user import User
from vai_api.services.audit_service import log_plan_action
from vai_api.services.pricing import get_plan

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "net_price", "max_advisors", "extra_advisor_price", "cycle_days", "is_trial")


def plan_snapshot(plan: Plan) -> Dict[str, Any]:
    return {
        "name": plan.name,
        "net_price": float(plan.net_price) if plan.net_price is not None else None,
        "max_advisors": plan.max_advisors,
        "extra_advisor_price": float(plan.extra_advisor_price) if plan.extra_advisor_price is not None else None,
        "cycle_days": plan.cycle_days,
        "is_trial": plan.is_trial,
    }


def _validate(values: Dict[str, Any]) -> None:
    if "name" in values and not (values["name"] or "").strip():
        raise InvalidInput("Plan name is required")
    for key in ("max_advisors", "cycle_days"):
        if key in values and values[key] is not None and values[key] <= 0:
            raise InvalidInput(f"'{key}' must be positive")
    for key in ("net_price", "extra_advisor_price"):
        if key in values and values[key] is not None and Decimal(str(values[key])) < 0:
            raise InvalidInput(f"'{key}' must not be negative")


async def list_plans(db: AsyncSession, q: Optional[str] = None, page: int = 1, page_size: int = 10) -> Tuple[List[Plan], int]:
    page = max(page, 1)
    page_size = max(page_size, 1)
    filters = []
    if q and q.strip():
        filters.append(Plan.name.ilike(f"%{q.strip()}%"))
    total = (await db.execute(select(func.count(Plan.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(Plan).where(*filters).order_by(Plan.net_price.asc(), Plan.name)
        .offset((page - 1) * page_size).limit(page_size)
    )
    return list(result.scalars().all()), total


async def create_plan(db: AsyncSession, actor: User, values: Dict[str, Any]) -> Plan:
    values = {k: v for k, v in values.items() if k in EDITABLE_FIELDS and v is not None}
    if "name" not in values:
        raise InvalidInput("Plan name is required")
    if "max_advisors" not in values:
        raise InvalidInput("'max_advisors' is required")
    _validate(values)
    values["name"] = values["name"].strip()

    plan = Plan(**values)
    db.add(plan)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"A plan named '{values['name']}' already exists")
    await db.refresh(plan)

    await log_plan_action(db, actor.id, actor.role, "create", plan.id, None, plan_snapshot(plan))
    logger.info("Plan %s (%s) created by %s", plan.id, plan.name, actor.id)
    return plan


async def update_plan(db: AsyncSession, actor: User, plan_id: UUID, values: Dict[str, Any]) -> Plan:
    plan = await get_plan(db, plan_id)
    changes = {k: v for k, v in values.items() if k in EDITABLE_FIELDS and v is not None}
    if not changes:
        raise InvalidInput("No fields to update")
    _validate(changes)
    if "name" in changes:
        changes["name"] = changes["name"].strip()

    before = plan_snapshot(plan)
    for key, value in changes.items():
        setattr(plan, key, value)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"A plan named '{changes.get('name')}' already exists")
    await db.refresh(plan)

    await log_plan_action(db, actor.id, actor.role, "update", plan.id, before, plan_snapshot(plan))
    logger.info("Plan %s updated by %s: %s", plan.id, actor.id, sorted(changes))
    return plan


async def delete_plan(db: AsyncSession, actor: User, plan_id: UUID) -> None:
    plan = await get_plan(db, plan_id)
    in_use = await db.execute(select(func.count(CompanyPlan.id)).where(CompanyPlan.plan_id == plan.id))
    if in_use.scalar():
        raise Conflict("Plan is assigned to companies and cannot be deleted")

    before = plan_snapshot(plan)
    await db.delete(plan)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Plan is referenced by other records and cannot be deleted")

    await log_plan_action(db, actor.id, actor.role, "delete", plan_id, before, None)
    logger.info("Plan %s deleted by %s", plan_id, actor.id)
