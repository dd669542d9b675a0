"""Net price resolution for plans.

Regular plans are charged their catalog price unless the company's active
assignment to that same plan carries a manual price override. The custom
plan ("Personalizado") has no meaningful catalog price: it costs the Premium
price plus a surcharge for every contracted seat above the 20 Premium
includes.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.config import settings
from vai_api.core.exceptions import PlanNotFound
from vai_api.models.plan import Plan
from vai_api.models.company_plan import CompanyPlan

logger = logging.getLogger(__name__)

PREMIUM_INCLUDED_SEATS = 20
CUSTOM_MIN_SEATS = 21
CUSTOM_MAX_SEATS = 50


def is_custom_plan(plan: Plan, custom_plan_name: str = settings.CUSTOM_PLAN_NAME) -> bool:
    return (plan.name or "").strip().lower() == custom_plan_name.strip().lower()


def effective_custom_cap(*caps: Optional[int]) -> int:
    """First configured cap (override before plan default), never below 21."""
    for cap in caps:
        if cap:
            return max(CUSTOM_MIN_SEATS, int(cap))
    return CUSTOM_MIN_SEATS


def custom_plan_price(premium_base, effective_cap: int, extra_advisor_price) -> Decimal:
    extra_seats = max(0, effective_cap - PREMIUM_INCLUDED_SEATS)
    return Decimal(str(premium_base)) + extra_seats * Decimal(str(extra_advisor_price or 0))


async def get_plan(db: AsyncSession, plan_id: UUID) -> Plan:
    result = await db.execute(select(Plan).where(Plan.id == plan_id))
    plan = result.scalar_one_or_none()
    if not plan:
        raise PlanNotFound(f"Plan {plan_id} not found")
    return plan


async def get_plan_by_name(db: AsyncSession, name: str) -> Optional[Plan]:
    result = await db.execute(select(Plan).where(func.lower(Plan.name) == name.lower()))
    return result.scalars().first()


async def get_active_assignment(db: AsyncSession, company_id: UUID) -> Optional[CompanyPlan]:
    result = await db.execute(
        select(CompanyPlan)
        .where(CompanyPlan.company_id == company_id, CompanyPlan.active.is_(True))
        .order_by(CompanyPlan.start_date.desc())
    )
    return result.scalars().first()


async def premium_base_price(db: AsyncSession, custom_plan: Plan) -> Decimal:
    """Premium's catalog price, or the custom plan's own price when Premium is missing."""
    premium = await get_plan_by_name(db, settings.PREMIUM_PLAN_NAME)
    if premium is not None and Decimal(str(premium.net_price or 0)) > 0:
        return Decimal(str(premium.net_price))
    logger.warning("Premium plan not found; pricing custom plan from its own base price")
    return Decimal(str(custom_plan.net_price or 0))


async def resolve_net_price(
    db: AsyncSession,
    plan_id: UUID,
    company_id: UUID,
    seat_override: Optional[int] = None,
) -> Decimal:
    """Net price the company would be charged per cycle for ``plan_id``.

    ``seat_override`` is the capacity being requested for the custom plan and
    takes precedence over the one stored on the active assignment.
    Raises PlanNotFound when the plan does not exist.
    """
    plan = await get_plan(db, plan_id)
    active = await get_active_assignment(db, company_id)
    on_this_plan = active is not None and active.plan_id == plan.id

    if is_custom_plan(plan):
        stored_override = active.max_advisors_override if on_this_plan else None
        cap = effective_custom_cap(seat_override, stored_override, plan.max_advisors)
        base = await premium_base_price(db, plan)
        return custom_plan_price(base, cap, plan.extra_advisor_price)

    if on_this_plan and active.net_price_override is not None:
        return Decimal(str(active.net_price_override))

    return Decimal(str(plan.net_price or 0))
