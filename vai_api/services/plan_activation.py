"""Mutations of the company-plan assignment chain.

The prior active row is always deactivated with a bulk UPDATE before the
target row is switched on, so the one-active-per-company index never sees
two active rows. A row superseded by another plan is closed the day before
the switch, so its interval stops where the next one starts.
"""

import logging
from datetime import date, timedelta
from typing import Optional
from uuid import UUID
from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.models.company_plan import CompanyPlan

logger = logging.getLogger(__name__)


async def deactivate_active(db: AsyncSession, company_id: UUID, end_date: Optional[date] = None) -> int:
    values = {"active": False}
    if end_date is not None:
        values["end_date"] = end_date
    result = await db.execute(
        update(CompanyPlan)
        .where(CompanyPlan.company_id == company_id, CompanyPlan.active.is_(True))
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


async def close_superseded(db: AsyncSession, company_id: UUID, plan_id: UUID, today: date) -> int:
    """Stamp an end date on open or active rows of other plans.

    The end date is the day before ``today``, never earlier than the row's
    own start, and an earlier end date already on the row is kept.
    """
    close_on = today - timedelta(days=1)
    result = await db.execute(
        select(CompanyPlan).where(
            CompanyPlan.company_id == company_id,
            CompanyPlan.plan_id != plan_id,
            or_(CompanyPlan.active.is_(True), CompanyPlan.end_date.is_(None)),
        )
    )
    closed = 0
    for row in result.scalars().all():
        end = max(close_on, row.start_date)
        if row.end_date is None or row.end_date > end:
            row.end_date = end
            closed += 1
    return closed


async def activate_plan(
    db: AsyncSession,
    company_id: UUID,
    plan_id: UUID,
    seat_override: Optional[int] = None,
    today: Optional[date] = None,
) -> CompanyPlan:
    """Make ``plan_id`` the company's single active assignment.

    Rows of other plans are closed first. The most recent row for the target
    plan is reused (clearing its end date) unless it was closed before today,
    in which case a new row starting today is inserted.
    """
    today = today or date.today()
    closed = await close_superseded(db, company_id, plan_id, today)
    await deactivate_active(db, company_id)

    result = await db.execute(
        select(CompanyPlan)
        .where(CompanyPlan.company_id == company_id, CompanyPlan.plan_id == plan_id)
        .order_by(CompanyPlan.start_date.desc())
        .limit(1)
    )
    assignment = result.scalar_one_or_none()
    if assignment is not None and assignment.end_date is not None and assignment.end_date < today:
        assignment = None

    if assignment:
        assignment.active = True
        assignment.end_date = None
    else:
        assignment = CompanyPlan(
            company_id=company_id,
            plan_id=plan_id,
            start_date=today,
            active=True,
        )
        db.add(assignment)

    if seat_override is not None:
        assignment.max_advisors_override = seat_override

    await db.commit()
    await db.refresh(assignment)

    logger.info(
        "Activated plan %s for company %s (assignment=%s, seat_override=%s, closed=%d)",
        plan_id, company_id, assignment.id, seat_override, closed,
    )
    return assignment


async def suspend_plan(db: AsyncSession, company_id: UUID) -> int:
    """Deactivate the active assignment without activating another one."""
    count = await deactivate_active(db, company_id)
    await db.commit()
    logger.info("Suspended %d active assignment(s) for company %s", count, company_id)
    return count


async def cancel_plan(db: AsyncSession, company_id: UUID, today: Optional[date] = None) -> int:
    """Deactivate the active assignment and close it today."""
    today = today or date.today()
    count = await deactivate_active(db, company_id, end_date=today)
    await db.commit()
    logger.info("Canceled %d active assignment(s) for company %s", count, company_id)
    return count
