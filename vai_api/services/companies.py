"""Company bootstrap: tenant row plus the initial Trial plan."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.config import settings
from vai_api.models.company import Company
from vai_api.models.company_plan import CompanyPlan
from vai_api.models.subscription import Subscription, SubscriptionStatus
from vai_api.models.user import User
from vai_api.services.identity import resolve_company_for_actor
from vai_api.services.plan_activation import deactivate_active
from vai_api.services.pricing import get_active_assignment, get_plan_by_name

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_DAYS = 7


@dataclass
class BootstrapResult:
    company_id: UUID
    company_created: bool = False
    trial_assigned: bool = False
    trial_ends_on: Optional[date] = None


async def bootstrap_company(db: AsyncSession, user: User, today: Optional[date] = None) -> BootstrapResult:
    """Ensure the user has a company and the company has a plan.

    A company without an active assignment is put on the Trial plan; when no
    Trial plan exists the assignment is skipped with a warning.
    """
    today = today or date.today()
    company = await resolve_company_for_actor(db, user)
    created = False
    if company is None:
        base_name = user.email.split("@")[0] if user.email else "Company"
        company = Company(owner_user_id=user.id, legal_name=base_name, trade_name=base_name)
        db.add(company)
        await db.flush()
        if user.company_id is None:
            user.company_id = company.id
        await db.commit()
        await db.refresh(company)
        created = True
        logger.info("Created company %s for user %s", company.id, user.id)

    result = BootstrapResult(company_id=company.id, company_created=created)

    if await get_active_assignment(db, company.id) is not None:
        return result

    trial = await get_plan_by_name(db, settings.TRIAL_PLAN_NAME)
    if trial is None:
        logger.warning("Trial plan '%s' not found; skipping plan assignment", settings.TRIAL_PLAN_NAME)
        return result

    ends_on = today + timedelta(days=trial.cycle_days or DEFAULT_TRIAL_DAYS)
    await deactivate_active(db, company.id)
    db.add(CompanyPlan(
        company_id=company.id,
        plan_id=trial.id,
        start_date=today,
        end_date=ends_on,
        active=True,
    ))
    db.add(Subscription(
        company_id=company.id,
        plan_id=trial.id,
        status=SubscriptionStatus.PENDING.value,
        started_at=datetime.utcnow(),
        extra={"source": "bootstrap"},
    ))
    await db.commit()

    logger.info("Company %s started on %s until %s", company.id, trial.name, ends_on)
    result.trial_assigned = True
    result.trial_ends_on = ends_on
    return result
