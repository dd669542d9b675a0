"""Resolve which company a request acts on.

Precedence: a company id supplied by an admin, then the user's own
company_id, then a company the user owns. Non-admins can only ever act on
their own company.
"""

import logging
from typing import Optional
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.exceptions import CompanyNotFound, NotAuthorized
from vai_api.models.company import Company
from vai_api.models.user import User, STAFF_ROLES

logger = logging.getLogger(__name__)


async def _get_company(db: AsyncSession, company_id: UUID) -> Optional[Company]:
    result = await db.execute(select(Company).where(Company.id == company_id))
    return result.scalar_one_or_none()


async def resolve_company_for_actor(
    db: AsyncSession,
    user: User,
    requested_company_id: Optional[UUID] = None,
) -> Optional[Company]:
    """Return the company the actor operates on, or None when it has none.

    Raises NotAuthorized when a non-staff user names another company and
    CompanyNotFound when staff name one that does not exist.
    """
    if requested_company_id is not None:
        if user.role in STAFF_ROLES:
            company = await _get_company(db, requested_company_id)
            if company is None:
                raise CompanyNotFound(f"Company {requested_company_id} not found")
            return company
        if user.company_id is not None and user.company_id != requested_company_id:
            raise NotAuthorized("Cannot act on another company")

    if user.company_id is not None:
        company = await _get_company(db, user.company_id)
        if company is not None:
            return company
        logger.warning("User %s points at missing company %s", user.id, user.company_id)

    result = await db.execute(
        select(Company).where(Company.owner_user_id == user.id).order_by(Company.created_at)
    )
    company = result.scalars().first()
    if company is not None and requested_company_id is not None and company.id != requested_company_id:
        raise NotAuthorized("Cannot act on another company")
    return company
