"""FastAPI dependencies for authentication, authorization and service wiring."""

from typing import Optional
from uuid import UUID
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.config import settings
from vai_api.core.database import get_db
from vai_api.models.user import User, ADMIN_ROLES, STAFF_ROLES, Role
from vai_api.services.auth import decode_access_token
from vai_api.services.payment_gateway import PaymentGateway, get_gateway
from vai_api.services.plan_changes import PlanChangeService
from vai_api.services.ledger_simulator import LedgerSimulator

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the current user from the bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id_str: str | None = payload.get("sub")
    if user_id_str is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID in token",
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    return user


def require_role(*roles: str):
    """Dependency factory that checks the user has one of ``roles``.

    Usage:
        @router.get("/admin-only")
        async def admin_route(user: User = Depends(require_admin)):
            ...
    """
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join(roles)}",
            )
        return current_user

    return role_checker


require_admin = require_role(*ADMIN_ROLES)
require_staff = require_role(*STAFF_ROLES)
require_company_user = require_role(Role.EMPRESA.value, *ADMIN_ROLES)


def get_payment_gateway() -> PaymentGateway:
    return get_gateway(settings)


def get_plan_change_service(
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PlanChangeService:
    return PlanChangeService(
        db,
        ledger_mode=settings.LEDGER_MODE,
        gateway=gateway,
        tax_rate=settings.TAX_RATE,
        currency=settings.CURRENCY,
    )


def get_ledger_simulator(db: AsyncSession = Depends(get_db)) -> LedgerSimulator:
    return LedgerSimulator(
        db,
        ledger_mode=settings.LEDGER_MODE,
        tax_rate=settings.TAX_RATE,
        currency=settings.CURRENCY,
    )
