"""Authentication endpoints."""

import logging
from datetime import datetime
from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.database import get_db
from vai_api.core.dependencies import get_current_user
from vai_api.models.user import User
from vai_api.schemas.auth import UserLogin, Token, UserOut
from vai_api.services.auth import authenticate_user, create_access_token

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/login", response_model=Token)
async def login(credentials: UserLogin, db: AsyncSession = Depends(get_db)):
    """Exchange email and password for a bearer token."""
    user = await authenticate_user(db, credentials.email, credentials.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User account is disabled")

    user.last_login_at = datetime.utcnow()
    await db.commit()

    logger.info("User %s logged in", user.id)
    return Token(
        access_token=create_access_token(user),
        user_id=user.id,
        company_id=user.company_id,
        role=user.role,
        full_name=user.full_name,
        email=user.email,
    )


@router.get("/me", response_model=UserOut)
async def me(current_user: User = Depends(get_current_user)):
    return current_user
