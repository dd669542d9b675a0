"""Company bootstrap endpoint."""

import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.database import get_db
from vai_api.core.dependencies import require_company_user
from vai_api.models.user import User
from vai_api.schemas.company import BootstrapOut
from vai_api.services.companies import bootstrap_company

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/bootstrap", response_model=BootstrapOut)
async def bootstrap(
    current_user: User = Depends(require_company_user),
    db: AsyncSession = Depends(get_db),
):
    """Create the caller's company if needed and start it on the Trial plan.

    Called once the user has a session; safe to call again.
    """
    return await bootstrap_company(db, current_user)
