"""Plan catalog audit trail."""

import logging
from typing import Optional, Dict, Any
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.models.plan_audit_log import PlanAuditLog

logger = logging.getLogger(__name__)


async def log_plan_action(
    db: AsyncSession,
    actor_id: UUID,
    actor_role: Optional[str],
    action: str,
    plan_id: Optional[UUID] = None,
    values_before: Optional[Dict[str, Any]] = None,
    values_after: Optional[Dict[str, Any]] = None,
) -> PlanAuditLog:
    """Record a catalog change.

    Args:
        db: Database session
        actor_id: UUID of the admin performing the change
        actor_role: Role of the admin at the time of the change
        action: "create", "update" or "delete"
        plan_id: Plan affected
        values_before: Plan fields before the change (None on create)
        values_after: Plan fields after the change (None on delete)

    Returns:
        The created audit log entry
    """
    entry = PlanAuditLog(
        actor_id=actor_id,
        actor_role=actor_role,
        action=action,
        plan_id=plan_id,
        values_before=values_before,
        values_after=values_after,
    )

    db.add(entry)
    await db.commit()
    await db.refresh(entry)

    logger.info("Plan audit: actor=%s action=%s plan=%s", actor_id, action, plan_id)
    return entry
