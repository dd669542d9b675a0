from sqlalchemy import Column, String, DateTime, JSON, func
from sqlalchemy.dialects.postgresql import UUID, JSONB
import uuid

from vai_api.core.database import Base


class PlanAuditLog(Base):
    __tablename__ = "plan_audit_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    actor_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    actor_role = Column(String, nullable=True)
    action = Column(String, nullable=False)  # create | update | delete
    plan_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    values_before = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    values_after = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
