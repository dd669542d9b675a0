"""Provider-facing subscription lifecycle record."""

from sqlalchemy import Column, String, Date, DateTime, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import UUID, JSONB
import uuid
from datetime import datetime
from enum import Enum
from vai_api.core.database import Base


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ACTIVA = "activa"
    SUSPENDIDA = "suspendida"
    CANCELADA = "cancelada"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("plans.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default=SubscriptionStatus.PENDING.value, index=True)
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    external_customer_id = Column(String, nullable=True)
    external_subscription_id = Column(String, nullable=True, index=True)

    # Downgrades are scheduled here; the cycle-rollover job applies them.
    next_plan_id = Column(UUID(as_uuid=True), ForeignKey("plans.id"), nullable=True)
    next_plan_effective_date = Column(Date, nullable=True)

    extra = Column("metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
