"""Append-only log of payment-provider notifications.

(provider, external_event_id) is the idempotency key. Rows are never updated
except to stamp processed_at.
"""

from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
import uuid
from datetime import datetime
from vai_api.core.database import Base


class WebhookEvent(Base):
    __tablename__ = "webhook_events"
    __table_args__ = (
        UniqueConstraint("provider", "external_event_id", name="uq_webhook_events_provider_event"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider = Column(String, nullable=False, index=True)  # sandbox, mercadopago, stripe
    external_event_id = Column(String, nullable=False)
    event_type = Column(String, nullable=False, index=True)
    payload = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    received_at = Column(DateTime, default=datetime.utcnow, index=True)
    processed_at = Column(DateTime, nullable=True)
