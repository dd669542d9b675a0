"""Pydantic schemas for payment webhooks."""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class PaymentEventIn(BaseModel):
    """Provider-agnostic payment notification.

    ``data`` should carry at least one of subscriptionId,
    externalSubscriptionId, movementId, or companyId + planId.
    """
    provider: Optional[str] = None
    externalEventId: Optional[str] = None
    eventType: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class WebhookAck(BaseModel):
    ok: bool = True
    idempotent: Optional[bool] = None
    note: Optional[str] = None
