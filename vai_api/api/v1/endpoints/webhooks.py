"""Payment-provider webhooks.

Both endpoints answer 200 once the event is recorded, including duplicate
deliveries and event types that carry no effects. The generic endpoint
requires the shared ``WEBHOOK_SECRET`` in the ``X-Webhook-Secret`` header;
Stripe events are checked against their signature instead.
"""

import hmac
import json
import logging
from typing import Optional
import stripe
from fastapi import APIRouter, Request, HTTPException, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.database import get_db
from vai_api.core.config import settings
from vai_api.models.financial_movement import Gateway
from vai_api.schemas.webhook import PaymentEventIn, WebhookAck
from vai_api.services.webhook_processor import handle_event, normalize_stripe_event

router = APIRouter()
logger = logging.getLogger(__name__)


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    if not settings.WEBHOOK_SECRET:
        if settings.is_live:
            logger.error("Webhook secret not configured, rejecting payment webhook")
            raise HTTPException(status_code=401, detail="Webhook secret not configured")
        logger.warning("Webhook secret not configured, skipping verification")
        return
    if not x_webhook_secret or not hmac.compare_digest(
        x_webhook_secret.encode(), settings.WEBHOOK_SECRET.encode()
    ):
        logger.error("Invalid payment webhook secret")
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


@router.post(
    "/payments",
    response_model=WebhookAck,
    response_model_exclude_none=True,
    dependencies=[Depends(verify_webhook_secret)],
)
async def payment_webhook(body: PaymentEventIn, db: AsyncSession = Depends(get_db)):
    """Generic provider notification (sandbox, MercadoPago relay, ...)."""
    if settings.is_live and (body.provider or "").strip().lower() == Gateway.SANDBOX.value:
        raise HTTPException(status_code=403, detail="Sandbox events are not accepted in live mode")
    result = await handle_event(
        db,
        provider=body.provider,
        external_event_id=body.externalEventId,
        event_type=body.eventType,
        payload=body.data,
    )
    return result.as_response()


@router.post("/stripe", response_model=WebhookAck, response_model_exclude_none=True)
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Stripe-signed events, normalized to the generic event types."""
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if settings.STRIPE_WEBHOOK_SECRET:
        try:
            stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
        except ValueError:
            logger.error("Invalid Stripe webhook payload")
            raise HTTPException(status_code=400, detail="Invalid payload")
        except stripe.SignatureVerificationError:
            logger.error("Invalid Stripe webhook signature")
            raise HTTPException(status_code=400, detail="Invalid signature")
    elif settings.is_live:
        logger.error("Stripe webhook secret not configured, rejecting event")
        raise HTTPException(status_code=401, detail="Webhook secret not configured")
    else:
        logger.warning("Stripe webhook secret not configured, skipping verification")

    try:
        event = json.loads(payload)
        event_id, event_type, data = normalize_stripe_event(event)
    except (ValueError, KeyError, TypeError):
        raise HTTPException(status_code=400, detail="Invalid payload")

    logger.info("Stripe webhook received: %s -> %s", event.get("type"), event_type)
    result = await handle_event(db, Gateway.STRIPE.value, event_id, event_type, data)
    return result.as_response()
