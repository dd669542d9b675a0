"""Payment-provider webhook processing.

Every delivery is recorded in ``webhook_events`` before anything else, and
(provider, external_event_id) makes redelivery a no-op. Recognized event
types drive the subscription status machine and the company's active plan;
anything else is recorded and stamped processed without effects.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, date
from typing import Any, Dict, Optional, Tuple
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.exceptions import InvalidInput
from vai_api.models.financial_movement import FinancialMovement, MovementState
from vai_api.models.subscription import Subscription, SubscriptionStatus
from vai_api.models.webhook_event import WebhookEvent
from vai_api.services.plan_activation import activate_plan, suspend_plan, cancel_plan

logger = logging.getLogger(__name__)

ACTIVATING_EVENTS = {"subscription_active", "payment_succeeded", "subscription_resumed"}
SUSPENDING_EVENTS = {"subscription_paused", "invoice_payment_failed"}
CANCELING_EVENTS = {"subscription_canceled"}

# Movement state transitions driven by payment events: event -> (from, to)
MOVEMENT_TRANSITIONS = {
    "payment_succeeded": (MovementState.PENDING.value, MovementState.PAID.value),
    "invoice_payment_failed": (MovementState.PENDING.value, MovementState.FAILED.value),
    "payment_refunded": (MovementState.PAID.value, MovementState.REFUNDED.value),
}


@dataclass
class WebhookResult:
    ok: bool = True
    idempotent: bool = False
    note: Optional[str] = None
    subscription_id: Optional[UUID] = None
    status: Optional[str] = None
    movement_id: Optional[UUID] = None

    def as_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"ok": self.ok}
        if self.idempotent:
            body["idempotent"] = True
        if self.note:
            body["note"] = self.note
        return body


def _first(payload: Dict[str, Any], *keys: str) -> Optional[Any]:
    for key in keys:
        value = payload.get(key)
        if value:
            return value
    return None


def _as_uuid(value: Any) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


async def _is_recorded(db: AsyncSession, provider: str, external_event_id: str) -> bool:
    result = await db.execute(
        select(WebhookEvent.id).where(
            WebhookEvent.provider == provider,
            WebhookEvent.external_event_id == external_event_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def _find_subscription(db: AsyncSession, payload: Dict[str, Any]) -> Optional[Subscription]:
    """Resolve the subscription: own id, then provider id, then latest (company, plan)."""
    subscription_id = _as_uuid(_first(payload, "subscriptionId", "suscripcionId"))
    if subscription_id:
        result = await db.execute(select(Subscription).where(Subscription.id == subscription_id))
        subscription = result.scalar_one_or_none()
        if subscription:
            return subscription

    external_id = _first(payload, "externalSubscriptionId", "externoSubscriptionId")
    if external_id:
        result = await db.execute(
            select(Subscription)
            .where(Subscription.external_subscription_id == str(external_id))
            .order_by(Subscription.started_at.desc())
            .limit(1)
        )
        subscription = result.scalar_one_or_none()
        if subscription:
            return subscription

    company_id = _as_uuid(_first(payload, "companyId", "empresaId"))
    plan_id = _as_uuid(payload.get("planId"))
    if company_id and plan_id:
        result = await db.execute(
            select(Subscription)
            .where(Subscription.company_id == company_id, Subscription.plan_id == plan_id)
            .order_by(Subscription.started_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    return None


async def _find_movement(db: AsyncSession, payload: Dict[str, Any]) -> Optional[FinancialMovement]:
    movement_id = _as_uuid(_first(payload, "movementId", "externalReference", "external_reference"))
    if not movement_id:
        return None
    result = await db.execute(select(FinancialMovement).where(FinancialMovement.id == movement_id))
    return result.scalar_one_or_none()


async def _settle_movement(db: AsyncSession, movement: FinancialMovement, event_type: str) -> bool:
    transition = MOVEMENT_TRANSITIONS.get(event_type)
    if transition is None:
        return False
    from_state, to_state = transition
    if movement.state != from_state:
        logger.info(
            "Movement %s is %s, not moving it to %s on %s", movement.id, movement.state, to_state, event_type
        )
        return False
    movement.state = to_state
    await db.commit()
    logger.info("Movement %s marked %s", movement.id, to_state)
    return True


async def _mark_processed(db: AsyncSession, event: WebhookEvent) -> None:
    event.processed_at = datetime.utcnow()
    await db.commit()


async def handle_event(
    db: AsyncSession,
    provider: str,
    external_event_id: str,
    event_type: str,
    payload: Optional[Dict[str, Any]] = None,
    today: Optional[date] = None,
) -> WebhookResult:
    """Record and apply one provider event.

    Safe to call any number of times with the same (provider,
    external_event_id): only the first delivery has effects.
    """
    if not provider or not external_event_id or not event_type:
        raise InvalidInput("Missing required fields: provider, externalEventId, eventType")
    payload = payload or {}
    today = today or date.today()

    if await _is_recorded(db, provider, external_event_id):
        logger.info("Duplicate webhook %s/%s ignored", provider, external_event_id)
        return WebhookResult(idempotent=True)

    event = WebhookEvent(
        provider=provider,
        external_event_id=external_event_id,
        event_type=event_type,
        payload=payload,
    )
    db.add(event)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Webhook %s/%s recorded concurrently, ignoring", provider, external_event_id)
        return WebhookResult(idempotent=True)
    await db.refresh(event)
    logger.info("Webhook received: %s %s (%s)", provider, event_type, external_event_id)

    outcome = WebhookResult()
    company_id = _as_uuid(_first(payload, "companyId", "empresaId"))
    plan_id = _as_uuid(payload.get("planId"))
    seat_override = payload.get("seatOverride")

    movement = await _find_movement(db, payload)
    if movement is not None:
        outcome.movement_id = movement.id
        await _settle_movement(db, movement, event_type)
        extra = movement.extra or {}
        company_id = movement.company_id
        plan_id = _as_uuid(extra.get("target_plan_id")) or plan_id
        if seat_override is None:
            seat_override = extra.get("seat_override")

    subscription = await _find_subscription(db, payload)
    if subscription is None and not (company_id and plan_id):
        await _mark_processed(db, event)
        logger.warning("Webhook %s/%s has no linked subscription", provider, external_event_id)
        outcome.note = "Event recorded (no linked subscription)"
        return outcome

    if subscription is not None:
        company_id = subscription.company_id
        # A settled movement names the plan that was paid for.
        if movement is None or plan_id is None:
            plan_id = subscription.plan_id

    if event_type in ACTIVATING_EVENTS:
        await activate_plan(db, company_id, plan_id, seat_override=seat_override, today=today)
        new_status = SubscriptionStatus.ACTIVA.value
    elif event_type in SUSPENDING_EVENTS:
        await suspend_plan(db, company_id)
        new_status = SubscriptionStatus.SUSPENDIDA.value
    elif event_type in CANCELING_EVENTS:
        await cancel_plan(db, company_id, today=today)
        new_status = SubscriptionStatus.CANCELADA.value
    else:
        await _mark_processed(db, event)
        outcome.note = f"Event {event_type} recorded (no effects)"
        return outcome

    if subscription is not None:
        now = datetime.utcnow()
        subscription.status = new_status
        if new_status == SubscriptionStatus.ACTIVA.value:
            if subscription.started_at is None:
                subscription.started_at = now
            customer_id = _first(payload, "externalCustomerId", "externoCustomerId")
            external_subscription_id = _first(payload, "externalSubscriptionId", "externoSubscriptionId")
            if customer_id:
                subscription.external_customer_id = str(customer_id)
            if external_subscription_id:
                subscription.external_subscription_id = str(external_subscription_id)
            subscription.ended_at = None
            subscription.plan_id = plan_id
        elif new_status == SubscriptionStatus.CANCELADA.value:
            subscription.ended_at = now
        await db.commit()
        outcome.subscription_id = subscription.id
        logger.info("Subscription %s is now %s", subscription.id, new_status)

    outcome.status = new_status
    await _mark_processed(db, event)
    return outcome


STRIPE_EVENT_TYPES = {
    "invoice.paid": "payment_succeeded",
    "invoice.payment_succeeded": "payment_succeeded",
    "checkout.session.completed": "payment_succeeded",
    "invoice.payment_failed": "invoice_payment_failed",
    "charge.refunded": "payment_refunded",
    "customer.subscription.paused": "subscription_paused",
    "customer.subscription.resumed": "subscription_resumed",
    "customer.subscription.deleted": "subscription_canceled",
}

STRIPE_SUBSCRIPTION_STATUSES = {
    "active": "subscription_active",
    "trialing": "subscription_active",
    "paused": "subscription_paused",
    "past_due": "invoice_payment_failed",
    "unpaid": "invoice_payment_failed",
    "canceled": "subscription_canceled",
}


def normalize_stripe_event(event: Dict[str, Any]) -> Tuple[str, str, Dict[str, Any]]:
    """Map a Stripe event onto (external_event_id, event_type, payload)."""
    stripe_type = event["type"]
    obj = event["data"]["object"]
    metadata = obj.get("metadata") or {}

    if stripe_type in ("customer.subscription.created", "customer.subscription.updated"):
        event_type = STRIPE_SUBSCRIPTION_STATUSES.get(obj.get("status"), stripe_type)
    else:
        event_type = STRIPE_EVENT_TYPES.get(stripe_type, stripe_type)

    if obj.get("object") == "subscription":
        external_subscription_id = obj.get("id")
    else:
        external_subscription_id = obj.get("subscription")

    payload = {
        "subscriptionId": metadata.get("subscriptionId"),
        "externalSubscriptionId": external_subscription_id,
        "externalCustomerId": obj.get("customer"),
        "companyId": metadata.get("companyId"),
        "planId": metadata.get("planId"),
        "movementId": metadata.get("movementId") or obj.get("client_reference_id"),
        "stripeType": stripe_type,
        "object": obj,
    }
    return event["id"], event_type, {k: v for k, v in payload.items() if v is not None}
