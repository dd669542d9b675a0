"""Plan-change orchestration: upgrade, downgrade or no change.

Upgrades are charged pro rata for the rest of the current cycle through a
pending ``ajuste`` movement. In simulation mode the movement is settled and
the new plan activated on the spot; in live mode a checkout session is
created and activation waits for the payment webhook. Downgrades never
charge: they are written onto the subscription for the cycle-rollover job.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.exceptions import Conflict, InvalidInput
from vai_api.models.company_plan import CompanyPlan
from vai_api.models.financial_movement import (
    FinancialMovement,
    Gateway,
    MovementState,
    MovementType,
    UPGRADE_PRORATION,
)
from vai_api.models.plan import Plan
from vai_api.models.subscription import Subscription, SubscriptionStatus
from vai_api.services.payment_gateway import PaymentGateway
from vai_api.services.plan_activation import activate_plan
from vai_api.services.pricing import (
    CUSTOM_MAX_SEATS,
    CUSTOM_MIN_SEATS,
    get_active_assignment,
    get_plan,
    is_custom_plan,
    resolve_net_price,
)
from vai_api.services.proration import Proration, current_cycle, prorate

logger = logging.getLogger(__name__)

UPGRADE = "upgrade"
DOWNGRADE = "downgrade"
NO_CHANGE = "no_change"


@dataclass
class PlanChangeResult:
    action: str
    movement_id: Optional[UUID] = None
    target_plan_id: Optional[UUID] = None
    checkout_url: Optional[str] = None
    delta_net: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    total: Optional[Decimal] = None
    currency: Optional[str] = None
    scheduled: bool = False
    scheduled_for: Optional[date] = None
    next_plan_id: Optional[UUID] = None
    activated: bool = False
    reused: bool = False
    note: Optional[str] = None


@dataclass
class PlanChangePreview:
    action: str
    current_plan_id: UUID
    current_plan_name: str
    target_plan_id: UUID
    target_plan_name: str
    current_price: Decimal
    target_price: Decimal
    cycle_start: date
    cycle_end: date
    days_in_cycle: int
    days_remaining: int
    delta_net: Decimal
    tax: Decimal
    total: Decimal
    currency: str
    applies_from: Optional[date] = None
    scheduled_next_plan_id: Optional[UUID] = None
    scheduled_next_plan_date: Optional[date] = None
    note: Optional[str] = None


@dataclass
class BillingStatus:
    company_id: UUID
    plan_id: Optional[UUID] = None
    plan_name: Optional[str] = None
    cycle_start: Optional[date] = None
    cycle_end: Optional[date] = None
    subscription_status: Optional[str] = None
    next_plan_id: Optional[UUID] = None
    next_plan_effective_date: Optional[date] = None
    pending_movement_ids: list = field(default_factory=list)


@dataclass
class _CurrentState:
    assignment: CompanyPlan
    plan: Plan
    cycle_start: date
    cycle_end: date


class PlanChangeService:
    """Orchestrates plan changes for one request.

    ``ledger_mode`` is either ``"simulation"`` or ``"live"`` and is fixed at
    construction. ``now`` pins the clock (naive UTC) for deterministic runs.
    """

    def __init__(
        self,
        db: AsyncSession,
        ledger_mode: str = "simulation",
        gateway: Optional[PaymentGateway] = None,
        tax_rate: Decimal = Decimal("0.21"),
        currency: str = "ARS",
        now: Optional[datetime] = None,
    ):
        self.db = db
        self.ledger_mode = (ledger_mode or "simulation").strip().lower()
        self.gateway = gateway
        self.tax_rate = Decimal(str(tax_rate))
        self.currency = currency
        self._now = now

    @property
    def is_live(self) -> bool:
        return self.ledger_mode == "live"

    def now(self) -> datetime:
        return self._now or datetime.utcnow()

    def today(self) -> date:
        return self.now().date()

    async def _current_state(self, company_id: UUID) -> _CurrentState:
        assignment = await get_active_assignment(self.db, company_id)
        if assignment is None:
            raise Conflict("Company has no current plan or active cycle to change")
        plan = await get_plan(self.db, assignment.plan_id)
        cycle_start, cycle_end = current_cycle(
            assignment.start_date, plan.cycle_days, self.today(), assignment.end_date
        )
        return _CurrentState(assignment, plan, cycle_start, cycle_end)

    def _validate_seat_override(self, plan: Plan, seat_override: Optional[int]) -> None:
        if seat_override is None or not is_custom_plan(plan):
            return
        if not CUSTOM_MIN_SEATS <= seat_override <= CUSTOM_MAX_SEATS:
            raise InvalidInput(
                f"Seat override for {plan.name} must be between {CUSTOM_MIN_SEATS} and {CUSTOM_MAX_SEATS}"
            )

    async def _get_subscription(self, company_id: UUID) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.company_id == company_id)
            .order_by(Subscription.created_at.desc())
        )
        return result.scalars().first()

    async def _find_pending_upgrade(self, company_id: UUID, cycle_start: date) -> Optional[FinancialMovement]:
        result = await self.db.execute(
            select(FinancialMovement).where(
                FinancialMovement.company_id == company_id,
                FinancialMovement.type == MovementType.AJUSTE.value,
                FinancialMovement.state == MovementState.PENDING.value,
                FinancialMovement.subtype == UPGRADE_PRORATION,
                FinancialMovement.cycle_start == cycle_start,
            )
        )
        return result.scalars().first()

    async def _insert_pending_upgrade(
        self,
        company_id: UUID,
        state: _CurrentState,
        target: Plan,
        seat_override: Optional[int],
        proration: Proration,
    ) -> tuple[FinancialMovement, bool]:
        """Insert the pending charge; returns (movement, reused)."""
        gateway_name = self.gateway.provider if self.is_live and self.gateway else Gateway.SIMULADA.value
        movement = FinancialMovement(
            company_id=company_id,
            date=self.now(),
            type=MovementType.AJUSTE.value,
            state=MovementState.PENDING.value,
            currency=self.currency,
            net_amount=proration.delta_net,
            tax=proration.tax,
            total=proration.total,
            gateway=gateway_name,
            description=f"Prorated upgrade to {target.name}",
            origin="usuario",
            subtype=UPGRADE_PRORATION,
            cycle_start=state.cycle_start,
            extra={
                "subtipo": UPGRADE_PRORATION,
                "current_plan_id": str(state.plan.id),
                "target_plan_id": str(target.id),
                "seat_override": seat_override,
                "cycle_start": state.cycle_start.isoformat(),
                "cycle_end": state.cycle_end.isoformat(),
                "days_in_cycle": proration.days_in_cycle,
                "days_remaining": proration.days_remaining,
                "factor": float(round(proration.factor, 4)),
            },
        )
        self.db.add(movement)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent request inserted the cycle's pending charge first.
            await self.db.rollback()
            existing = await self._find_pending_upgrade(company_id, state.cycle_start)
            if existing is None:
                raise
            logger.info("Pending upgrade for company %s created concurrently, reusing %s", company_id, existing.id)
            return existing, True

        await self.db.refresh(movement)
        logger.info(
            "Created pending upgrade movement %s for company %s: %s -> %s, total %s",
            movement.id, company_id, state.plan.name, target.name, movement.total,
        )
        return movement, False

    async def settle_upgrade(self, movement: FinancialMovement) -> CompanyPlan:
        """Mark an upgrade charge paid and activate the plan it was raised for."""
        extra = movement.extra or {}
        movement.state = MovementState.PAID.value
        await self.db.commit()
        return await activate_plan(
            self.db,
            movement.company_id,
            UUID(extra["target_plan_id"]),
            seat_override=extra.get("seat_override"),
            today=self.today(),
        )

    async def change_plan(
        self,
        company_id: UUID,
        new_plan_id: UUID,
        seat_override: Optional[int] = None,
        payer_email: Optional[str] = None,
    ) -> PlanChangeResult:
        target = await get_plan(self.db, new_plan_id)
        target_id, target_name = target.id, target.name
        self._validate_seat_override(target, seat_override)
        state = await self._current_state(company_id)

        current_price = await resolve_net_price(self.db, state.plan.id, company_id)
        new_price = await resolve_net_price(self.db, target.id, company_id, seat_override)

        if new_price == current_price:
            return PlanChangeResult(action=NO_CHANGE, note="The new plan has the same price as the current one")

        if new_price < current_price:
            return await self._schedule_downgrade(company_id, state, target)

        movement = await self._find_pending_upgrade(company_id, state.cycle_start)
        reused = movement is not None
        if reused:
            logger.info("Reusing pending upgrade movement %s for company %s", movement.id, company_id)
        else:
            proration = prorate(
                state.cycle_start, state.cycle_end, current_price, new_price, self.tax_rate, now=self.now()
            )
            movement, reused = await self._insert_pending_upgrade(
                company_id, state, target, seat_override, proration
            )

        pending_target = (movement.extra or {}).get("target_plan_id")
        if reused and pending_target != str(target_id):
            raise Conflict(
                "An upgrade to another plan is already pending for this cycle",
                detail=f"movement {movement.id} targets plan {pending_target}",
            )

        result = PlanChangeResult(
            action=UPGRADE,
            movement_id=movement.id,
            target_plan_id=target_id,
            delta_net=movement.net_amount,
            tax=movement.tax,
            total=movement.total,
            currency=movement.currency,
            reused=reused,
        )

        if not self.is_live:
            await self.settle_upgrade(movement)
            result.activated = True
            result.note = "Simulation mode: charge settled and new plan activated"
            return result

        if self.gateway is None:
            raise Conflict("Live billing requires a payment gateway")
        session = await self.gateway.create_checkout(
            amount=Decimal(str(movement.total)),
            currency=movement.currency,
            external_reference=str(movement.id),
            title=f"Upgrade to plan {target_name}",
            payer_email=payer_email,
        )
        if session.provider_reference:
            movement.gateway_reference = session.provider_reference
            await self.db.commit()
        result.checkout_url = session.url
        result.note = "The new plan is activated once the payment is confirmed"
        return result

    async def _schedule_downgrade(self, company_id: UUID, state: _CurrentState, target: Plan) -> PlanChangeResult:
        subscription = await self._get_subscription(company_id)
        if subscription is None:
            subscription = Subscription(
                company_id=company_id,
                plan_id=state.plan.id,
                status=SubscriptionStatus.ACTIVA.value,
                started_at=datetime.combine(state.assignment.start_date, datetime.min.time()),
            )
            self.db.add(subscription)
        subscription.next_plan_id = target.id
        subscription.next_plan_effective_date = state.cycle_end
        await self.db.commit()

        logger.info(
            "Scheduled downgrade for company %s: %s -> %s on %s",
            company_id, state.plan.name, target.name, state.cycle_end,
        )
        return PlanChangeResult(
            action=DOWNGRADE,
            scheduled=True,
            scheduled_for=state.cycle_end,
            next_plan_id=target.id,
        )

    async def preview_change(
        self,
        company_id: UUID,
        new_plan_id: UUID,
        seat_override: Optional[int] = None,
    ) -> PlanChangePreview:
        """Quote a plan change without writing anything."""
        target = await get_plan(self.db, new_plan_id)
        self._validate_seat_override(target, seat_override)
        state = await self._current_state(company_id)

        current_price = await resolve_net_price(self.db, state.plan.id, company_id)
        new_price = await resolve_net_price(self.db, target.id, company_id, seat_override)
        proration = prorate(
            state.cycle_start, state.cycle_end, current_price, new_price, self.tax_rate, now=self.now()
        )

        if new_price > current_price:
            action, applies_from = UPGRADE, state.cycle_start
            note = "The new price applies from now; the difference is charged for the remaining days"
        elif new_price < current_price:
            action, applies_from = DOWNGRADE, state.cycle_end
            note = "The downgrade applies from the next cycle, without refunds or credits"
        else:
            action, applies_from, note = NO_CHANGE, None, None

        subscription = await self._get_subscription(company_id)
        return PlanChangePreview(
            action=action,
            current_plan_id=state.plan.id,
            current_plan_name=state.plan.name,
            target_plan_id=target.id,
            target_plan_name=target.name,
            current_price=current_price,
            target_price=new_price,
            cycle_start=state.cycle_start,
            cycle_end=state.cycle_end,
            days_in_cycle=proration.days_in_cycle,
            days_remaining=proration.days_remaining,
            delta_net=proration.delta_net,
            tax=proration.tax,
            total=proration.total,
            currency=self.currency,
            applies_from=applies_from,
            scheduled_next_plan_id=subscription.next_plan_id if subscription else None,
            scheduled_next_plan_date=subscription.next_plan_effective_date if subscription else None,
            note=note,
        )

    async def billing_status(self, company_id: UUID) -> BillingStatus:
        status = BillingStatus(company_id=company_id)
        assignment = await get_active_assignment(self.db, company_id)
        if assignment is not None:
            plan = await get_plan(self.db, assignment.plan_id)
            status.plan_id = plan.id
            status.plan_name = plan.name
            status.cycle_start, status.cycle_end = current_cycle(
                assignment.start_date, plan.cycle_days, self.today(), assignment.end_date
            )

        subscription = await self._get_subscription(company_id)
        if subscription is not None:
            status.subscription_status = subscription.status
            status.next_plan_id = subscription.next_plan_id
            status.next_plan_effective_date = subscription.next_plan_effective_date

        result = await self.db.execute(
            select(FinancialMovement.id).where(
                FinancialMovement.company_id == company_id,
                FinancialMovement.state == MovementState.PENDING.value,
            )
        )
        status.pending_movement_ids = list(result.scalars().all())
        return status
