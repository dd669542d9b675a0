"""Tests for the plan-change service: upgrades, downgrades and idempotency."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select, func

from vai_api.core.exceptions import Conflict, InvalidInput, PlanNotFound, UpstreamFailure
from vai_api.models.company_plan import CompanyPlan
from vai_api.models.financial_movement import FinancialMovement, MovementState, UPGRADE_PRORATION
from vai_api.models.subscription import Subscription
from vai_api.services.payment_gateway import CheckoutSession
from vai_api.services.plan_changes import PlanChangeService, UPGRADE, DOWNGRADE, NO_CHANGE


NOW = datetime(2026, 1, 16)


def fake_gateway(url="https://pay.example.com/checkout/abc", side_effect=None):
    gateway = MagicMock()
    gateway.provider = "sandbox"
    gateway.create_checkout = AsyncMock(
        return_value=CheckoutSession(url=url, provider="sandbox", provider_reference="pref-123"),
        side_effect=side_effect,
    )
    return gateway


async def active_assignments(db, company_id):
    result = await db.execute(
        select(CompanyPlan).where(CompanyPlan.company_id == company_id, CompanyPlan.active.is_(True))
    )
    return result.scalars().all()


async def pending_upgrades(db, company_id):
    result = await db.execute(
        select(func.count(FinancialMovement.id)).where(
            FinancialMovement.company_id == company_id,
            FinancialMovement.subtype == UPGRADE_PRORATION,
            FinancialMovement.state == MovementState.PENDING.value,
        )
    )
    return result.scalar()


class TestSimulationMode:
    @pytest.mark.asyncio
    async def test_upgrade_settles_and_activates(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        service = PlanChangeService(db, ledger_mode="simulation", now=NOW)

        result = await service.change_plan(company.id, plans["pro"].id)

        assert result.action == UPGRADE
        assert result.activated is True
        assert result.delta_net == Decimal("600.00")
        assert result.tax == Decimal("126.00")
        assert result.total == Decimal("726.00")

        movement = await db.get(FinancialMovement, result.movement_id)
        assert movement.state == MovementState.PAID.value
        assert movement.type == "ajuste"
        assert movement.gateway == "simulada"
        assert movement.cycle_start == date(2026, 1, 1)
        assert movement.extra["subtipo"] == UPGRADE_PRORATION
        assert movement.extra["target_plan_id"] == str(plans["pro"].id)

        active = await active_assignments(db, company.id)
        assert len(active) == 1
        assert active[0].plan_id == plans["pro"].id

    @pytest.mark.asyncio
    async def test_custom_upgrade_stores_seat_override(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        service = PlanChangeService(db, now=NOW)

        result = await service.change_plan(company.id, plans["custom"].id, seat_override=30)

        assert result.action == UPGRADE
        # (3500 - 1000) * 0.5
        assert result.delta_net == Decimal("1250.00")
        active = await active_assignments(db, company.id)
        assert active[0].plan_id == plans["custom"].id
        assert active[0].max_advisors_override == 30

    @pytest.mark.asyncio
    async def test_same_price_is_no_change(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        service = PlanChangeService(db, now=NOW)

        result = await service.change_plan(company.id, plans["basic"].id)

        assert result.action == NO_CHANGE
        assert result.movement_id is None
        assert await pending_upgrades(db, company.id) == 0

    @pytest.mark.asyncio
    async def test_downgrade_is_scheduled_without_charge(self, db, plans, make_company):
        company = await make_company(plans["pro"])
        service = PlanChangeService(db, now=NOW)

        result = await service.change_plan(company.id, plans["basic"].id)

        assert result.action == DOWNGRADE
        assert result.scheduled is True
        assert result.scheduled_for == date(2026, 1, 31)
        assert result.movement_id is None

        movements = (await db.execute(select(FinancialMovement))).scalars().all()
        assert movements == []
        subscription = (await db.execute(select(Subscription))).scalar_one()
        assert subscription.next_plan_id == plans["basic"].id
        assert subscription.next_plan_effective_date == date(2026, 1, 31)

        active = await active_assignments(db, company.id)
        assert active[0].plan_id == plans["pro"].id


class TestLiveMode:
    @pytest.mark.asyncio
    async def test_upgrade_creates_checkout_and_waits(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        gateway = fake_gateway()
        service = PlanChangeService(db, ledger_mode="live", gateway=gateway, now=NOW)

        result = await service.change_plan(company.id, plans["pro"].id, payer_email="owner@example.com")

        assert result.action == UPGRADE
        assert result.activated is False
        assert result.checkout_url == "https://pay.example.com/checkout/abc"
        gateway.create_checkout.assert_awaited_once()
        kwargs = gateway.create_checkout.await_args.kwargs
        assert kwargs["amount"] == Decimal("726.00")
        assert kwargs["external_reference"] == str(result.movement_id)
        assert kwargs["payer_email"] == "owner@example.com"

        movement = await db.get(FinancialMovement, result.movement_id)
        assert movement.state == MovementState.PENDING.value
        assert movement.gateway == "sandbox"
        assert movement.gateway_reference == "pref-123"

        active = await active_assignments(db, company.id)
        assert active[0].plan_id == plans["basic"].id

    @pytest.mark.asyncio
    async def test_repeated_upgrade_reuses_pending_movement(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        service = PlanChangeService(db, ledger_mode="live", gateway=fake_gateway(), now=NOW)

        first = await service.change_plan(company.id, plans["pro"].id)
        second = await service.change_plan(company.id, plans["pro"].id)

        assert first.reused is False
        assert second.reused is True
        assert second.movement_id == first.movement_id
        assert second.target_plan_id == plans["pro"].id
        assert second.total == first.total
        assert service.gateway.create_checkout.await_args.kwargs["title"] == "Upgrade to plan Pro"
        assert await pending_upgrades(db, company.id) == 1

    @pytest.mark.asyncio
    async def test_pending_upgrade_to_another_plan_is_a_conflict(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        gateway = fake_gateway()
        service = PlanChangeService(db, ledger_mode="live", gateway=gateway, now=NOW)

        first = await service.change_plan(company.id, plans["pro"].id)
        assert first.target_plan_id == plans["pro"].id

        with pytest.raises(Conflict):
            await service.change_plan(company.id, plans["premium"].id)

        gateway.create_checkout.assert_awaited_once()
        assert await pending_upgrades(db, company.id) == 1
        movement = await db.get(FinancialMovement, first.movement_id)
        assert movement.extra["target_plan_id"] == str(plans["pro"].id)

    @pytest.mark.asyncio
    async def test_concurrent_insert_reuses_the_winning_movement(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        company_id, pro_id = company.id, plans["pro"].id
        winner = FinancialMovement(
            company_id=company_id,
            type="ajuste",
            state=MovementState.PENDING.value,
            currency="ARS",
            net_amount=Decimal("600.00"),
            tax=Decimal("126.00"),
            total=Decimal("726.00"),
            gateway="sandbox",
            subtype=UPGRADE_PRORATION,
            cycle_start=date(2026, 1, 1),
            extra={"subtipo": UPGRADE_PRORATION, "target_plan_id": str(pro_id)},
        )
        db.add(winner)
        await db.commit()
        winner_id = winner.id

        service = PlanChangeService(db, ledger_mode="live", gateway=fake_gateway(), now=NOW)
        lookup = service._find_pending_upgrade
        calls = []

        async def miss_first(*args):
            # The other request commits between the lookup and the insert.
            calls.append(args)
            return None if len(calls) == 1 else await lookup(*args)

        with patch.object(service, "_find_pending_upgrade", side_effect=miss_first):
            result = await service.change_plan(company_id, pro_id)

        assert len(calls) == 2
        assert result.reused is True
        assert result.movement_id == winner_id
        assert result.total == Decimal("726.00")
        assert await pending_upgrades(db, company_id) == 1

    @pytest.mark.asyncio
    async def test_gateway_failure_leaves_movement_pending(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        gateway = fake_gateway(side_effect=UpstreamFailure("Could not create checkout"))
        service = PlanChangeService(db, ledger_mode="live", gateway=gateway, now=NOW)

        with pytest.raises(UpstreamFailure):
            await service.change_plan(company.id, plans["pro"].id)

        assert await pending_upgrades(db, company.id) == 1
        active = await active_assignments(db, company.id)
        assert active[0].plan_id == plans["basic"].id

    @pytest.mark.asyncio
    async def test_live_without_gateway_is_a_conflict(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        service = PlanChangeService(db, ledger_mode="live", now=NOW)
        with pytest.raises(Conflict):
            await service.change_plan(company.id, plans["pro"].id)


class TestValidation:
    @pytest.mark.asyncio
    async def test_no_active_assignment(self, db, plans, make_company):
        company = await make_company()
        service = PlanChangeService(db, now=NOW)
        with pytest.raises(Conflict):
            await service.change_plan(company.id, plans["pro"].id)

    @pytest.mark.asyncio
    async def test_unknown_target_plan(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        service = PlanChangeService(db, now=NOW)
        with pytest.raises(PlanNotFound):
            await service.change_plan(company.id, uuid.uuid4())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seats", [20, 51])
    async def test_custom_seat_override_out_of_range(self, db, plans, make_company, seats):
        company = await make_company(plans["basic"])
        service = PlanChangeService(db, now=NOW)
        with pytest.raises(InvalidInput):
            await service.change_plan(company.id, plans["custom"].id, seat_override=seats)


class TestPreviewAndStatus:
    @pytest.mark.asyncio
    async def test_preview_writes_nothing(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        service = PlanChangeService(db, now=NOW)

        preview = await service.preview_change(company.id, plans["pro"].id)

        assert preview.action == UPGRADE
        assert preview.current_price == Decimal("1000")
        assert preview.target_price == Decimal("2200")
        assert preview.days_in_cycle == 30
        assert preview.days_remaining == 15
        assert preview.total == Decimal("726.00")
        assert preview.applies_from == date(2026, 1, 1)
        assert (await db.execute(select(FinancialMovement))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_preview_downgrade_applies_next_cycle(self, db, plans, make_company):
        company = await make_company(plans["pro"])
        preview = await PlanChangeService(db, now=NOW).preview_change(company.id, plans["basic"].id)
        assert preview.action == DOWNGRADE
        assert preview.applies_from == date(2026, 1, 31)
        assert preview.total == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_billing_status_lists_pending_movements(self, db, plans, make_company):
        company = await make_company(plans["basic"])
        service = PlanChangeService(db, ledger_mode="live", gateway=fake_gateway(), now=NOW)
        result = await service.change_plan(company.id, plans["pro"].id)

        status = await service.billing_status(company.id)

        assert status.plan_id == plans["basic"].id
        assert status.cycle_start == date(2026, 1, 1)
        assert status.cycle_end == date(2026, 1, 31)
        assert status.pending_movement_ids == [result.movement_id]
