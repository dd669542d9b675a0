"""Tests for the monthly period simulator."""

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from vai_api.core.exceptions import Conflict, InvalidInput
from vai_api.models.company_plan import CompanyPlan
from vai_api.models.financial_movement import FinancialMovement
from vai_api.services.ledger_simulator import LedgerSimulator, months_between
from vai_api.services.plan_changes import PlanChangeService


JAN = date(2026, 1, 1)
FEB_END = date(2026, 2, 28)


async def movements(db, kind=None):
    query = select(FinancialMovement).order_by(FinancialMovement.period, FinancialMovement.type)
    if kind:
        query = query.where(FinancialMovement.type == kind)
    return (await db.execute(query)).scalars().all()


def test_months_between_spans_year_end():
    keys = [m.key for m in months_between(date(2025, 11, 15), date(2026, 2, 1))]
    assert keys == ["2025-11", "2025-12", "2026-01", "2026-02"]
    assert months_between(date(2026, 2, 10), date(2026, 2, 10))[0].last == date(2026, 2, 28)


@pytest.mark.asyncio
async def test_books_subscription_and_extra_advisors(db, plans, make_company):
    company = await make_company(plans["basic"], advisors=25)

    result = await LedgerSimulator(db).simulate_period(JAN, FEB_END)

    assert result.periods == ["2026-01", "2026-02"]
    assert result.inserted == 4
    assert result.skipped == 0

    subs = await movements(db, "subscription")
    assert [m.period for m in subs] == ["2026-01", "2026-02"]
    assert subs[0].net_amount == Decimal("1000.00")
    assert subs[0].tax == Decimal("210.00")
    assert subs[0].total == Decimal("1210.00")
    assert subs[0].state == "paid"
    assert subs[0].gateway == "simulada"
    assert subs[0].date.day == 1 and subs[0].date.hour == 10
    assert subs[0].extra["periodo"] == "2026-01"
    assert subs[0].company_id == company.id

    extras = await movements(db, "extra_asesor")
    assert len(extras) == 2
    # 5 advisors over the cap of 20, at 50 each
    assert extras[0].net_amount == Decimal("250.00")


@pytest.mark.asyncio
async def test_no_extra_when_within_capacity(db, plans, make_company):
    await make_company(plans["basic"], advisors=20)
    result = await LedgerSimulator(db).simulate_period(JAN, JAN)
    assert result.inserted == 1
    assert await movements(db, "extra_asesor") == []


@pytest.mark.asyncio
async def test_rerun_is_deduplicated(db, plans, make_company):
    await make_company(plans["basic"], advisors=25)
    simulator = LedgerSimulator(db)

    first = await simulator.simulate_period(JAN, FEB_END)
    second = await simulator.simulate_period(JAN, FEB_END)

    assert second.inserted == 0
    assert second.skipped == first.inserted
    assert len(await movements(db)) == 4


@pytest.mark.asyncio
async def test_overwrite_replaces_previous_rows(db, plans, make_company):
    await make_company(plans["basic"])
    simulator = LedgerSimulator(db)
    await simulator.simulate_period(JAN, FEB_END)

    result = await simulator.simulate_period(JAN, FEB_END, overwrite=True)

    assert result.overwritten == 2
    assert result.inserted == 2
    assert result.skipped == 0
    assert len(await movements(db)) == 2


@pytest.mark.asyncio
async def test_assignment_interval_limits_months(db, plans, make_company):
    await make_company(plans["basic"], start=date(2025, 12, 1), end_date=date(2026, 1, 10))

    result = await LedgerSimulator(db).simulate_period(JAN, FEB_END)

    assert result.inserted == 1
    assert [m.period for m in await movements(db)] == ["2026-01"]


@pytest.mark.asyncio
async def test_months_after_an_upgrade_bill_the_new_plan(db, plans, make_company):
    company = await make_company(plans["basic"])
    company_id, basic_id = company.id, plans["basic"].id
    service = PlanChangeService(db, ledger_mode="simulation", now=datetime(2026, 3, 16))
    await service.change_plan(company_id, plans["pro"].id)

    result = await LedgerSimulator(db).simulate_period(date(2026, 3, 1), date(2026, 4, 30))

    assert result.inserted == 2
    subs = await movements(db, "subscription")
    assert [(m.period, m.net_amount) for m in subs] == [
        ("2026-03", Decimal("1000.00")),
        ("2026-04", Decimal("2200.00")),
    ]
    replaced = await db.execute(
        select(CompanyPlan)
        .where(CompanyPlan.company_id == company_id, CompanyPlan.plan_id == basic_id)
        .execution_options(populate_existing=True)
    )
    assert replaced.scalar_one().end_date == date(2026, 3, 15)


@pytest.mark.asyncio
async def test_company_filter(db, plans, make_company):
    company = await make_company(plans["basic"], name="Norte")
    await make_company(plans["pro"], name="Sur")

    result = await LedgerSimulator(db).simulate_period(JAN, JAN, company_id=company.id)

    assert result.inserted == 1
    [movement] = await movements(db)
    assert movement.company_id == company.id


@pytest.mark.asyncio
async def test_nothing_to_simulate_warns(db, plans):
    result = await LedgerSimulator(db).simulate_period(JAN, FEB_END)
    assert result.inserted == 0
    assert result.warning


@pytest.mark.asyncio
async def test_disabled_in_live_mode(db, plans, make_company):
    await make_company(plans["basic"])
    with pytest.raises(Conflict):
        await LedgerSimulator(db, ledger_mode="live").simulate_period(JAN, FEB_END)
    assert await movements(db) == []


@pytest.mark.asyncio
async def test_inverted_range_rejected(db):
    with pytest.raises(InvalidInput):
        await LedgerSimulator(db).simulate_period(FEB_END, JAN)
