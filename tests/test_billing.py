"""Tests for the plan change and billing status endpoints."""

from datetime import date, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from vai_api.models.company import Company
from vai_api.models.company_plan import CompanyPlan
from vai_api.models.financial_movement import FinancialMovement
from vai_api.models.subscription import Subscription
from vai_api.models.user import Role


@pytest.mark.asyncio
async def test_change_plan_requires_auth(client, plans):
    response = await client.post("/api/v1/billing/change-plan", json={"new_plan_id": str(plans["pro"].id)})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_advisor_cannot_change_plan(client, plans, make_company, make_user, auth_headers):
    company = await make_company(plans["basic"])
    advisor = await make_user(role=Role.ASESOR.value, company=company)
    response = await client.post(
        "/api/v1/billing/change-plan",
        json={"new_plan_id": str(plans["pro"].id)},
        headers=auth_headers(advisor),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_upgrade_in_simulation_mode(client, db, plans, make_company, make_user, auth_headers):
    company = await make_company(plans["basic"])
    owner = await make_user(company=company)

    response = await client.post(
        "/api/v1/billing/change-plan",
        json={"new_plan_id": str(plans["pro"].id)},
        headers=auth_headers(owner),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["action"] == "upgrade"
    assert data["activated"] is True
    assert data["checkout_url"] is None

    result = await db.execute(
        select(CompanyPlan)
        .where(CompanyPlan.company_id == company.id, CompanyPlan.active.is_(True))
        .execution_options(populate_existing=True)
    )
    assert result.scalar_one().plan_id == plans["pro"].id


@pytest.mark.asyncio
async def test_upgrade_in_live_mode_returns_checkout(client, db, plans, make_company, make_user, auth_headers):
    company = await make_company(plans["basic"])
    owner = await make_user(company=company)

    with patch("vai_api.core.config.settings.LEDGER_MODE", "live"):
        response = await client.post(
            "/api/v1/billing/change-plan",
            json={"new_plan_id": str(plans["pro"].id)},
            headers=auth_headers(owner),
        )

    assert response.status_code == 200
    data = response.json()
    assert data["activated"] is False
    assert f"reference={data['movement_id']}" in data["checkout_url"]

    [movement] = (await db.execute(select(FinancialMovement))).scalars().all()
    assert movement.state == "pending"


@pytest.mark.asyncio
async def test_unknown_plan_is_a_conflict(client, plans, make_company, make_user, auth_headers):
    company = await make_company(plans["basic"])
    owner = await make_user(company=company)
    response = await client.post(
        "/api/v1/billing/change-plan",
        json={"new_plan_id": "00000000-0000-0000-0000-000000000000"},
        headers=auth_headers(owner),
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_company_without_plan_is_a_conflict(client, plans, make_company, make_user, auth_headers):
    company = await make_company()
    owner = await make_user(company=company)
    response = await client.post(
        "/api/v1/billing/change-plan",
        json={"new_plan_id": str(plans["pro"].id)},
        headers=auth_headers(owner),
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_custom_plan_seat_override_validated(client, plans, make_company, make_user, auth_headers):
    company = await make_company(plans["basic"])
    owner = await make_user(company=company)
    response = await client.post(
        "/api/v1/billing/change-plan",
        json={"new_plan_id": str(plans["custom"].id), "seat_override": 60},
        headers=auth_headers(owner),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_company_user_cannot_target_another_company(client, plans, make_company, make_user, auth_headers):
    own = await make_company(plans["basic"], name="Propia")
    other = await make_company(plans["basic"], name="Ajena")
    owner = await make_user(company=own)
    response = await client.post(
        "/api/v1/billing/change-plan",
        json={"new_plan_id": str(plans["pro"].id), "company_id": str(other.id)},
        headers=auth_headers(owner),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_changes_plan_for_a_company(client, db, plans, make_company, admin_headers):
    company = await make_company(plans["pro"])
    response = await client.post(
        "/api/v1/billing/change-plan",
        json={"new_plan_id": str(plans["basic"].id), "company_id": str(company.id)},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["action"] == "downgrade"
    subscription = (await db.execute(select(Subscription))).scalar_one()
    assert subscription.next_plan_id == plans["basic"].id


@pytest.mark.asyncio
async def test_preview_change(client, plans, make_company, make_user, auth_headers):
    company = await make_company(plans["basic"])
    owner = await make_user(company=company)
    response = await client.post(
        "/api/v1/billing/preview-change",
        json={"new_plan_id": str(plans["pro"].id)},
        headers=auth_headers(owner),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["action"] == "upgrade"
    assert data["current_plan_name"] == "Basic"
    assert data["target_plan_name"] == "Pro"
    assert data["days_in_cycle"] == 30


@pytest.mark.asyncio
async def test_status_for_advisor(client, plans, make_company, make_user, auth_headers):
    company = await make_company(plans["basic"])
    advisor = await make_user(role=Role.ASESOR.value, company=company)
    response = await client.get("/api/v1/billing/status", headers=auth_headers(advisor))
    assert response.status_code == 200
    data = response.json()
    assert data["company_id"] == str(company.id)
    assert data["plan_name"] == "Basic"
    assert data["pending_movement_ids"] == []


@pytest.mark.asyncio
async def test_status_without_company(client, make_user, auth_headers):
    orphan = await make_user()
    response = await client.get("/api/v1/billing/status", headers=auth_headers(orphan))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_bootstrap_creates_company_on_trial(client, db, plans, make_user, auth_headers):
    user = await make_user(email="nueva@inmobiliaria.com")

    response = await client.post("/api/v1/companies/bootstrap", headers=auth_headers(user))

    assert response.status_code == 200
    data = response.json()
    assert data["company_created"] is True
    assert data["trial_assigned"] is True
    assert data["trial_ends_on"] == (date.today() + timedelta(days=7)).isoformat()

    company = (await db.execute(select(Company))).scalar_one()
    assert company.trade_name == "nueva"
    assert company.owner_user_id == user.id
    [assignment] = (await db.execute(select(CompanyPlan))).scalars().all()
    assert assignment.plan_id == plans["trial"].id
    subscription = (await db.execute(select(Subscription))).scalar_one()
    assert subscription.status == "pending"

    again = await client.post("/api/v1/companies/bootstrap", headers=auth_headers(user))
    assert again.json()["company_created"] is False
    assert again.json()["trial_assigned"] is False
    assert again.json()["company_id"] == data["company_id"]


@pytest.mark.asyncio
async def test_staff_naming_unknown_company(client, plans, admin_headers):
    response = await client.get(
        "/api/v1/billing/status",
        params={"company_id": "00000000-0000-0000-0000-000000000000"},
        headers=admin_headers,
    )
    assert response.status_code == 404
