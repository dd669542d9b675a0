"""Shared test fixtures for the VAI billing API tests.

Uses an in-memory SQLite async engine so tests run without PostgreSQL.
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LEDGER_MODE", "simulation")
os.environ.setdefault("PAYMENT_PROVIDER", "sandbox")
os.environ.setdefault("WEBHOOK_SECRET", "test-webhook-secret")

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from vai_api.core.database import Base, get_db
from vai_api.main import app
from vai_api.models.company import Company, Advisor
from vai_api.models.company_plan import CompanyPlan
from vai_api.models.plan import Plan
from vai_api.models.user import User, Role
from vai_api.services.auth import create_access_token, hash_password


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(TEST_DATABASE_URL, echo=False)
TestSession = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db():
    async with TestSession() as session:
        yield session


app.dependency_overrides[get_db] = override_get_db


@pytest_asyncio.fixture
async def client():
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db():
    """Direct DB session for test setup/assertions."""
    async with TestSession() as session:
        yield session


@pytest_asyncio.fixture
async def plans(db):
    """The standard catalog: Trial, Basic, Pro, Premium and the custom plan."""
    catalog = {
        "trial": Plan(name="Trial", net_price=Decimal("0"), max_advisors=2, cycle_days=7, is_trial=True),
        "basic": Plan(name="Basic", net_price=Decimal("1000"), max_advisors=20, extra_advisor_price=Decimal("50")),
        "pro": Plan(name="Pro", net_price=Decimal("2200"), max_advisors=10, extra_advisor_price=Decimal("80")),
        "premium": Plan(name="Premium", net_price=Decimal("3000"), max_advisors=20, extra_advisor_price=Decimal("60")),
        "custom": Plan(name="Personalizado", net_price=Decimal("0"), max_advisors=21, extra_advisor_price=Decimal("50")),
    }
    db.add_all(catalog.values())
    await db.commit()
    return catalog


@pytest_asyncio.fixture
async def make_company(db):
    """Factory: company with an optional active assignment and active advisors."""

    async def _make(plan=None, start=date(2026, 1, 1), advisors=0, name="Inmobiliaria Sur", **assignment):
        company = Company(trade_name=name, legal_name=f"{name} SRL", tax_id="30-12345678-9")
        db.add(company)
        await db.flush()
        for i in range(advisors):
            db.add(Advisor(company_id=company.id, name=f"Advisor {i}", active=True))
        if plan is not None:
            db.add(CompanyPlan(company_id=company.id, plan_id=plan.id, start_date=start, active=True, **assignment))
        await db.commit()
        return company

    return _make


@pytest_asyncio.fixture
async def make_user(db):
    async def _make(role=Role.EMPRESA.value, company=None, email=None, password=None, is_active=True):
        user = User(
            email=email or f"{role}@example.com",
            hashed_password=hash_password(password) if password else "not-a-real-hash",
            full_name=role.title(),
            role=role,
            company_id=company.id if company else None,
            is_active=is_active,
        )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _headers


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user(role=Role.SUPER_ADMIN.value, email="admin@example.com")


@pytest_asyncio.fixture
async def admin_headers(admin, auth_headers):
    return auth_headers(admin)
