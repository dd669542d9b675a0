"""Tests for authentication endpoints."""

import pytest
from sqlalchemy import select

from vai_api.models.user import User
from vai_api.services.auth import hash_password, verify_password


@pytest.mark.asyncio
async def test_password_hashing():
    """Passwords are hashed and verified correctly."""
    hashed = hash_password("mysecretpassword")
    assert hashed != "mysecretpassword"
    assert verify_password("mysecretpassword", hashed)
    assert not verify_password("wrongpassword", hashed)


@pytest.mark.asyncio
async def test_login(client, db, make_user):
    user = await make_user(email="owner@inmobiliaria.com", password="s3cret-pass")

    response = await client.post("/api/v1/auth/login", json={
        "email": "Owner@Inmobiliaria.com",
        "password": "s3cret-pass",
    })

    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"
    assert data["role"] == "empresa"

    result = await db.execute(select(User).where(User.id == user.id).execution_options(populate_existing=True))
    assert result.scalar_one().last_login_at is not None


@pytest.mark.asyncio
async def test_login_wrong_password(client, make_user):
    await make_user(email="owner@inmobiliaria.com", password="s3cret-pass")
    response = await client.post("/api/v1/auth/login", json={
        "email": "owner@inmobiliaria.com",
        "password": "wrong",
    })
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_disabled_user(client, make_user):
    await make_user(email="gone@inmobiliaria.com", password="s3cret-pass", is_active=False)
    response = await client.post("/api/v1/auth/login", json={
        "email": "gone@inmobiliaria.com",
        "password": "s3cret-pass",
    })
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_me(client, admin, admin_headers):
    response = await client.get("/api/v1/auth/me", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["email"] == admin.email
    assert response.json()["role"] == "super_admin"


@pytest.mark.asyncio
async def test_me_without_token(client):
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_with_invalid_token(client):
    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
