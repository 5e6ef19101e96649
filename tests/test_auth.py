import pytest
from httpx import AsyncClient, ASGITransport
from app.main import app
from app.seed import SEED_ADMIN_ID


@pytest.mark.asyncio
async def test_login_valid_credentials():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/api/v1/auth/login",
            json={"username": "admin", "password": "admin123"},
        )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["data"]["username"] == "admin"
    assert data["data"]["user_id"] == SEED_ADMIN_ID
    assert data["data"]["role"] == "admin"
    assert data["message"] is None


@pytest.mark.asyncio
async def test_login_invalid_password():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/api/v1/auth/login",
            json={"username": "photographer", "password": "wrongpassword"},
        )

    assert response.status_code == 400
    data = response.json()
    assert data["status"] == "error"
    assert data["message"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_nonexistent_user():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/api/v1/auth/login",
            json={"username": "nobody", "password": "whatever"},
        )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid credentials"
