"""API tests for registration, login and bearer authentication"""
import pytest
from datetime import timedelta

from habitrpg.models import User
from habitrpg.services.auth_service import create_access_token, decode_user_id, get_password_hash


@pytest.mark.asyncio
async def test_register(client, store):
    response = await client.post("/auth/register", json={
        "username": "newhero",
        "email": "newhero@habitrpg.app",
        "password": "password123",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Registration successful! Welcome to HabitRPG!"
    assert body["user"]["username"] == "newhero"
    assert body["user"]["totalXP"] == 0
    assert body["user"]["level"] == 1
    assert "passwordHash" not in body["user"]
    assert decode_user_id(body["token"]) == body["user"]["id"]


@pytest.mark.asyncio
async def test_register_duplicate_email(client, store):
    store.add_user("someone", email="taken@habitrpg.app")

    response = await client.post("/auth/register", json={
        "username": "another",
        "email": "Taken@habitrpg.app",
        "password": "password123",
    })

    assert response.status_code == 400
    assert response.json()["message"] == "An account with this email already exists"


@pytest.mark.asyncio
async def test_register_short_password(client):
    response = await client.post("/auth/register", json={
        "username": "newhero",
        "email": "newhero@habitrpg.app",
        "password": "short",
    })

    assert response.status_code == 400
    assert response.json()["message"] == "Password must be at least 8 characters long"


@pytest.mark.asyncio
async def test_register_missing_field(client):
    response = await client.post("/auth/register", json={"username": "newhero"})

    assert response.status_code == 400
    assert "message" in response.json()


@pytest.mark.asyncio
async def test_login(client, store):
    user_id = store.add_user("hero", password_hash=get_password_hash("password123"))

    response = await client.post("/auth/login", json={"email": "hero@habitrpg.app", "password": "password123"})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Login successful"
    assert body["user"]["id"] == user_id


@pytest.mark.asyncio
async def test_login_wrong_password(client, store):
    store.add_user("hero", password_hash=get_password_hash("password123"))

    response = await client.post("/auth/login", json={"email": "hero@habitrpg.app", "password": "nope-nope"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"


# ============================================================================
# Bearer Authentication
# ============================================================================

@pytest.mark.asyncio
async def test_missing_token(client):
    response = await client.get("/habits")

    assert response.status_code == 401
    assert response.json() == {"message": "Invalid or missing user authentication"}
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_garbage_token(client):
    response = await client.get("/habits", headers={"Authorization": "Bearer garbage"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token(client, store, user_id):
    token = create_access_token(User(**store.users[user_id]), expires_delta=timedelta(minutes=-1))

    response = await client.get("/habits", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_valid_token(client, auth_headers):
    response = await client.get("/habits", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == []
