"""Fixtures for API tests: the real application wired to the in-memory store"""
import pytest
from datetime import datetime, timezone
from httpx import ASGITransport, AsyncClient

from habitrpg.api.routes import get_services
from habitrpg.api.server import create_api_application
from habitrpg.models import User
from habitrpg.services.auth_service import create_access_token
from habitrpg.services.container import ServiceContainer


@pytest.fixture
def app(store):
    """Application without lifespan (no pool); services run against the store"""
    application = create_api_application()
    container = ServiceContainer(db=store.db)
    application.dependency_overrides[get_services] = lambda: container
    return application


@pytest.fixture
def client(app):
    # Unhandled errors must become 500 responses instead of propagating into the test
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
def headers_for(store):
    """Authorization headers for any user id, existing or not"""
    def build(user_id: int) -> dict:
        row = store.users.get(user_id) or {
            "id": user_id,
            "username": "ghost",
            "email": "ghost@habitrpg.app",
            "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }
        return {"Authorization": f"Bearer {create_access_token(User(**row))}"}
    return build


@pytest.fixture
def auth_headers(headers_for, user_id):
    return headers_for(user_id)
