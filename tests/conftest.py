"""
Pytest configuration and shared fixtures for testing.
Runs the app against an in-memory MongoDB (mongomock-motor) through the
get_database dependency, so no server is needed.
"""

import os
import uuid

# Set environment before any app imports
os.environ["TEST_MODE"] = "1"  # disables rate limiting
os.environ["ENABLE_METRICS"] = "true"
os.environ["SKIP_ENV_FILE"] = "1"
os.environ["APP_ENV"] = "test"
os.environ["DB_URL"] = "mongodb://localhost:27017"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-at-least-32-characters"
os.environ["BCRYPT_ROUNDS"] = "4"  # bcrypt minimum, keeps the suite fast
os.environ["LOG_FILE"] = ""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from gamegrid.db import Database, get_database
from gamegrid.main import app


@pytest_asyncio.fixture(scope="function")
async def database():
    """Fresh in-memory database per test, injected in place of the real client."""
    test_db = Database(AsyncMongoMockClient(), f"gamegrid_test_{uuid.uuid4().hex}")
    await test_db.ensure_indexes()

    app.dependency_overrides[get_database] = lambda: test_db
    yield test_db
    app.dependency_overrides.pop(get_database, None)


@pytest_asyncio.fixture(scope="function")
async def client(database):
    """Create a test HTTP client bound to the test database."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        timeout=30.0
    ) as ac:
        yield ac


@pytest.fixture
def sample_user():
    """Sample user data for testing."""
    return {
        "name": "Test User",
        "email": "test@example.com",
        "password": "password123"
    }


@pytest.fixture
def other_user():
    return {
        "name": "Other User",
        "email": "other@example.com",
        "password": "password456"
    }


@pytest.fixture
def sample_game():
    return {
        "title": "Friday Night Football",
        "location": "Central Park",
        "date": "2026-11-06T19:00:00Z",
        "fee": 5,
        "maxParticipants": 2,
    }


async def register_and_login(client: AsyncClient, user: dict) -> tuple[str, str]:
    """Register ``user`` and log in. Returns (token, user_id)."""
    response = await client.post("/users", json=user)
    assert response.status_code == 201, response.text
    user_id = response.json()["userId"]

    response = await client.post("/users/login", json={"email": user["email"], "password": user["password"]})
    assert response.status_code == 200, response.text
    return response.json()["token"], user_id


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def auth(client, sample_user):
    """(headers, user_id) for a registered, logged-in sample user."""
    token, user_id = await register_and_login(client, sample_user)
    return bearer(token), user_id


@pytest_asyncio.fixture
async def other_auth(client, other_user):
    token, user_id = await register_and_login(client, other_user)
    return bearer(token), user_id
