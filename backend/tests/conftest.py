# @TASK S0-T0.3 - Test configuration
import os
import uuid

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://inventory:inventory@db:5432/inventory_test")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only")


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def household_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def scope(household_id):
    from inventory_search.search.schemas import HouseholdScope

    return HouseholdScope(household_id=household_id, user_id=uuid.uuid4())


@pytest.fixture
def api_app():
    """The FastAPI app; dependency overrides are cleared after each test."""
    from inventory_search.main import app

    yield app
    app.dependency_overrides.clear()


def make_auth_headers(user_id: uuid.UUID | None = None, household_id: uuid.UUID | None = None) -> dict[str, str]:
    """Create Authorization headers with a valid access token."""
    from inventory_search.services.auth_service import create_access_token

    claims: dict = {"sub": str(user_id or uuid.uuid4())}
    if household_id is not None:
        claims["household_id"] = str(household_id)
    token = create_access_token(data=claims)
    return {"Authorization": f"Bearer {token}"}
