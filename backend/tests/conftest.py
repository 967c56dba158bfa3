"""Pytest fixtures for safety sync tests."""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import safety_sync.models  # noqa: F401
from safety_sync.config import Settings
from safety_sync.database import Base, create_session_factory
from safety_sync.services.lytx_client import LytxClient

# In-memory SQLite shared through a single connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults."""
    return Settings(
        _env_file=None,
        database_url=TEST_DATABASE_URL,
        lytx_api_key="test_key",
        lytx_base_url="https://lytx.test",
        lytx_page_size=50,
        initial_days_back=7,
        checkpoint_overlap_minutes=15,
    )


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Async engine with the schema created."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)

    # Let SQLAlchemy issue BEGIN itself so SAVEPOINTs behave
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(async_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session for inspecting what the sync wrote."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_lytx_client() -> LytxClient:
    """Lytx client with the HTTP layer mocked out."""
    client = LytxClient(api_key="test_key", base_url="https://lytx.test", backoff_base=0)
    client._request_with_retry = AsyncMock()
    return client


@pytest.fixture
def reference_payloads() -> dict[str, list[dict[str, Any]]]:
    """Reference lists as returned by the Lytx API."""
    return {
        "statuses": [
            {"id": 1, "name": "New"},
            {"id": 7, "name": "Resolved"},
        ],
        "triggers": [
            {"id": 10, "name": "Braking"},
            {"id": 11, "name": "Driver Tagged"},
        ],
        "behaviors": [
            {"id": 100, "name": "No Seat Belt"},
            {"id": 101, "name": "Food or Drink"},
        ],
        "vehicles": [
            {"id": "V-1", "name": "Prime Mover 1GLD510", "serialNumber": "QM40999887"},
        ],
    }


@pytest.fixture
def event_factory() -> Callable[..., dict[str, Any]]:
    """Build a Lytx safety event payload."""

    def make_event(event_id: str, **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": f"internal-{event_id}",
            "eventId": event_id,
            "vehicleId": "V-1",
            "driverName": "Jane Citizen",
            "employeeId": "E1001",
            "groupId": "G-1",
            "groupName": "GSF Kalgoorlie",
            "deviceSerialNumber": "QM40999887",
            "eventDateTime": "2026-10-18T02:30:00Z",
            "timezone": "Australia/Perth",
            "score": 4,
            "statusId": 1,
            "status": "New",
            "triggerId": 10,
            "trigger": "Braking",
            "behaviors": [{"id": 100, "name": "No Seat Belt"}],
            "notes": [],
            "excluded": False,
        }
        payload.update(overrides)
        return payload

    return make_event


@pytest.fixture
def lytx_api(
    mock_lytx_client: LytxClient,
    reference_payloads: dict[str, list[dict[str, Any]]],
) -> Callable[[list[list[dict[str, Any]]]], LytxClient]:
    """
    Route the mocked HTTP layer by endpoint.

    Call with the list of event pages to serve; pages past the end are empty.
    """

    routes = {
        "/video/safety/events/statuses": reference_payloads["statuses"],
        "/video/safety/events/triggers": reference_payloads["triggers"],
        "/video/safety/events/behaviors": reference_payloads["behaviors"],
        "/vehicles/all": reference_payloads["vehicles"],
    }

    def configure(pages: list[list[dict[str, Any]]]) -> LytxClient:
        async def fake_request(url: str, params: dict[str, Any] | None = None) -> Any:
            path = url.removeprefix(mock_lytx_client.base_url)
            if path == "/video/safety/events":
                index = params["page"] - 1
                return pages[index] if index < len(pages) else []
            return routes.get(path, [])

        mock_lytx_client._request_with_retry.side_effect = fake_request
        return mock_lytx_client

    return configure


@pytest.fixture
def sample_datetime() -> datetime:
    """Sample datetime for testing."""
    return datetime(2026, 10, 18, 2, 30, 0, tzinfo=UTC)
