"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from fleetpush.config import Settings, get_settings
from fleetpush.dependencies import get_dispatcher, get_token_registry, get_tracking_event_service
from fleetpush.main import create_app
from fleetpush.services.notification_dispatcher import NotificationDispatcher
from fleetpush.services.notification_translator import NotificationContent
from fleetpush.services.push_service import DeliveryOutcome
from fleetpush.services.token_registry import TokenRegistry
from fleetpush.services.tracking_events import TrackingEventService
from fleetpush.stores.memory import MemoryDocumentStore


class FakeClock:
    """Deterministic clock that moves one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


@pytest.fixture(autouse=True)
def _no_redis():
    """Rate limiter fails open instead of dialing a real Redis."""
    with patch(
        "fleetpush.middleware.rate_limit.RateLimitMiddleware._get_redis",
        side_effect=ConnectionError("redis disabled in tests"),
    ):
        yield


@pytest.fixture
def identity() -> str:
    return "driver@fleet.example.com"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def registry(store, clock) -> TokenRegistry:
    return TokenRegistry(store, timeout=1.0, clock=clock)


@pytest.fixture
def notification() -> NotificationContent:
    return NotificationContent(title="Device Online", body="Truck 7 is online.")


@pytest.fixture
def transport():
    """Push transport double; every token succeeds unless a test replaces send_multicast.side_effect."""
    mock = AsyncMock()
    mock.send_multicast.side_effect = lambda tokens, notification, data=None: [
        DeliveryOutcome.delivered(f"msg-{i}") for i, _ in enumerate(tokens)
    ]
    return mock



@pytest.fixture
def api_settings() -> Settings:
    return Settings(
        app_env="development",
        token_store_backend="memory",
        rate_limit_per_minute=5,
        redis_url="redis://localhost:6379/0",
        debug=True,
    )


@pytest.fixture
def resolver(identity):
    """Identity directory double that maps every device to ``identity``."""
    mock = AsyncMock()
    mock.resolve_identity.return_value = identity
    return mock


@pytest.fixture
def app(api_settings, registry, transport, resolver):
    application = create_app(api_settings)
    dispatcher = NotificationDispatcher(registry, transport)
    application.dependency_overrides[get_settings] = lambda: api_settings
    application.dependency_overrides[get_token_registry] = lambda: registry
    application.dependency_overrides[get_dispatcher] = lambda: dispatcher
    application.dependency_overrides[get_tracking_event_service] = lambda: TrackingEventService(resolver, dispatcher)
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
