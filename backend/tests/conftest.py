import os
from collections.abc import Generator
from typing import Any

import pytest

# Keep pytest output high-signal by disabling outbound Sentry capture in tests.
os.environ["SENTRY_DSN"] = ""
os.environ.setdefault("ENVIRONMENT", "test")

from fastapi.testclient import TestClient

from app.core import metrics
from app.core.dependencies import get_beacon_sender, get_credential_table, get_session_cache
from app.main import app
from app.services.tenants import CredentialTable, TenantSession, TenantSessionCache

VALID_API_KEY = "VALID-KEY-1234"
VALID_SECRET = "rest-secret"


class FakeSender:
    """Stands in for the mPulse sender: records sessions opened and beacons handed off."""

    def __init__(self) -> None:
        self.opened: list[str] = []
        self.sent: list[tuple[dict[str, Any], TenantSession]] = []

    async def open_session(self, api_key: str, secret: str) -> TenantSession:
        self.opened.append(api_key)
        return TenantSession(api_key=api_key, secret=secret, config={"beacon_url": "//beacon.test/"})

    async def send_all(self, beacons, session: TenantSession) -> int:
        pending = list(beacons)
        self.sent.extend((beacon, session) for beacon in pending)
        return len(pending)

    @property
    def beacons(self) -> list[dict[str, Any]]:
        return [beacon for beacon, _ in self.sent]


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_metrics() -> Generator[None, None, None]:
    # Counters are process-global and would leak across tests.
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def fake_sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def report_client(fake_sender: FakeSender) -> Generator[TestClient, None, None]:
    credentials = CredentialTable({VALID_API_KEY: VALID_SECRET})
    sessions = TenantSessionCache(fake_sender.open_session)

    app.dependency_overrides[get_credential_table] = lambda: credentials
    app.dependency_overrides[get_session_cache] = lambda: sessions
    app.dependency_overrides[get_beacon_sender] = lambda: fake_sender
    client = TestClient(app)
    yield client
    client.close()
    app.dependency_overrides.clear()
