from urllib.parse import parse_qs

import httpx
import pytest

from app.core import metrics
from app.services.mpulse import MPulseSender
from app.services.tenants import TenantSession

CONFIG_URL = "https://c.go-mpulse.test/api/config.json"
CONFIG = {
    "beacon_url": "//beacon.mpulse.test/beacon/",
    "h.key": "KEY-A",
    "h.d": "shop.example.com",
    "h.t": 1700000000000,
    "h.cr": "crumb-value",
    "session_id": "sess-1",
    "site_domain": "shop.example.com",
}
BEACON = {
    "rt.tstart": 1700000000000,
    "rt.end": 1700000000000,
    "http.initiator": "error",
    "ua": "UA",
    "ip": "203.0.113.9",
    "u": "https://shop.example.com/",
    "err": "~(~(v~0~t~'Crash~d~'abc~m~'oom))",
}


class Backend:
    def __init__(self, *, config_status: int = 200, beacon_status: int = 204) -> None:
        self.config_status = config_status
        self.beacon_status = beacon_status
        self.config_requests: list[httpx.Request] = []
        self.beacon_requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/config.json":
            self.config_requests.append(request)
            return httpx.Response(self.config_status, json=CONFIG, request=request)
        if request.url.path == "/beacon/":
            self.beacon_requests.append(request)
            return httpx.Response(self.beacon_status, request=request)
        return httpx.Response(404, request=request)

    def sender(self, **kwargs) -> MPulseSender:
        return MPulseSender(
            config_url=CONFIG_URL,
            user_agent="report-uri-mpulse",
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )


@pytest.mark.anyio
async def test_config_is_fetched_on_first_dispatch() -> None:
    backend = Backend()
    sender = backend.sender()
    session = await sender.open_session("KEY-A", "secret-a")

    assert session.config == {}
    assert backend.config_requests == []

    await sender.send_all([BEACON], session)
    assert session.config == CONFIG
    assert session.config_fetched_at is not None
    request = backend.config_requests[0]
    assert request.url.params["key"] == "KEY-A"
    assert request.headers["User-Agent"] == "report-uri-mpulse"


@pytest.mark.anyio
async def test_send_posts_beacon_with_crumbs() -> None:
    backend = Backend()
    sender = backend.sender()
    session = await sender.open_session("KEY-A", "secret-a")

    sent = await sender.send_all([BEACON], session)

    assert sent == 1
    request = backend.beacon_requests[0]
    assert str(request.url) == "https://beacon.mpulse.test/beacon/"
    assert request.method == "POST"
    form = {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
    assert form["api_key"] == "KEY-A"
    assert form["h.cr"] == "crumb-value"
    assert form["h.t"] == "1700000000000"
    assert form["rt.si"] == "sess-1"
    assert form["http.initiator"] == "error"
    assert form["err"] == BEACON["err"]
    assert "secret-a" not in request.content.decode()
    assert metrics.snapshot()["beacons_sent"] == 1


@pytest.mark.anyio
async def test_config_is_cached_until_ttl() -> None:
    backend = Backend()
    sender = backend.sender(config_ttl_seconds=300)
    session = await sender.open_session("KEY-A", "secret-a")
    await sender.send_all([BEACON, BEACON], session)
    assert len(backend.config_requests) == 1

    expired = backend.sender(config_ttl_seconds=0)
    await expired.send_all([BEACON], session)
    assert len(backend.config_requests) == 2


@pytest.mark.anyio
async def test_config_failure_drops_beacons_quietly() -> None:
    backend = Backend(config_status=503)
    sender = backend.sender()
    session = await sender.open_session("KEY-A", "secret-a")
    assert session.config == {}

    sent = await sender.send_all([BEACON, BEACON], session)

    assert sent == 0
    assert backend.beacon_requests == []
    assert metrics.snapshot()["beacon_failures"] == 2

    # Config is retried on the next dispatch.
    await sender.send_all([BEACON], session)
    assert len(backend.config_requests) == 2


@pytest.mark.anyio
async def test_beacon_errors_are_not_raised() -> None:
    backend = Backend(beacon_status=500)
    sender = backend.sender()
    session = await sender.open_session("KEY-A", "secret-a")

    sent = await sender.send_all([BEACON, BEACON], session)

    assert sent == 0
    assert len(backend.beacon_requests) == 2
    assert metrics.snapshot()["beacon_failures"] == 2


@pytest.mark.anyio
async def test_transport_errors_are_not_raised() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    sender = MPulseSender(config_url=CONFIG_URL, user_agent="ua", transport=httpx.MockTransport(refuse))
    session = TenantSession(api_key="KEY-A", secret="s")

    await sender.send(BEACON, session)

    assert session.config == {}
    assert metrics.snapshot()["beacon_failures"] == 1


def test_beacon_url_normalization() -> None:
    session = TenantSession(api_key="K", secret="s", config={"beacon_url": "//b.test/x"})
    assert MPulseSender.beacon_url(session) == "https://b.test/x"
    session.config = {"beacon_url": "http://b.test/x"}
    assert MPulseSender.beacon_url(session) == "http://b.test/x"
    session.config = {}
    assert MPulseSender.beacon_url(session) is None
