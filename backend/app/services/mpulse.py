from __future__ import annotations

import logging
import time
from typing import Any, Iterable

import httpx

from app.core import metrics
from app.core.config import Settings
from app.core.logging_config import mask_secret
from app.services.tenants import TenantSession

logger = logging.getLogger(__name__)


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class MPulseSender:
    """Delivers beacons to mPulse using each tenant's fetched beacon config."""

    def __init__(
        self,
        *,
        config_url: str,
        user_agent: str,
        timeout: float = 5.0,
        config_ttl_seconds: int = 300,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config_url = config_url
        self.user_agent = user_agent
        self.timeout = timeout
        self.config_ttl_seconds = config_ttl_seconds
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "MPulseSender":
        return cls(
            config_url=settings.mpulse_config_url,
            user_agent=settings.mpulse_user_agent,
            timeout=settings.mpulse_timeout_seconds,
            config_ttl_seconds=settings.mpulse_config_ttl_seconds,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            transport=self.transport,
        )

    async def open_session(self, api_key: str, secret: str) -> TenantSession:
        # Config is fetched by the first dispatch, off the request path.
        return TenantSession(api_key=api_key, secret=secret)

    def _config_is_fresh(self, session: TenantSession) -> bool:
        if session.config_fetched_at is None or not session.config:
            return False
        return time.monotonic() - session.config_fetched_at < self.config_ttl_seconds

    async def _fetch_config(self, api_key: str) -> dict[str, Any]:
        async with self._client() as client:
            resp = await client.get(self.config_url, params={"key": api_key})
            resp.raise_for_status()
            data = resp.json()
        return data if isinstance(data, dict) else {}

    async def refresh_config(self, session: TenantSession) -> None:
        async with session.config_lock:
            if self._config_is_fresh(session):
                return
            try:
                config = await self._fetch_config(session.api_key)
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning(
                    "mpulse_config_fetch_failed",
                    extra={"api_key": mask_secret(session.api_key), "error": str(exc)},
                )
                return
            session.config = config
            session.config_fetched_at = time.monotonic()

    @staticmethod
    def beacon_url(session: TenantSession) -> str | None:
        url = session.config.get("beacon_url")
        if not isinstance(url, str) or not url:
            return None
        if url.startswith("//"):
            return f"https:{url}"
        return url

    @staticmethod
    def beacon_params(beacon: dict[str, Any], session: TenantSession) -> dict[str, str]:
        params = {"api_key": session.api_key}
        # Crumb and timestamp fields (h.key, h.d, h.t, h.cr) must be echoed back verbatim.
        for key, value in session.config.items():
            if key.startswith("h.") and value is not None:
                params[key] = _form_value(value)
        session_id = session.config.get("session_id")
        if session_id:
            params["rt.si"] = _form_value(session_id)
        for key, value in beacon.items():
            if value is not None:
                params[key] = _form_value(value)
        return params

    async def _post(self, client: httpx.AsyncClient, url: str, beacon: dict[str, Any], session: TenantSession) -> bool:
        try:
            resp = await client.post(url, data=self.beacon_params(beacon, session))
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "beacon_send_failed",
                extra={"api_key": mask_secret(session.api_key), "error": str(exc)},
            )
            metrics.record_beacon_failure()
            return False
        metrics.record_beacon_sent()
        return True

    async def send_all(self, beacons: Iterable[dict[str, Any]], session: TenantSession) -> int:
        """Best-effort delivery; returns how many beacons the backend accepted."""
        pending = list(beacons)
        if not pending:
            return 0
        await self.refresh_config(session)
        url = self.beacon_url(session)
        if url is None:
            logger.warning(
                "beacons_dropped_without_config",
                extra={"api_key": mask_secret(session.api_key), "count": len(pending)},
            )
            for _ in pending:
                metrics.record_beacon_failure()
            return 0
        sent = 0
        async with self._client() as client:
            for beacon in pending:
                if await self._post(client, url, beacon, session):
                    sent += 1
        return sent

    async def send(self, beacon: dict[str, Any], session: TenantSession) -> None:
        await self.send_all([beacon], session)
