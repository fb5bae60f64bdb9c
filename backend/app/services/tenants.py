from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping

from app.core import metrics
from app.core.logging_config import mask_secret

logger = logging.getLogger(__name__)


class CredentialTable:
    """Read-only API key -> backend secret mapping, loaded once at startup."""

    def __init__(self, secrets: Mapping[str, str] | None = None) -> None:
        self._secrets: Mapping[str, str] = MappingProxyType(dict(secrets or {}))

    @classmethod
    def from_file(cls, path: str | Path, *, missing_ok: bool = False) -> "CredentialTable":
        source = Path(path)
        if not source.is_file():
            if missing_ok:
                logger.warning("credential_file_missing", extra={"apps_file": str(source)})
                return cls()
            raise FileNotFoundError(f"Credential file not found: {source}")
        raw = json.loads(source.read_text(encoding="utf-8"))
        return cls(_validate_secrets(raw, source))

    def lookup(self, api_key: str) -> str | None:
        secret = self._secrets.get(api_key)
        return secret or None

    def __len__(self) -> int:
        return len(self._secrets)

    def __contains__(self, api_key: object) -> bool:
        return api_key in self._secrets


def _validate_secrets(raw: Any, source: Path) -> dict[str, str]:
    if not isinstance(raw, dict):
        raise ValueError(f"{source} must contain a JSON object of API key -> secret")
    secrets: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"{source}: secret for API key {mask_secret(str(key))} must be a non-empty string")
        secrets[str(key)] = value
    return secrets


@dataclass
class TenantSession:
    api_key: str
    secret: str = field(repr=False)
    config: dict[str, Any] = field(default_factory=dict)
    config_fetched_at: float | None = None
    config_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)


SessionFactory = Callable[[str, str], Awaitable[TenantSession]]


class TenantSessionCache:
    """
    Process-wide API key -> TenantSession cache.

    Sessions are created on first use and kept for the life of the process. Initialization
    is serialized per key, so concurrent first requests for one key share a single session.
    """

    def __init__(self, factory: SessionFactory) -> None:
        self._factory = factory
        self._sessions: dict[str, TenantSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, api_key: str) -> TenantSession | None:
        return self._sessions.get(api_key)

    async def get_or_init(self, api_key: str, secret: str) -> TenantSession:
        session = self._sessions.get(api_key)
        if session is not None:
            return session
        lock = self._locks.setdefault(api_key, asyncio.Lock())
        async with lock:
            session = self._sessions.get(api_key)
            if session is None:
                logger.info("tenant_session_init", extra={"api_key": mask_secret(api_key)})
                session = await self._factory(api_key, secret)
                self._sessions[api_key] = session
                metrics.record_tenant_session()
        return session

    def __len__(self) -> int:
        return len(self._sessions)
