from functools import lru_cache

from app.core.config import settings
from app.services.mpulse import MPulseSender
from app.services.tenants import CredentialTable, TenantSessionCache


@lru_cache
def get_credential_table() -> CredentialTable:
    # Loaded once; a missing file only yields an empty table so local runs still start.
    return CredentialTable.from_file(settings.apps_file, missing_ok=True)


@lru_cache
def get_beacon_sender() -> MPulseSender:
    return MPulseSender.from_settings(settings)


@lru_cache
def get_session_cache() -> TenantSessionCache:
    return TenantSessionCache(get_beacon_sender().open_session)
