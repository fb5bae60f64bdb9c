from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.v1 import reports
from app.core.dependencies import get_credential_table, get_session_cache
from app.core.metrics import snapshot as metrics_snapshot
from app.services.tenants import CredentialTable, TenantSessionCache

api_router = APIRouter()

api_router.include_router(reports.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/health/ready", tags=["health"])
def readiness(
    credentials: Annotated[CredentialTable, Depends(get_credential_table)],
    sessions: Annotated[TenantSessionCache, Depends(get_session_cache)],
) -> dict[str, object]:
    return {"status": "ready", "tenants": len(credentials), "sessions": len(sessions)}


@api_router.get("/metrics", tags=["metrics"])
def metrics() -> dict:
    return metrics_snapshot()

