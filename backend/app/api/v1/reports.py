from __future__ import annotations

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from app.core.config import settings
from app.core.dependencies import get_beacon_sender, get_credential_table, get_session_cache
from app.core.logging_config import mask_secret
from app.schemas.report import ReportIngestResponse
from app.services.beacons import RequestContext
from app.services.mpulse import MPulseSender
from app.services.report_ingest import build_beacons
from app.services.tenants import CredentialTable, TenantSessionCache

router = APIRouter(tags=["reports"])
logger = logging.getLogger(__name__)

REPORT_MEDIA_TYPES = frozenset(
    {
        "application/csp-report",
        "application/reports+json",
        "application/expect-ct-report+json",
        "application/json",
    }
)


def _request_error(status_code: int, detail: str, code: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=detail, headers={"X-Error-Code": code})


def _media_type(request: Request) -> str:
    return (request.headers.get("content-type") or "").split(";", 1)[0].strip().lower()


async def _read_report_body(request: Request) -> Any:
    media_type = _media_type(request)
    # Some agents send reports without a content type; treat those as JSON.
    if media_type and media_type not in REPORT_MEDIA_TYPES:
        raise _request_error(status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, "Unsupported content type", "unsupported_media_type")
    raw = await request.body()
    if not raw.strip():
        raise _request_error(status.HTTP_400_BAD_REQUEST, "No Request body", "missing_body")
    try:
        body = json.loads(raw)
    except (ValueError, UnicodeDecodeError, RecursionError):
        raise _request_error(status.HTTP_400_BAD_REQUEST, "Invalid JSON body", "invalid_json")
    if body is None:
        raise _request_error(status.HTTP_400_BAD_REQUEST, "No Request body", "missing_body")
    return body


def _require_api_key(raw_api_key: str | None) -> str:
    api_key = (raw_api_key or "").strip()
    if api_key:
        return api_key
    raise _request_error(status.HTTP_400_BAD_REQUEST, "No API Key specified", "missing_api_key")


def _require_secret(credentials: CredentialTable, api_key: str) -> str:
    secret = credentials.lookup(api_key)
    if secret is not None:
        return secret
    logger.info("unknown_api_key", extra={"api_key": mask_secret(api_key)})
    raise _request_error(status.HTTP_403_FORBIDDEN, "Unknown API key", "unknown_api_key")


def request_context(request: Request) -> RequestContext:
    forwarded_for = request.headers.get("x-forwarded-for") or ""
    # The left-most X-Forwarded-For entry is the originating client.
    client_ip = forwarded_for.split(",", 1)[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else ""
    return RequestContext(user_agent=request.headers.get("user-agent") or "", client_ip=client_ip)


@router.post("/report", include_in_schema=False)
@router.post("/report/", include_in_schema=False)
async def ingest_reports_without_api_key(request: Request) -> ReportIngestResponse:
    await _read_report_body(request)
    raise _request_error(status.HTTP_400_BAD_REQUEST, "No API Key specified", "missing_api_key")


@router.post("/report/{api_key}")
async def ingest_reports(
    api_key: str,
    request: Request,
    background_tasks: BackgroundTasks,
    credentials: Annotated[CredentialTable, Depends(get_credential_table)],
    sessions: Annotated[TenantSessionCache, Depends(get_session_cache)],
    sender: Annotated[MPulseSender, Depends(get_beacon_sender)],
) -> ReportIngestResponse:
    body = await _read_report_body(request)
    api_key = _require_api_key(api_key)
    secret = _require_secret(credentials, api_key)
    session = await sessions.get_or_init(api_key, secret)

    beacons = build_beacons(body, request_context(request), include_full_report=settings.include_full_report)
    # Delivery happens after the response is sent; failures never reach the reporting browser.
    background_tasks.add_task(sender.send_all, beacons, session)
    return ReportIngestResponse(success=True, handled=len(beacons))
