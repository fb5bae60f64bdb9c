from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.services import jsurl
from app.services.report_normalizers import NormalizedError, NormalizedReport

ERROR_INITIATOR = "error"


@dataclass(frozen=True)
class RequestContext:
    user_agent: str
    client_ip: str


def encode_error(error: NormalizedError) -> str:
    """Wire value of the ``err`` beacon field: a one-element JSURL array."""
    return jsurl.dumps([error.to_wire()])


def assemble_beacon(context: RequestContext, captured_ms: int, normalized: NormalizedReport) -> dict[str, Any]:
    # Reports are instantaneous, so the timing span starts and ends at capture time.
    beacon: dict[str, Any] = {
        "rt.tstart": captured_ms,
        "rt.end": captured_ms,
        "http.initiator": ERROR_INITIATOR,
        "ua": context.user_agent,
        "ip": context.client_ip,
    }
    if normalized.error is None:
        return beacon
    if normalized.url:
        beacon["u"] = normalized.url
    beacon["err"] = encode_error(normalized.error)
    return beacon
