from __future__ import annotations

import logging
import time
from typing import Any, Callable

from app.core import metrics
from app.services.beacons import RequestContext, assemble_beacon
from app.services.report_normalizers import NormalizedReport, ReportKind, normalize, raw_json

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

_MAX_LOGGED_REPORT_CHARS = 4000


def now_ms() -> int:
    return int(time.time() * 1000)


def iter_reports(body: Any) -> list[Any]:
    """A report body is either one report or an array of them."""
    if isinstance(body, list):
        return body
    return [body]


def _preview(report: Any) -> str:
    text = raw_json(report)
    return text[:_MAX_LOGGED_REPORT_CHARS]


def _normalize_best_effort(report: Any, captured_ms: int, *, include_full_report: bool) -> NormalizedReport | None:
    try:
        return normalize(report, captured_ms, include_full_report=include_full_report)
    except Exception:
        logger.exception("report_normalization_failed", extra={"report": _preview(report)})
        return None


def build_beacon(
    report: Any,
    context: RequestContext,
    *,
    captured_ms: int,
    include_full_report: bool = False,
) -> dict[str, Any]:
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("report_received", extra={"report": _preview(report)})
    normalized = _normalize_best_effort(report, captured_ms, include_full_report=include_full_report)
    if normalized is None:
        metrics.record_report_degraded()
        normalized = NormalizedReport(kind=ReportKind.unknown)
    elif normalized.kind is ReportKind.unknown:
        logger.warning("unknown_report", extra={"report": _preview(report)})
        metrics.record_report_unknown()
    else:
        metrics.record_report_kind(normalized.kind.value)
        if normalized.missing_fields:
            logger.warning(
                "report_fields_missing",
                extra={"report_kind": normalized.kind.value, "missing_fields": list(normalized.missing_fields)},
            )
            metrics.record_report_degraded()
    metrics.record_report_handled()
    return assemble_beacon(context, captured_ms, normalized)


def build_beacons(
    body: Any,
    context: RequestContext,
    *,
    include_full_report: bool = False,
    clock: Clock = now_ms,
) -> list[dict[str, Any]]:
    """Run every report in the body through the pipeline; one beacon per report, in order."""
    return [
        build_beacon(report, context, captured_ms=clock(), include_full_report=include_full_report)
        for report in iter_reports(body)
    ]
