from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass
from typing import Any, Callable

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_LINE_BREAK_RE = re.compile(r"[\r\n]+")

SCHEMA_VERSION = 0


class ReportKind(str, enum.Enum):
    csp = "csp"
    network_error = "network-error"
    deprecation = "deprecation"
    intervention = "intervention"
    crash = "crash"
    feature_policy = "feature-policy-violation"
    xss = "xss"
    expect_ct = "expect-ct"
    unknown = "unknown"


TITLES: dict[ReportKind, str] = {
    ReportKind.csp: "Content Security Policy",
    ReportKind.network_error: "Network Error Logging",
    ReportKind.deprecation: "Deprecation",
    ReportKind.intervention: "Intervention",
    ReportKind.crash: "Crash",
    ReportKind.feature_policy: "Feature Policy Violation",
    ReportKind.xss: "XSS Report",
    ReportKind.expect_ct: "Expect-CT",
}

_TYPE_KINDS: dict[str, ReportKind] = {
    "csp": ReportKind.csp,
    "csp-violation": ReportKind.csp,
    "network-error": ReportKind.network_error,
    "deprecation": ReportKind.deprecation,
    "intervention": ReportKind.intervention,
    "crash": ReportKind.crash,
    "feature-policy-violation": ReportKind.feature_policy,
    "permissions-policy-violation": ReportKind.feature_policy,
}

# Pre-Reporting-API payloads carry no ``type``; they are wrapped in a single key.
_MARKER_KINDS: tuple[tuple[str, ReportKind], ...] = (
    ("csp-report", ReportKind.csp),
    ("xss-report", ReportKind.xss),
    ("expect-ct-report", ReportKind.expect_ct),
)


@dataclass(frozen=True)
class NormalizedError:
    title: str
    date_token: str
    message: str
    detail: dict[str, Any] | None = None
    schema_version: int = SCHEMA_VERSION

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {
            "v": self.schema_version,
            "t": self.title,
            "d": self.date_token,
            "m": self.message,
        }
        if self.detail:
            wire["f"] = [{key: value for key, value in self.detail.items() if value is not None}]
        return wire

    @classmethod
    def from_wire(cls, wire: dict[str, Any]) -> "NormalizedError":
        frames = wire.get("f") or []
        return cls(
            title=wire["t"],
            date_token=wire["d"],
            message=wire["m"],
            detail=frames[0] if frames else None,
            schema_version=wire.get("v", SCHEMA_VERSION),
        )


@dataclass(frozen=True)
class NormalizedReport:
    """What a normalizer contributes to a beacon: the page url and the error record."""

    kind: ReportKind
    url: str | None = None
    error: NormalizedError | None = None
    missing_fields: tuple[str, ...] = ()


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return sign + "".join(reversed(digits))


def strip_scheme(uri: str) -> str:
    """Drop a leading ``http://`` or ``https://``; anything else is returned as is."""
    for scheme in ("http://", "https://"):
        if uri.startswith(scheme):
            return uri[len(scheme) :]
    return uri


def blocked_host(uri: str) -> str:
    """``https://evil.com/path/x`` -> ``evil.com``. Values without a ``/`` (``inline``, ``eval``) pass through."""
    host = strip_scheme(uri)
    slash = host.find("/")
    return host if slash == -1 else host[:slash]


def directive_name(directive: str) -> str:
    """``script-src 'self'`` -> ``script-src``."""
    space = directive.find(" ")
    return directive if space == -1 else directive[:space]


def single_line(message: str) -> str:
    return _LINE_BREAK_RE.sub(" ", message).strip()


def raw_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return raw_json(value)


class _Fields:
    """Defensive reader over one report payload that remembers which fields were absent."""

    def __init__(self, payload: Any, missing: list[str]) -> None:
        self.payload: dict[str, Any] = payload if isinstance(payload, dict) else {}
        self.missing = missing

    def text(self, *names: str, required: bool = True) -> str:
        for name in names:
            value = self.payload.get(name)
            if value is not None and value != "":
                return _as_text(value)
        if required:
            self.missing.append(names[0])
        return ""

    def get(self, name: str) -> Any:
        return self.payload.get(name)


def _join(*parts: str) -> str:
    return " ".join(part for part in parts if part)


def _result(
    kind: ReportKind,
    captured_ms: int,
    *,
    url: str | None,
    message: str,
    detail: dict[str, Any] | None,
    missing: list[str],
) -> NormalizedReport:
    error = NormalizedError(
        title=TITLES[kind],
        date_token=to_base36(captured_ms),
        message=single_line(message),
        detail=detail,
    )
    return NormalizedReport(kind=kind, url=url or None, error=error, missing_fields=tuple(missing))


def _policy_detail(payload: dict[str, Any], include_full_report: bool) -> dict[str, Any] | None:
    if not include_full_report:
        return None
    return {"f": raw_json(payload)}


def _script_detail(fields: _Fields, include_full_report: bool) -> dict[str, Any] | None:
    if not include_full_report:
        return None
    detail = {
        "l": fields.get("lineNumber"),
        "c": fields.get("columnNumber"),
        "f": fields.get("sourceFile"),
        "w": raw_json(fields.payload),
    }
    return {key: value for key, value in detail.items() if value is not None}


def normalize_csp(report: dict[str, Any], captured_ms: int, *, include_full_report: bool = False) -> NormalizedReport:
    missing: list[str] = []
    csp = _Fields(report.get("csp-report") or report.get("body"), missing)
    url = csp.text("document-uri", "documentURL", required=False) or _as_text(report.get("url") or "")
    if not url:
        missing.append("document-uri")
    directive = directive_name(csp.text("effective-directive", "violated-directive", "effectiveDirective"))
    host = blocked_host(csp.text("blocked-uri", "blockedURL"))
    return _result(
        ReportKind.csp,
        captured_ms,
        url=url,
        message=f"{directive}: {host}",
        detail=_policy_detail(csp.payload, include_full_report),
        missing=missing,
    )


def normalize_network_error(
    report: dict[str, Any], captured_ms: int, *, include_full_report: bool = False
) -> NormalizedReport:
    missing: list[str] = []
    envelope = _Fields(report, missing)
    nel = _Fields(report.get("body"), missing)
    message = _join(nel.text("type"), nel.text("protocol"), nel.text("method"), nel.text("status_code"))
    return _result(
        ReportKind.network_error,
        captured_ms,
        url=envelope.text("url"),
        message=message,
        detail=_policy_detail(nel.payload, include_full_report),
        missing=missing,
    )


def normalize_deprecation(
    report: dict[str, Any], captured_ms: int, *, include_full_report: bool = False
) -> NormalizedReport:
    missing: list[str] = []
    envelope = _Fields(report, missing)
    deprecation = _Fields(report.get("body"), missing)
    message = _join(deprecation.text("id"), deprecation.text("anticipatedRemoval", required=False))
    return _result(
        ReportKind.deprecation,
        captured_ms,
        url=envelope.text("url"),
        message=message,
        detail=_script_detail(deprecation, include_full_report),
        missing=missing,
    )


def normalize_intervention(
    report: dict[str, Any], captured_ms: int, *, include_full_report: bool = False
) -> NormalizedReport:
    missing: list[str] = []
    envelope = _Fields(report, missing)
    intervention = _Fields(report.get("body"), missing)
    return _result(
        ReportKind.intervention,
        captured_ms,
        url=envelope.text("url"),
        message=intervention.text("id"),
        detail=_script_detail(intervention, include_full_report),
        missing=missing,
    )


def normalize_crash(report: dict[str, Any], captured_ms: int, *, include_full_report: bool = False) -> NormalizedReport:
    missing: list[str] = []
    envelope = _Fields(report, missing)
    crash = _Fields(report.get("body"), missing)
    return _result(
        ReportKind.crash,
        captured_ms,
        url=envelope.text("url"),
        message=crash.text("reason"),
        detail=_policy_detail(crash.payload, include_full_report),
        missing=missing,
    )


def normalize_feature_policy(
    report: dict[str, Any], captured_ms: int, *, include_full_report: bool = False
) -> NormalizedReport:
    missing: list[str] = []
    envelope = _Fields(report, missing)
    violation = _Fields(report.get("body"), missing)
    return _result(
        ReportKind.feature_policy,
        captured_ms,
        url=envelope.text("url"),
        message=violation.text("policyId", "featureId"),
        detail=_policy_detail(violation.payload, include_full_report),
        missing=missing,
    )


def normalize_xss(report: dict[str, Any], captured_ms: int, *, include_full_report: bool = False) -> NormalizedReport:
    missing: list[str] = []
    xss = _Fields(report.get("xss-report"), missing)
    return _result(
        ReportKind.xss,
        captured_ms,
        url=None,
        message=strip_scheme(xss.text("request-url")),
        detail=_policy_detail(xss.payload, include_full_report),
        missing=missing,
    )


def normalize_expect_ct(
    report: dict[str, Any], captured_ms: int, *, include_full_report: bool = False
) -> NormalizedReport:
    missing: list[str] = []
    ct = _Fields(report.get("expect-ct-report"), missing)
    return _result(
        ReportKind.expect_ct,
        captured_ms,
        url=None,
        message=ct.text("hostname"),
        detail=None,
        missing=missing,
    )


Normalizer = Callable[..., NormalizedReport]

NORMALIZERS: dict[ReportKind, Normalizer] = {
    ReportKind.csp: normalize_csp,
    ReportKind.network_error: normalize_network_error,
    ReportKind.deprecation: normalize_deprecation,
    ReportKind.intervention: normalize_intervention,
    ReportKind.crash: normalize_crash,
    ReportKind.feature_policy: normalize_feature_policy,
    ReportKind.xss: normalize_xss,
    ReportKind.expect_ct: normalize_expect_ct,
}


def classify(report: Any) -> ReportKind:
    """Pick the report kind: the ``type`` discriminator wins, then the legacy wrapper keys."""
    if not isinstance(report, dict):
        return ReportKind.unknown
    report_type = report.get("type")
    if isinstance(report_type, str) and report_type in _TYPE_KINDS:
        return _TYPE_KINDS[report_type]
    for marker, kind in _MARKER_KINDS:
        payload = report.get(marker)
        # Empty wrapper objects still mark the kind; their fields degrade.
        if isinstance(payload, (dict, list)) or payload:
            return kind
    return ReportKind.unknown


def normalize(report: Any, captured_ms: int, *, include_full_report: bool = False) -> NormalizedReport:
    kind = classify(report)
    if kind is ReportKind.unknown:
        return NormalizedReport(kind=kind)
    return NORMALIZERS[kind](report, captured_ms, include_full_report=include_full_report)
