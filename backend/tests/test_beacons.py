from app.services import jsurl
from app.services.beacons import RequestContext, assemble_beacon, encode_error
from app.services.report_normalizers import NormalizedError, NormalizedReport, ReportKind, normalize

CONTEXT = RequestContext(user_agent="Mozilla/5.0 (X11; Linux x86_64)", client_ip="203.0.113.9")
CAPTURED_MS = 1_700_000_000_000


def test_base_fields_share_capture_time() -> None:
    beacon = assemble_beacon(CONTEXT, CAPTURED_MS, NormalizedReport(kind=ReportKind.unknown))
    assert beacon == {
        "rt.tstart": CAPTURED_MS,
        "rt.end": CAPTURED_MS,
        "http.initiator": "error",
        "ua": CONTEXT.user_agent,
        "ip": CONTEXT.client_ip,
    }


def test_recognized_report_adds_url_and_encoded_error() -> None:
    report = {"type": "crash", "url": "https://a.com/page", "body": {"reason": "oom"}}
    normalized = normalize(report, CAPTURED_MS)
    beacon = assemble_beacon(CONTEXT, CAPTURED_MS, normalized)

    assert beacon["u"] == "https://a.com/page"
    decoded = jsurl.loads(beacon["err"])
    assert decoded == [{"v": 0, "t": "Crash", "d": "loyw3v28", "m": "oom"}]
    assert int(decoded[0]["d"], 36) == CAPTURED_MS


def test_reports_without_page_url_only_set_err() -> None:
    normalized = normalize({"expect-ct-report": {"hostname": "a.com"}}, CAPTURED_MS)
    beacon = assemble_beacon(CONTEXT, CAPTURED_MS, normalized)
    assert "u" not in beacon
    assert jsurl.loads(beacon["err"])[0]["m"] == "a.com"


def test_encode_error_wraps_record_in_single_element_array() -> None:
    error = NormalizedError(title="Intervention", date_token="abc", message="HeavyAd")
    assert encode_error(error) == "~(~(v~0~t~'Intervention~d~'abc~m~'HeavyAd))"
