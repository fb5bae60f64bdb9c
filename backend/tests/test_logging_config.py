import json
import logging
import sys

from app.core.logging_config import JsonFormatter, mask_report_path, mask_secret, request_id_ctx_var


def test_mask_secret() -> None:
    assert mask_secret("ABCDEFGH") == "ABCD****"
    assert mask_secret("ABC") == "***"
    assert mask_secret(None) == ""


def test_mask_report_path() -> None:
    assert mask_report_path("/report/ABCDEFGH") == "/report/ABCD****"
    assert mask_report_path("/report/ABCDEFGH/extra") == "/report/ABCD****/extra"
    assert mask_report_path("/health") == "/health"


def test_json_formatter_merges_extras() -> None:
    record = logging.LogRecord("app.test", logging.WARNING, __file__, 1, "unknown_report", None, None)
    record.report = '{"type":"x"}'
    record.missing_fields = ["url"]
    record.request_id = "req-1"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "unknown_report"
    assert payload["level"] == "WARNING"
    assert payload["request_id"] == "req-1"
    assert payload["report"] == '{"type":"x"}'
    assert payload["missing_fields"] == ["url"]
    assert "lineno" not in payload


def test_json_formatter_includes_exception() -> None:
    try:
        raise ValueError("bad")
    except ValueError:
        exc_info = sys.exc_info()
    record = logging.LogRecord("app.test", logging.ERROR, __file__, 1, "failed", None, exc_info)

    payload = json.loads(JsonFormatter().format(record))

    assert "ValueError: bad" in payload["exception"]


def test_request_id_context_default() -> None:
    assert request_id_ctx_var.get() is None
