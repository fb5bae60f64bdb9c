import argparse
import json
import sys
from pathlib import Path
from typing import Any, TextIO

from app.core.config import settings
from app.services import jsurl
from app.services.beacons import RequestContext
from app.services.report_ingest import build_beacons


def _load_reports(raw_path: str) -> Any:
    if raw_path == "-":
        return json.load(sys.stdin)
    path = Path(raw_path)
    if not path.is_file():
        raise SystemExit(f"Input file not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise SystemExit(f"Invalid JSON in {path}: {exc}")


def normalize_reports(raw_path: str, *, include_full_report: bool, out: TextIO = sys.stdout) -> int:
    """Print one beacon per report (JSON lines) and return the handled count."""
    context = RequestContext(user_agent="report-relay-cli", client_ip="127.0.0.1")
    beacons = build_beacons(_load_reports(raw_path), context, include_full_report=include_full_report)
    for beacon in beacons:
        out.write(json.dumps(beacon, ensure_ascii=False) + "\n")
    return len(beacons)


def decode_error(value: str, out: TextIO = sys.stdout) -> None:
    try:
        decoded = jsurl.loads(value)
    except jsurl.JSURLError as exc:
        raise SystemExit(f"Not a valid err value: {exc}")
    out.write(json.dumps(decoded, ensure_ascii=False, indent=2) + "\n")


def check_config(out: TextIO = sys.stdout) -> None:
    from app.core.startup_checks import validate_production_settings
    from app.services.tenants import CredentialTable

    try:
        validate_production_settings()
        table = CredentialTable.from_file(settings.apps_file, missing_ok=True)
    except (RuntimeError, ValueError) as exc:
        raise SystemExit(str(exc))
    out.write(f"environment={settings.environment} tenants={len(table)} include_full_report={settings.include_full_report}\n")


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("app.main:app", host=host, port=port, proxy_headers=True, log_config=None)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Browser report relay utilities")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_cmd = subparsers.add_parser("serve", help="Run the HTTP relay")
    serve_cmd.add_argument("--host", default=settings.host)
    serve_cmd.add_argument("--port", type=int, default=settings.port)

    normalize_cmd = subparsers.add_parser("normalize", help="Print the beacons a JSON report file would produce")
    normalize_cmd.add_argument("input", help="Path to a JSON report (or array of reports); '-' reads stdin")
    normalize_cmd.add_argument("--full", action="store_true", help="Attach the raw report to each error")

    decode_cmd = subparsers.add_parser("decode-err", help="Decode a JSURL-encoded beacon err value")
    decode_cmd.add_argument("value")

    subparsers.add_parser("check-config", help="Validate settings and the credentials file")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    if args.command == "serve":
        serve(args.host, args.port)
    elif args.command == "normalize":
        normalize_reports(args.input, include_full_report=args.full or settings.include_full_report)
    elif args.command == "decode-err":
        decode_error(args.value)
    elif args.command == "check-config":
        check_config()


if __name__ == "__main__":
    main()
