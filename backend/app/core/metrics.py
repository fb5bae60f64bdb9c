from collections import Counter
from threading import Lock
from typing import Dict, Counter as CounterType

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str) -> None:
    with _lock:
        _metrics[key] += 1


def record_report_handled() -> None:
    _inc("reports_handled")


def record_report_kind(kind: str) -> None:
    _inc(f"reports_by_kind:{kind}")


def record_report_unknown() -> None:
    _inc("reports_unknown")


def record_report_degraded() -> None:
    _inc("reports_degraded")


def record_beacon_sent() -> None:
    _inc("beacons_sent")


def record_beacon_failure() -> None:
    _inc("beacon_failures")


def record_tenant_session() -> None:
    _inc("tenant_sessions")


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
