from __future__ import annotations

import logging
from pathlib import Path

from app.core.config import settings

logger = logging.getLogger(__name__)


def _is_production() -> bool:
    env = (settings.environment or "").strip().lower()
    return env in {"prod", "production"}


def _append_if(problems: list[str], *, condition: bool, message: str) -> None:
    if condition:
        problems.append(message)


def _validate_credentials_file(problems: list[str]) -> None:
    path = Path(settings.apps_file)
    if not path.is_file():
        problems.append(f"APPS_FILE must point to an existing credentials file (got {path}).")
        return
    from app.services.tenants import CredentialTable

    try:
        table = CredentialTable.from_file(path)
    except ValueError as exc:
        problems.append(f"APPS_FILE is not a valid credentials file: {exc}")
        return
    _append_if(problems, condition=len(table) == 0, message="APPS_FILE must list at least one API key.")


def _validate_mpulse_settings(problems: list[str]) -> None:
    _append_if(
        problems,
        condition=not (settings.mpulse_config_url or "").strip().lower().startswith("https://"),
        message="MPULSE_CONFIG_URL must be an https:// URL in production.",
    )
    _append_if(
        problems,
        condition=bool(settings.include_full_report),
        message="INCLUDE_FULL_REPORT must be disabled in production (raw reports may contain user data).",
    )


def validate_production_settings() -> None:
    """
    Fail fast on unusable configuration when running in production.

    Local and test environments may run without a credentials file; every report is then
    rejected with ``unknown_api_key``.
    """
    if not _is_production():
        return

    problems: list[str] = []
    _validate_credentials_file(problems)
    _validate_mpulse_settings(problems)
    _append_if(
        problems,
        condition=not (settings.sentry_dsn or "").strip(),
        message="SENTRY_DSN must be configured in production.",
    )

    if problems:
        raise RuntimeError("Production configuration checks failed:\n- " + "\n- ".join(problems))
    logger.info("production_settings_ok")
