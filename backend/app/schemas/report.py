from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ReportIngestResponse(BaseModel):
    success: bool = True
    handled: int = 0


class ErrorResponse(BaseModel):
    detail: Any
    code: str | None = None
