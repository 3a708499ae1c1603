from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class Envelope(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    note: Optional[str] = None


class DashboardEnvelope(Envelope):
    state: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "OK"
    timestamp: str


class RebuildResponse(BaseModel):
    success: bool
    state: str
    origin: str
    metrics: Dict[str, Any]
    report: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
