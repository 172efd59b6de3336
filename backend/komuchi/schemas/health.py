"""Health, readiness and diagnostics payloads."""

from typing import Dict, Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    uptime: float
    timestamp: str


class DependencyCheck(BaseModel):
    status: str
    latencyMs: Optional[float] = None
    error: Optional[str] = None


class ReadinessResponse(HealthResponse):
    checks: Dict[str, DependencyCheck]
