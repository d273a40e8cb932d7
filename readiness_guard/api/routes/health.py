"""GET /health — liveness plus a summary of the security configuration."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request

from readiness_guard import __version__
from readiness_guard.api.dependencies import ConfigDep
from readiness_guard.api.schemas import HealthResponse
from readiness_guard.config import security_health

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health(request: Request, config: ConfigDep) -> HealthResponse:
    security = security_health(config)
    return HealthResponse(
        status="degraded" if security["status"] == "critical" else "ok",
        version=__version__,
        uptime_seconds=round(time.time() - request.app.state.started_at, 2),
        security=security,
    )
