"""Health check endpoints."""

import os
from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Response
from pydantic import BaseModel

from connectors.board_base import list_available_connectors
from core import __version__
from sync.config import load_sync_config


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        services={
            "api": "up",
            "connectors": ",".join(sorted(list_available_connectors())),
            "monday_token": "configured" if os.getenv("MONDAY_API_TOKEN") else "missing",
        }
    )


@router.get("/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """Readiness probe: the sync configuration must load and validate."""
    try:
        load_sync_config()
    except (OSError, ValueError) as e:
        response.status_code = 503
        return {"status": "not_ready", "reason": str(e)}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}
