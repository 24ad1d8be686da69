"""Sync endpoints.

Run a batch of SAP FI records against the configured boards, preview the
Actions a batch would produce, and read the sync metrics.
"""

from functools import lru_cache
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from connectors.board_base import BoardClient, create_connector
from core.observability import get_logger, get_metrics
from sync.batch import preview_batch, reconcile_batch, shared_locks
from sync.config import SyncConfig, load_connector_config, load_sync_config
from sync.pipeline import KeyedLocks


router = APIRouter()
logger = get_logger(__name__)


# =============================================================================
# Dependencies
# =============================================================================

@lru_cache(maxsize=1)
def get_sync_config() -> SyncConfig:
    """Sync configuration, loaded once from SYNC_CONFIG_PATH."""
    return load_sync_config()


def get_record_locks() -> KeyedLocks:
    """Per (board, business key) locks shared by every request in this process."""
    return shared_locks()


async def get_board_client(
    config: SyncConfig = Depends(get_sync_config),
) -> AsyncGenerator[BoardClient, None]:
    """A connected board client for the duration of one request."""
    try:
        client_config = load_connector_config(config)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    async with create_connector(client_config) as client:
        yield client


# =============================================================================
# Request / Response Models
# =============================================================================

class SyncBatchRequest(BaseModel):
    """A batch of financial records to reconcile."""
    records: List[Dict[str, Any]] = Field(..., description="SAP FI records (projectId, wbs, name, amounts)")
    batch_id: Optional[str] = Field(None, description="Correlation id (generated if omitted)")


class SyncSummary(BaseModel):
    total: int
    succeeded: int
    skipped: int
    failed: int
    created: int
    updated: int


class SyncBatchResponse(BaseModel):
    """Per-record outcomes plus aggregate counts."""
    batch_id: str
    started_at: str
    finished_at: Optional[str]
    outcomes: List[Dict[str, Any]]
    summary: SyncSummary


class SyncPreviewResponse(BaseModel):
    """Actions the batch would produce, without applying them."""
    records: List[Dict[str, Any]]


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/batch", response_model=SyncBatchResponse)
async def run_sync_batch(
    request: SyncBatchRequest,
    config: SyncConfig = Depends(get_sync_config),
    client: BoardClient = Depends(get_board_client),
    locks: KeyedLocks = Depends(get_record_locks),
) -> SyncBatchResponse:
    """Reconcile a batch of records onto their boards.

    Record-level failures are reported in ``outcomes``; the request itself
    only fails when the batch cannot start.
    """
    logger.info(f"Sync batch requested with {len(request.records)} record(s)")
    report = await reconcile_batch(
        request.records, config, client=client, batch_id=request.batch_id, locks=locks
    )
    return SyncBatchResponse(**report.to_dict())


@router.post("/preview", response_model=SyncPreviewResponse)
async def preview_sync_batch(
    request: SyncBatchRequest,
    config: SyncConfig = Depends(get_sync_config),
    client: BoardClient = Depends(get_board_client),
) -> SyncPreviewResponse:
    """Resolve, locate and decide each record; apply nothing."""
    return SyncPreviewResponse(records=await preview_batch(request.records, config, client))


@router.get("/metrics")
async def sync_metrics() -> Dict[str, Any]:
    """Batch/record counters and stage timings since process start."""
    return get_metrics().get_summary()
