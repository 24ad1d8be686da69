"""Outcome and report models for sync batches."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class OutcomeStatus(str, Enum):
    """Final status of one record's pipeline."""
    SUCCEEDED = "SUCCEEDED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class PipelineStage(str, Enum):
    """Per-record pipeline stages."""
    RESOLVING = "RESOLVING"
    LOCATING = "LOCATING"
    DECIDING = "DECIDING"
    EXECUTING = "EXECUTING"
    SUCCEEDED = "SUCCEEDED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class RecordOutcome(BaseModel):
    """Outcome of reconciling a single financial record.

    Attributes:
        index: Position of the record in the submitted batch
        project_id: External project id (if the record parsed)
        business_key: WBS number (if the record parsed)
        status: SUCCEEDED, SKIPPED or FAILED
        item_id: Board item created or updated (SUCCEEDED only)
        action: "create" or "update" when a mutation was decided
        reason: Why the record was skipped
        error: Error code/message/details for FAILED outcomes
        stage: Last stage the pipeline reached
        attempts: Number of pipeline runs (retries included)
    """
    index: int = Field(..., description="Position in the batch")
    project_id: Optional[str] = Field(None, description="External project id")
    business_key: Optional[str] = Field(None, description="WBS number")
    status: OutcomeStatus = Field(..., description="SUCCEEDED, SKIPPED or FAILED")
    item_id: Optional[str] = Field(None, description="Board item id")
    board_id: Optional[str] = Field(None, description="Target board id")
    action: Optional[str] = Field(None, description="create or update")
    reason: Optional[str] = Field(None, description="Skip reason")
    error: Optional[Dict[str, Any]] = Field(None, description="Error details")
    stage: PipelineStage = Field(default=PipelineStage.RESOLVING)
    attempts: int = Field(default=1)

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED


class BatchReport(BaseModel):
    """Per-record report for a sync batch, plus aggregate counts."""
    batch_id: str = Field(..., description="Batch identifier")
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    outcomes: List[RecordOutcome] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def succeeded(self) -> int:
        return self.count(OutcomeStatus.SUCCEEDED)

    @property
    def skipped(self) -> int:
        return self.count(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(OutcomeStatus.FAILED)

    def summary(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "created": sum(1 for o in self.outcomes if o.succeeded and o.action == "create"),
            "updated": sum(1 for o in self.outcomes if o.succeeded and o.action == "update"),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["summary"] = self.summary()
        return data
