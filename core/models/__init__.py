"""Core data models - board-neutral canonical types.

This package contains all canonical data models that are intentionally
independent of any specific board service.
"""

from core.models.canonical import (
    # Base
    CanonicalBase,
    DecimalValue,
    KeyValue,
    ColumnScalar,
    ColumnType,

    # Input
    FinancialRecord,

    # Board state
    BoardMapping,
    BoardItem,
)

from core.models.refs import (
    OutcomeStatus,
    PipelineStage,
    RecordOutcome,
    BatchReport,
)

__all__ = [
    # Base
    "CanonicalBase",
    "DecimalValue",
    "KeyValue",
    "ColumnScalar",
    "ColumnType",
    # Input
    "FinancialRecord",
    # Board state
    "BoardMapping",
    "BoardItem",
    # Outcomes
    "OutcomeStatus",
    "PipelineStage",
    "RecordOutcome",
    "BatchReport",
]
