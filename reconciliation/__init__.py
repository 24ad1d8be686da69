"""Reconciliation - decide how a financial record lands on a board."""

from reconciliation.engine import (
    Action,
    ActionKind,
    ColumnValuePayload,
    CreateAction,
    ReconciliationEngine,
    UpdateAction,
)

__all__ = [
    "Action",
    "ActionKind",
    "ColumnValuePayload",
    "CreateAction",
    "ReconciliationEngine",
    "UpdateAction",
]
