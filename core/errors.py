"""Sync error taxonomy.

Every failure the pipeline can report for a single record is one of these.
Each error carries a stable ``code`` (used in batch reports and metrics) and
a ``retryable`` flag telling the batch runner whether re-running the
record's pipeline may succeed.

    SyncError
    ├── MappingNotFoundError      (recoverable, record is skipped)
    ├── ItemNotFoundError         (recoverable, record is skipped)
    ├── AmbiguousMappingError     (data conflict, no mutation applied)
    ├── AmbiguousItemError        (data conflict, no mutation applied)
    ├── TransportError            (network / timeout, retryable)
    ├── RecordValidationError     (malformed record, rejected before engine)
    ├── QueryRejectedError        (remote refused a lookup)
    └── MutationRejectedError     (remote rejected the payload)
"""

from typing import Any, Dict, List, Optional


class SyncError(Exception):
    """Base exception for all record-scoped sync failures."""

    code: str = "sync_error"
    retryable: bool = False
    skippable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class NotFoundError(SyncError):
    """Lookup found nothing. Recoverable: skip the record and continue."""
    code = "not_found"
    skippable = True


class MappingNotFoundError(NotFoundError):
    """No target board is configured for the external project id."""
    code = "mapping_not_found"

    def __init__(self, project_id: str):
        super().__init__(
            f"No board mapping configured for project {project_id!r}",
            {"project_id": project_id},
        )
        self.project_id = project_id


class ItemNotFoundError(NotFoundError):
    """An item expected on a board is gone."""
    code = "item_not_found"

    def __init__(self, board_id: str, item_id: str):
        super().__init__(
            f"Item {item_id} not found on board {board_id}",
            {"board_id": board_id, "item_id": item_id},
        )


class AmbiguousMappingError(SyncError):
    """More than one mapping row matches the project id."""
    code = "ambiguous_mapping"

    def __init__(self, project_id: str, board_ids: List[str]):
        super().__init__(
            f"Project {project_id!r} maps to {len(board_ids)} boards: {board_ids}",
            {"project_id": project_id, "board_ids": board_ids},
        )
        self.project_id = project_id
        self.board_ids = board_ids


class AmbiguousItemError(SyncError):
    """More than one board item carries the same business key."""
    code = "ambiguous_item"

    def __init__(self, board_id: str, business_key: str, item_ids: List[str]):
        super().__init__(
            f"Business key {business_key!r} matches {len(item_ids)} items "
            f"on board {board_id}: {item_ids}",
            {"board_id": board_id, "business_key": business_key, "item_ids": item_ids},
        )
        self.board_id = board_id
        self.business_key = business_key
        self.item_ids = item_ids


class TransportError(SyncError):
    """Network failure, timeout, rate limit or 5xx. Safe to retry."""
    code = "transport_error"
    retryable = True

    def __init__(self, message: str, operation: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, {"operation": operation, "status_code": status_code})
        self.operation = operation
        self.status_code = status_code


class RecordValidationError(SyncError):
    """The financial record is malformed or misses a configured field."""
    code = "validation_error"

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message, {"errors": errors or []})
        self.errors = errors or []


class QueryRejectedError(SyncError):
    """The board service refused a lookup (unknown board, bad column id)."""
    code = "query_rejected"

    def __init__(self, message: str, operation: Optional[str] = None,
                 remote_errors: Optional[List[Any]] = None):
        super().__init__(message, {"operation": operation, "remote_errors": remote_errors or []})
        self.operation = operation
        self.remote_errors = remote_errors or []


class MutationRejectedError(SyncError):
    """The board service rejected the mutation (e.g. unknown column id).

    The remote message is kept verbatim.
    """
    code = "mutation_rejected"

    def __init__(self, message: str, operation: Optional[str] = None,
                 remote_errors: Optional[List[Any]] = None):
        super().__init__(message, {"operation": operation, "remote_errors": remote_errors or []})
        self.operation = operation
        self.remote_errors = remote_errors or []
