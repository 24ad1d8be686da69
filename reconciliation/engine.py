"""Reconciliation engine for financial records and board items.

Exposes:
- ReconciliationEngine.reconcile(record, existing_item, board_id) -> Action
- ColumnValuePayload.serialize() -> str

The engine is pure: no I/O, no clocks, no counters. The same record and
the same item snapshot always produce the same Action and a byte-identical
payload, which is what makes re-running a record after a partial failure
safe.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from core.errors import RecordValidationError
from core.mapping import ColumnMapping, ColumnMappingTable
from core.models import BoardItem, ColumnType, FinancialRecord


# =============================================================================
# Utility Functions
# =============================================================================

def format_number(value: Decimal) -> str:
    """Render a Decimal as a plain JSON number (no exponent, no trailing zeros)."""
    text = format(value.normalize(), "f")
    if text == "-0":
        return "0"
    return text


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Convert a field value to Decimal, rejecting anything non-numeric."""
    if isinstance(value, bool):
        raise RecordValidationError(f"Field {field_name!r} is not numeric: {value!r}")
    if isinstance(value, Decimal):
        number = value
    else:
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise RecordValidationError(f"Field {field_name!r} is not numeric: {value!r}")
    if not number.is_finite():
        raise RecordValidationError(f"Field {field_name!r} is not a finite number: {value!r}")
    return number


def to_text(value: Any) -> str:
    if isinstance(value, Decimal):
        return format_number(value)
    return str(value)


# =============================================================================
# Column Value Payload
# =============================================================================

class ColumnValuePayload(Mapping):
    """Ordered, immutable column id -> value mapping.

    Numbers are Decimal and serialize unquoted; text serializes as a JSON
    string. The serialized form is the single string argument the board
    mutations take.
    """

    def __init__(self, items: List[Tuple[str, Union[Decimal, str]]]):
        self._items: Tuple[Tuple[str, Union[Decimal, str]], ...] = tuple(items)
        self._index: Dict[str, Union[Decimal, str]] = dict(self._items)

    def __getitem__(self, column_id: str) -> Union[Decimal, str]:
        return self._index[column_id]

    def __iter__(self) -> Iterator[str]:
        return (column_id for column_id, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"ColumnValuePayload({self.serialize()})"

    def serialize(self) -> str:
        """Serialize as a JSON object string, preserving column order."""
        parts = []
        for column_id, value in self._items:
            if isinstance(value, Decimal):
                rendered = format_number(value)
            else:
                rendered = json.dumps(value)
            parts.append(f"{json.dumps(column_id)}: {rendered}")
        return "{" + ", ".join(parts) + "}"

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict with numbers as int/float, for reports."""
        return json.loads(self.serialize())


# =============================================================================
# Actions
# =============================================================================

class ActionKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class CreateAction:
    """Create a new item named ``name`` on ``board_id``."""
    board_id: str
    name: str
    column_values: ColumnValuePayload
    kind: ActionKind = field(default=ActionKind.CREATE, init=False)

    @property
    def mutation_name(self) -> str:
        return "create_item"

    def mutation_args(self) -> Dict[str, Any]:
        return {
            "board_id": self.board_id,
            "item_name": self.name,
            "column_values": self.column_values.serialize(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "board_id": self.board_id,
            "name": self.name,
            "column_values": self.column_values.to_dict(),
            "payload": self.column_values.serialize(),
        }


@dataclass(frozen=True)
class UpdateAction:
    """Overwrite the mapped columns of item ``item_id`` on ``board_id``."""
    board_id: str
    item_id: str
    column_values: ColumnValuePayload
    kind: ActionKind = field(default=ActionKind.UPDATE, init=False)

    @property
    def mutation_name(self) -> str:
        return "change_multiple_column_values"

    def mutation_args(self) -> Dict[str, Any]:
        return {
            "board_id": self.board_id,
            "item_id": self.item_id,
            "column_values": self.column_values.serialize(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "board_id": self.board_id,
            "item_id": self.item_id,
            "column_values": self.column_values.to_dict(),
            "payload": self.column_values.serialize(),
        }


Action = Union[CreateAction, UpdateAction]


# =============================================================================
# Main Reconciliation Engine
# =============================================================================

class ReconciliationEngine:
    """Decide create-vs-update and build the column payload for a record."""

    def __init__(self, column_mappings: ColumnMappingTable):
        self.column_mappings = column_mappings

    def validate_record(self, record: FinancialRecord) -> None:
        """Check that every required mapped field is present and well-typed.

        Raises:
            RecordValidationError: Listing every problem found
        """
        problems = []
        for mapping in self.column_mappings:
            try:
                self._column_value(record, mapping)
            except RecordValidationError as e:
                problems.append(e.message)
        if problems:
            raise RecordValidationError(
                f"Record {record.wbs!r} is incomplete: {'; '.join(problems)}",
                errors=problems,
            )

    def build_payload(self, record: FinancialRecord) -> ColumnValuePayload:
        """Map record fields to configured columns, in table order."""
        items = []
        for mapping in self.column_mappings:
            value = self._column_value(record, mapping)
            if value is not None:
                items.append((mapping.column_id, value))
        return ColumnValuePayload(items)

    def reconcile(
        self,
        record: FinancialRecord,
        existing_item: Optional[BoardItem],
        board_id: Optional[str] = None,
    ) -> Action:
        """Decide the single mutation that makes the board match the record.

        Args:
            record: Validated financial record
            existing_item: Current board item for the record's business key, if any
            board_id: Target board (defaults to the existing item's board)

        Returns:
            CreateAction when no item exists, UpdateAction addressed to it otherwise
        """
        if board_id is None and existing_item is not None:
            board_id = existing_item.board_id
        if board_id is None:
            raise ValueError("board_id is required when there is no existing item")

        payload = self.build_payload(record)

        if existing_item is None:
            return CreateAction(board_id=str(board_id), name=record.name, column_values=payload)
        return UpdateAction(board_id=str(board_id), item_id=existing_item.id, column_values=payload)

    @staticmethod
    def _column_value(record: FinancialRecord, mapping: ColumnMapping) -> Optional[Union[Decimal, str]]:
        raw = record.field_value(mapping.source_field)
        if raw is None or (isinstance(raw, str) and raw == ""):
            if mapping.required:
                raise RecordValidationError(f"missing field {mapping.source_field!r}")
            return None
        if mapping.column_type == ColumnType.NUMBER:
            return to_decimal(raw, mapping.source_field)
        return to_text(raw)
