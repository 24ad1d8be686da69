"""Column mapping table.

Translates named fields of a financial record (``wbs``, ``budget``, ...) to
board column ids and wire types. The table is static configuration loaded
from JSON; nothing here is hardcoded per record or per board.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from core.models import ColumnType


@dataclass(frozen=True)
class ColumnMapping:
    """A single field → column rule."""
    source_field: str           # Record field: project_id, wbs, name or an amounts key
    column_id: str              # Board column id (e.g. "numbers9__1")
    column_type: ColumnType = ColumnType.NUMBER
    required: bool = True       # Missing value rejects the record
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnMapping":
        return cls(
            source_field=data["source_field"],
            column_id=data["column_id"],
            column_type=ColumnType(data.get("column_type", ColumnType.NUMBER.value)),
            required=data.get("required", True),
            description=data.get("description"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_field": self.source_field,
            "column_id": self.column_id,
            "column_type": self.column_type.value,
            "required": self.required,
            "description": self.description,
        }


class ColumnMappingTable:
    """Ordered set of column mappings.

    Order is significant: the serialized payload lists columns in table
    order, which keeps payloads byte-identical across runs.
    """

    def __init__(self, mappings: Optional[List[ColumnMapping]] = None):
        self._mappings: List[ColumnMapping] = []
        for mapping in mappings or []:
            self.add(mapping)

    def add(self, mapping: ColumnMapping) -> None:
        """Append a mapping. Column ids and source fields must be unique."""
        for existing in self._mappings:
            if existing.column_id == mapping.column_id:
                raise ValueError(f"Column {mapping.column_id!r} is mapped twice")
            if existing.source_field == mapping.source_field:
                raise ValueError(f"Field {mapping.source_field!r} is mapped twice")
        self._mappings.append(mapping)

    def remove(self, column_id: str) -> bool:
        """Remove a mapping by column id. Returns True if removed."""
        for i, mapping in enumerate(self._mappings):
            if mapping.column_id == column_id:
                del self._mappings[i]
                return True
        return False

    def get(self, column_id: str) -> Optional[ColumnMapping]:
        for mapping in self._mappings:
            if mapping.column_id == column_id:
                return mapping
        return None

    def __iter__(self) -> Iterator[ColumnMapping]:
        return iter(self._mappings)

    def __len__(self) -> int:
        return len(self._mappings)

    @property
    def source_fields(self) -> List[str]:
        return [m.source_field for m in self._mappings]

    @property
    def column_ids(self) -> List[str]:
        return [m.column_id for m in self._mappings]

    # =========================================================================
    # Persistence
    # =========================================================================

    @classmethod
    def from_list(cls, items: List[Dict[str, Any]]) -> "ColumnMappingTable":
        return cls([ColumnMapping.from_dict(item) for item in items])

    def to_list(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._mappings]

    @classmethod
    def load_rules_from_json(cls, path: Path) -> "ColumnMappingTable":
        """Load a table from a JSON file.

        Expected format:
        {
            "columns": [
                {"source_field": "wbs", "column_id": "wbs__1", "column_type": "text"},
                {"source_field": "budget", "column_id": "numbers9__1", "column_type": "number"}
            ]
        }
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_list(data.get("columns", []))

    def save_rules_to_json(self, path: Path) -> None:
        """Save the table to a JSON file."""
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"columns": self.to_list()}, f, indent=2)
