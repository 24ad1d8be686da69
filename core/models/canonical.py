"""Core canonical data models - board-neutral sync types.

These models represent financial records and board state in a standardized
format that is independent of any specific board service (Monday.com, etc.).

Service-specific field mappings are handled in /connectors/ and /core/mapping/.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers (handle the formats SAP exports and spreadsheets produce)
# =============================================================================

def _parse_decimal(value):
    """Parse decimal from various formats (string with currency or commas, floats, etc.)."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("Boolean is not a valid amount")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace("$", "").replace("€", "").replace(",", "").replace(" ", "")
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        # SAP trailing minus: "150.00-"
        if s.endswith("-") and not s.startswith("-"):
            s = "-" + s[:-1]
        try:
            return Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse amount: {value!r}")
    return value


def _parse_key(value):
    """Normalize identifiers that spreadsheets like to turn into numbers."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("Boolean is not a valid identifier")
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
KeyValue = Annotated[str, BeforeValidator(_parse_key)]

ColumnScalar = Union[Decimal, str, None]


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ColumnType(str, Enum):
    """Wire type of a board column value."""
    TEXT = "text"
    NUMBER = "number"


# =============================================================================
# Financial Record (input)
# =============================================================================

_RECORD_FIELDS = {"project_id", "projectId", "wbs", "name", "amounts"}


class FinancialRecord(CanonicalBase):
    """A project / WBS row exported from the financial system.

    Immutable input to the engine. ``amounts`` holds the named numeric
    fields (approved budget, actual payment, remaining orders, ...).
    """
    project_id: KeyValue = Field(..., alias="projectId", min_length=1)
    wbs: KeyValue = Field(..., min_length=1, description="WBS element, the business key")
    name: str = Field(..., min_length=1)
    amounts: Dict[str, Optional[DecimalValue]] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_amounts(cls, data):
        """Fold flat amount fields (``{"budget": 111, ...}``) into ``amounts``."""
        if not isinstance(data, dict):
            return data
        extra = {k: v for k, v in data.items() if k not in _RECORD_FIELDS}
        if not extra:
            return data
        folded = {k: v for k, v in data.items() if k in _RECORD_FIELDS}
        folded["amounts"] = {**extra, **(data.get("amounts") or {})}
        return folded

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("amounts")
    @classmethod
    def _finite_amounts(cls, value: Dict[str, Optional[Decimal]]) -> Dict[str, Optional[Decimal]]:
        for key, amount in value.items():
            if amount is not None and not amount.is_finite():
                raise ValueError(f"amount {key!r} is not a finite number")
        return value

    @property
    def business_key(self) -> str:
        return self.wbs

    def field_value(self, source_field: str) -> Optional[Union[str, Decimal]]:
        """Look up a named field: identifiers first, then amounts."""
        if source_field in ("project_id", "wbs", "name"):
            return getattr(self, source_field)
        return self.amounts.get(source_field)


# =============================================================================
# Board State
# =============================================================================

class BoardMapping(CanonicalBase):
    """Resolved target board for an external project id."""
    project_id: str
    board_id: str
    source_item_id: Optional[str] = Field(
        default=None, description="Mapping-board item the mapping was read from"
    )


class BoardItem(CanonicalBase):
    """Current state of a row on a board.

    Always fetched fresh; never cached across pipeline runs.
    """
    id: str
    name: str = ""
    board_id: Optional[str] = None
    column_values: Dict[str, ColumnScalar] = Field(default_factory=dict)

    def text(self, column_id: str) -> Optional[str]:
        """Column value rendered as text (None when absent or empty)."""
        value = self.column_values.get(column_id)
        if value is None:
            return None
        if isinstance(value, Decimal):
            return format(value.normalize(), "f")
        return value
