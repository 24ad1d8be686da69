"""Monday.com data models.

These are Monday-specific models that map to the GraphQL API schema.
They are separate from the canonical models in /core/models/.
"""

import json
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.models import BoardItem


class MondayBaseModel(BaseModel):
    """Base model for Monday API entities."""
    model_config = ConfigDict(populate_by_name=True)


class MondayColumnValue(MondayBaseModel):
    """A column value as returned by ``column_values { id type text value }``."""
    id: str
    type: Optional[str] = None
    text: Optional[str] = None
    value: Optional[str] = Field(None, description="Raw JSON-encoded value")

    def to_scalar(self) -> Any:
        """Typed value: Decimal for number columns, text otherwise."""
        if self.type == "numbers":
            raw = self.text
            if not raw and self.value:
                try:
                    raw = json.loads(self.value)
                except ValueError:
                    raw = None
            if raw in (None, ""):
                return None
            try:
                return Decimal(str(raw))
            except InvalidOperation:
                return None
        if self.text in (None, ""):
            return None
        return self.text


class MondayItem(MondayBaseModel):
    """Monday item entity (``items { id name column_values {...} }``)."""
    id: str
    name: str = ""
    column_values: List[MondayColumnValue] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)

    def to_board_item(self, board_id: Optional[str] = None) -> BoardItem:
        return BoardItem(
            id=self.id,
            name=self.name,
            board_id=board_id,
            column_values={cv.id: cv.to_scalar() for cv in self.column_values},
        )


class MondayItemsPage(MondayBaseModel):
    """One page of ``items_page_by_column_values``."""
    cursor: Optional[str] = None
    items: List[MondayItem] = Field(default_factory=list)
