"""Item locator: find the board item carrying a business key."""

from typing import Optional

from connectors.board_base import BoardClient, FilterRule
from core.errors import AmbiguousItemError
from core.models import BoardItem
from sync.calls import guarded_call


class ItemLocator:
    """Search a board for the item whose key column equals a business key.

    Zero matches means the record must be created, one means it must be
    updated. Several matches are never resolved by picking one.
    """

    def __init__(self, client: BoardClient, key_column: str, call_timeout_seconds: float = 30.0):
        self.client = client
        self.key_column = key_column
        self.call_timeout_seconds = call_timeout_seconds

    async def find(self, board_id: str, business_key: str) -> Optional[BoardItem]:
        """Return the matching item, or None.

        Raises:
            AmbiguousItemError: More than one item carries the key
            TransportError / QueryRejectedError: Lookup failed
        """
        items = await guarded_call(
            self.client.query_items(board_id, [FilterRule.equals(self.key_column, business_key)]),
            "query_items",
            self.call_timeout_seconds,
        )
        matches = [item for item in items if item.text(self.key_column) == business_key]

        if not matches:
            return None
        if len(matches) > 1:
            raise AmbiguousItemError(board_id, business_key, [item.id for item in matches])

        item = matches[0]
        if item.board_id is None:
            item = item.model_copy(update={"board_id": str(board_id)})
        return item
