"""In-memory board connector.

Keeps boards as plain dictionaries. Used for dry runs and tests; supports
failure injection so retry and partial-failure paths can be exercised
without a network.

    client = InMemoryBoardClient(BoardClientConfig(connector_type="memory"))
    client.add_board("5000", columns=["wbs__1", "numbers9__1"])
    client.add_item("5000", "Existing", {"wbs__1": "2000000036.2"})
"""

import asyncio
import json
from collections import deque
from decimal import Decimal
from typing import Any, Deque, Dict, List, Optional, Tuple

from connectors.board_base import (
    BoardClient,
    BoardClientConfig,
    BoardClientError,
    BoardConnectionStatus,
    FilterRule,
    register_connector,
)
from core.models import BoardItem


@register_connector("memory")
class InMemoryBoardClient(BoardClient):
    """Board connector backed by dictionaries.

    Optional custom_settings:
    - start_item_id: first id handed out by create_item (default 1000)
    - latency_seconds: artificial delay per call
    - case_insensitive_search: match filters ignoring case, like the real service
    """

    def __init__(self, config: Optional[BoardClientConfig] = None):
        super().__init__(config or BoardClientConfig(connector_type="memory"))
        settings = self.config.custom_settings
        self._next_id = int(settings.get("start_item_id", 1000))
        self.latency_seconds = float(settings.get("latency_seconds", 0))
        self.case_insensitive_search = bool(settings.get("case_insensitive_search", False))

        self._boards: Dict[str, Dict[str, BoardItem]] = {}
        self._columns: Dict[str, Optional[List[str]]] = {}
        self._failures: Dict[str, Deque[Tuple[BoardClientError, bool]]] = {}

        # (operation, args) for every call, in order
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> bool:
        self._connection_status = BoardConnectionStatus.CONNECTED
        return True

    async def disconnect(self) -> None:
        self._connection_status = BoardConnectionStatus.DISCONNECTED

    # =========================================================================
    # Fixture helpers
    # =========================================================================

    def add_board(self, board_id: str, columns: Optional[List[str]] = None) -> None:
        """Register a board. With ``columns`` set, unknown column ids are rejected."""
        self._boards.setdefault(str(board_id), {})
        self._columns[str(board_id)] = list(columns) if columns is not None else None

    def add_item(
        self,
        board_id: str,
        name: str,
        column_values: Optional[Dict[str, Any]] = None,
        item_id: Optional[str] = None,
    ) -> str:
        """Insert an item directly, bypassing call recording and failures."""
        board_id = str(board_id)
        if board_id not in self._boards:
            self.add_board(board_id)
        item_id = str(item_id) if item_id is not None else self._allocate_id()
        self._boards[board_id][item_id] = BoardItem(
            id=item_id,
            name=name,
            board_id=board_id,
            column_values=dict(column_values or {}),
        )
        return item_id

    def items(self, board_id: str) -> List[BoardItem]:
        return list(self._boards.get(str(board_id), {}).values())

    def get_item(self, board_id: str, item_id: str) -> Optional[BoardItem]:
        return self._boards.get(str(board_id), {}).get(str(item_id))

    def fail_next(
        self,
        operation: str,
        error: Optional[BoardClientError] = None,
        apply_first: bool = False,
    ) -> None:
        """Make the next call of ``operation`` raise ``error``.

        With ``apply_first`` the mutation is applied before the error is
        raised, simulating a response lost after the write landed.
        """
        if error is None:
            error = BoardClientError("Injected timeout", status_code=504, retryable=True)
        self._failures.setdefault(operation, deque()).append((error, apply_first))

    def mutation_calls(self) -> List[Tuple[str, Dict[str, Any]]]:
        return [c for c in self.calls if c[0] in ("create_item", "update_item")]

    # =========================================================================
    # BoardClient interface
    # =========================================================================

    async def query_items(self, board_id: str, rules: List[FilterRule]) -> List[BoardItem]:
        board_id = str(board_id)
        await self._enter("query_items", {"board_id": board_id, "rules": rules})
        self._check_failure("query_items")
        board = self._require_board(board_id)
        return [item for item in board.values() if self._matches(item, rules)]

    async def create_item(self, board_id: str, name: str, column_values: str) -> str:
        board_id = str(board_id)
        await self._enter("create_item", {
            "board_id": board_id, "item_name": name, "column_values": column_values,
        })
        error, apply_first = self._pop_failure("create_item")
        if error is not None and not apply_first:
            raise error

        board = self._require_board(board_id)
        values = self._decode(board_id, column_values)
        item_id = self._allocate_id()
        board[item_id] = BoardItem(id=item_id, name=name, board_id=board_id, column_values=values)

        if error is not None:
            raise error
        return item_id

    async def update_item(self, board_id: str, item_id: str, column_values: str) -> str:
        board_id = str(board_id)
        item_id = str(item_id)
        await self._enter("update_item", {
            "board_id": board_id, "item_id": item_id, "column_values": column_values,
        })
        error, apply_first = self._pop_failure("update_item")
        if error is not None and not apply_first:
            raise error

        board = self._require_board(board_id)
        current = board.get(item_id)
        if current is None:
            raise BoardClientError(
                f"Item {item_id} not found on board {board_id}", status_code=200, not_found=True
            )
        merged = dict(current.column_values)
        merged.update(self._decode(board_id, column_values))
        board[item_id] = current.model_copy(update={"column_values": merged})

        if error is not None:
            raise error
        return item_id

    # =========================================================================
    # Internals
    # =========================================================================

    async def _enter(self, operation: str, args: Dict[str, Any]) -> None:
        self.calls.append((operation, args))
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

    def _pop_failure(self, operation: str) -> Tuple[Optional[BoardClientError], bool]:
        queue = self._failures.get(operation)
        if queue:
            return queue.popleft()
        return None, False

    def _check_failure(self, operation: str) -> None:
        error, _ = self._pop_failure(operation)
        if error is not None:
            raise error

    def _require_board(self, board_id: str) -> Dict[str, BoardItem]:
        if board_id not in self._boards:
            raise BoardClientError(f"Board {board_id} not found", status_code=200)
        return self._boards[board_id]

    def _allocate_id(self) -> str:
        item_id = str(self._next_id)
        self._next_id += 1
        return item_id

    def _matches(self, item: BoardItem, rules: List[FilterRule]) -> bool:
        for rule in rules:
            actual = item.text(rule.column_id)
            if actual is None:
                return False
            if self.case_insensitive_search:
                if actual.lower() not in {str(v).lower() for v in rule.values}:
                    return False
            elif actual not in {str(v) for v in rule.values}:
                return False
        return True

    def _decode(self, board_id: str, column_values: str) -> Dict[str, Any]:
        try:
            values = json.loads(column_values, parse_float=Decimal, parse_int=Decimal)
        except ValueError as e:
            raise BoardClientError(f"Invalid column values payload: {e}", status_code=200)
        allowed = self._columns.get(board_id)
        if allowed is not None:
            unknown = [c for c in values if c not in allowed]
            if unknown:
                raise BoardClientError(
                    f"This column ID doesn't exist for the board: {unknown}",
                    status_code=200,
                    errors=[{"message": "InvalidColumnIdException", "column_ids": unknown}],
                )
        return values
