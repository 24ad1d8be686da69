"""Mutation executor.

Turns a decided Action into exactly one board mutation. No business logic
lives here: the Action already says what to write.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

from connectors.board_base import BoardClient, BoardClientError
from core.errors import ItemNotFoundError, MutationRejectedError, SyncError
from core.observability.logging import get_logger
from reconciliation.engine import Action, UpdateAction
from sync.calls import guarded_call

logger = get_logger(__name__)


@dataclass
class ExecutionResult:
    """Result of submitting one Action."""
    action: Action
    item_id: Optional[str] = None
    error: Optional[SyncError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.item_id is not None


class MutationExecutor:
    """Submit Actions through a BoardClient.

    Each call is one atomic unit at the service boundary. Once a call is
    on the wire, cancelling the caller does not abandon it: the executor
    waits for the call to settle before letting the cancellation through.
    """

    def __init__(self, client: BoardClient, call_timeout_seconds: float = 30.0):
        self.client = client
        self.call_timeout_seconds = call_timeout_seconds

    async def execute(self, action: Action) -> str:
        """Submit ``action`` and return the affected item id.

        Raises:
            TransportError: Timeout or transient failure (retryable)
            MutationRejectedError: The service refused the payload
            ItemNotFoundError: The item to update was deleted after it was located
        """
        task = asyncio.ensure_future(
            guarded_call(
                self.client.submit(action.mutation_name, action.mutation_args()),
                action.mutation_name,
                self.call_timeout_seconds,
                mutation=True,
            )
        )
        try:
            item_id = await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                logger.warning(f"Cancellation requested during {action.mutation_name}; waiting for it to settle")
                await asyncio.wait([task])
            raise
        except MutationRejectedError as e:
            cause = e.__cause__
            if isinstance(action, UpdateAction) and isinstance(cause, BoardClientError) and cause.not_found:
                raise ItemNotFoundError(action.board_id, action.item_id) from e
            raise

        logger.debug(
            f"{action.mutation_name} applied to item {item_id}",
            extra_fields={"board_id": action.board_id, "item_id": item_id},
        )
        return item_id

    async def execute_many(self, actions: Sequence[Action]) -> List[ExecutionResult]:
        """Submit independent Actions concurrently.

        Every Action gets its own result; a failing one does not stop the
        others. Results are returned in input order.
        """
        return list(await asyncio.gather(*(self._execute_one(a) for a in actions)))

    async def _execute_one(self, action: Action) -> ExecutionResult:
        try:
            item_id = await self.execute(action)
        except SyncError as e:
            logger.warning(f"{action.mutation_name} failed on board {action.board_id}: {e.message}")
            return ExecutionResult(action=action, error=e)
        return ExecutionResult(action=action, item_id=item_id)
