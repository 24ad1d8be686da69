"""Per-record sync pipeline.

    RESOLVING -> LOCATING -> DECIDING -> EXECUTING -> SUCCEEDED
    (any stage) -> FAILED | SKIPPED

One run resolves the board, locates the item, decides the Action and
executes it once. There are no retries inside a run; the batch runner
decides whether to start another one.

Runs for the same (board, business key) are serialized from LOCATING
through EXECUTING, so a second run always sees the item the first one
created.
"""

import asyncio
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Tuple

from core.models import BoardItem, BoardMapping, FinancialRecord, PipelineStage
from core.observability.logging import get_logger, log_stage, with_correlation
from core.observability.metrics import MetricsCollector
from reconciliation.engine import Action, ReconciliationEngine
from sync.executor import MutationExecutor
from sync.locator import ItemLocator
from sync.resolver import BoardMappingResolver

logger = get_logger(__name__)


class KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._users: Dict[Tuple[str, str], int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Tuple[str, str]) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class RecordState:
    """Progress of one pipeline run, readable after a failure."""
    stage: PipelineStage = PipelineStage.RESOLVING
    mapping: Optional[BoardMapping] = None
    existing_item: Optional[BoardItem] = None
    action: Optional[Action] = None
    item_id: Optional[str] = None


@dataclass
class RecordPlan:
    """What a run would do, without doing it."""
    mapping: BoardMapping
    existing_item: Optional[BoardItem]
    action: Action


class RecordPipeline:
    """Runs resolver, locator, engine and executor for one record."""

    def __init__(
        self,
        resolver: BoardMappingResolver,
        locator: ItemLocator,
        engine: ReconciliationEngine,
        executor: MutationExecutor,
        locks: Optional[KeyedLocks] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.resolver = resolver
        self.locator = locator
        self.engine = engine
        self.executor = executor
        self.locks = KeyedLocks() if locks is None else locks
        self.metrics = metrics

    async def run(self, record: FinancialRecord, state: Optional[RecordState] = None) -> RecordState:
        """Reconcile one record against its board.

        Raises SyncError subclasses; ``state`` shows how far the run got.
        """
        state = state or RecordState()

        with with_correlation(project_id=record.project_id, wbs=record.wbs):
            state.stage = PipelineStage.RESOLVING
            mapping = await self._timed("resolve", self.resolver.resolve(record.project_id))
            state.mapping = mapping

            with with_correlation(board_id=mapping.board_id):
                async with self.locks.hold((mapping.board_id, record.business_key)):
                    state.stage = PipelineStage.LOCATING
                    existing = await self._timed(
                        "locate", self.locator.find(mapping.board_id, record.business_key)
                    )
                    state.existing_item = existing

                    state.stage = PipelineStage.DECIDING
                    action = self.engine.reconcile(record, existing, board_id=mapping.board_id)
                    state.action = action
                    log_stage(
                        state.stage.value,
                        f"Decided {action.kind.value} on board {mapping.board_id}",
                        item_id=existing.id if existing else None,
                    )

                    state.stage = PipelineStage.EXECUTING
                    item_id = await self._timed("execute", self.executor.execute(action))
                    state.item_id = item_id

                state.stage = PipelineStage.SUCCEEDED
                with with_correlation(item_id=item_id):
                    logger.info(f"Record reconciled ({action.kind.value})")
        return state

    async def plan(self, record: FinancialRecord) -> RecordPlan:
        """Resolve, locate and decide without executing."""
        with with_correlation(project_id=record.project_id, wbs=record.wbs):
            mapping = await self.resolver.resolve(record.project_id)
            existing = await self.locator.find(mapping.board_id, record.business_key)
            action = self.engine.reconcile(record, existing, board_id=mapping.board_id)
        return RecordPlan(mapping=mapping, existing_item=existing, action=action)

    async def _timed(self, stage: str, call):
        start = time.perf_counter()
        try:
            return await call
        finally:
            if self.metrics is not None:
                self.metrics.record_processing_time(stage, (time.perf_counter() - start) * 1000)
