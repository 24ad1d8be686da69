"""Batch entry point.

    report = await reconcile_batch(records, config, client=client)
    report.summary()  # {"total": .., "succeeded": .., "skipped": .., "failed": ..}

Records run concurrently (bounded by ``config.max_concurrency``). Failures
are scoped to one record; the batch always completes with one outcome per
input record, in input order.

Retry policy lives here, not in the pipeline: a record whose run fails with
a retryable error is run again from RESOLVING, after an exponential delay,
up to ``config.max_record_attempts`` runs. Because every run re-locates the
item first, a create whose response was lost is seen on the next run and
becomes an update.
"""

import asyncio
import time
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from connectors.board_base import BoardClient, create_connector
from core.errors import RecordValidationError, SyncError
from core.models import (
    BatchReport,
    FinancialRecord,
    OutcomeStatus,
    PipelineStage,
    RecordOutcome,
)
from core.observability.logging import get_logger, log_batch_event, with_correlation
from core.observability.metrics import MetricsCollector
from reconciliation.engine import ReconciliationEngine
from sync.config import SyncConfig, load_connector_config
from sync.executor import MutationExecutor
from sync.locator import ItemLocator
from sync.pipeline import KeyedLocks, RecordPipeline, RecordState
from sync.resolver import BoardMappingResolver

logger = get_logger(__name__)

RecordInput = Union[FinancialRecord, Mapping]

CANCELLED = "cancelled"

# Held per (board, business key) across every batch in this process
_PROCESS_LOCKS = KeyedLocks()


def shared_locks() -> KeyedLocks:
    """Key locks shared by all batches that do not bring their own."""
    return _PROCESS_LOCKS


# =============================================================================
# Helpers
# =============================================================================

def coerce_record(raw: RecordInput) -> FinancialRecord:
    """Validate a raw record into a FinancialRecord.

    Raises:
        RecordValidationError: With one message per invalid field
    """
    if isinstance(raw, FinancialRecord):
        return raw
    if not isinstance(raw, Mapping):
        raise RecordValidationError(f"Record must be an object, got {type(raw).__name__}")
    try:
        return FinancialRecord.model_validate(dict(raw))
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc']) or 'record'}: {err['msg']}"
            for err in e.errors()
        ]
        raise RecordValidationError(
            f"Invalid financial record: {'; '.join(errors)}",
            errors=errors,
        ) from e


def _raw_keys(raw: Any) -> Dict[str, Optional[str]]:
    if isinstance(raw, FinancialRecord):
        return {"project_id": raw.project_id, "business_key": raw.wbs}
    if isinstance(raw, Mapping):
        project_id = raw.get("project_id", raw.get("projectId"))
        wbs = raw.get("wbs")
        return {
            "project_id": str(project_id) if project_id is not None else None,
            "business_key": str(wbs) if wbs is not None else None,
        }
    return {"project_id": None, "business_key": None}


def retry_delay(config: SyncConfig, attempt: int) -> float:
    """Delay before run ``attempt + 1`` (exponential backoff)."""
    delay = config.retry_base_delay * (2 ** (attempt - 1))
    return min(delay, config.retry_max_delay)


def build_pipeline(
    client: BoardClient,
    config: SyncConfig,
    metrics: Optional[MetricsCollector] = None,
    locks: Optional[KeyedLocks] = None,
) -> RecordPipeline:
    """Wire resolver, locator, engine and executor for ``config``."""
    return RecordPipeline(
        resolver=BoardMappingResolver(client, config),
        locator=ItemLocator(client, config.item_key_column, config.call_timeout_seconds),
        engine=ReconciliationEngine(config.column_mappings),
        executor=MutationExecutor(client, config.call_timeout_seconds),
        locks=locks,
        metrics=metrics,
    )


# =============================================================================
# Batch Runner
# =============================================================================

class BatchRunner:
    """Runs one batch against one client."""

    def __init__(
        self,
        client: BoardClient,
        config: SyncConfig,
        metrics: Optional[MetricsCollector] = None,
        cancel_event: Optional[asyncio.Event] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.config = config
        self.metrics = metrics or MetricsCollector.instance()
        self.cancel_event = cancel_event
        self.pipeline = build_pipeline(
            client, config, self.metrics, shared_locks() if locks is None else locks
        )

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def run(self, records: Sequence[RecordInput], batch_id: Optional[str] = None) -> BatchReport:
        batch_id = batch_id or f"batch-{uuid.uuid4().hex[:12]}"
        report = BatchReport(batch_id=batch_id)
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        start = time.perf_counter()

        with with_correlation(batch_id=batch_id):
            self.metrics.record_batch_started(batch_id)
            log_batch_event(f"Batch started with {len(records)} record(s)", record_count=len(records))

            report.outcomes = list(await asyncio.gather(*(
                self._process(index, raw, semaphore) for index, raw in enumerate(records)
            )))

            report.finished_at = datetime.now(timezone.utc)
            duration_ms = (time.perf_counter() - start) * 1000
            self.metrics.record_batch_completed(batch_id, duration_ms)
            log_batch_event("Batch completed", duration_ms=round(duration_ms, 1), **report.summary())

        return report

    async def _process(self, index: int, raw: RecordInput, semaphore: asyncio.Semaphore) -> RecordOutcome:
        async with semaphore:
            with with_correlation(record_index=index):
                return await self._process_record(index, raw)

    async def _process_record(self, index: int, raw: RecordInput) -> RecordOutcome:
        keys = _raw_keys(raw)
        self.metrics.record_record_started()
        start = time.perf_counter()

        try:
            record = coerce_record(raw)
            self.pipeline.engine.validate_record(record)
        except RecordValidationError as e:
            logger.warning(f"Record {index} rejected: {e.message}")
            self.metrics.record_record_failed(e.code)
            return RecordOutcome(
                index=index,
                status=OutcomeStatus.FAILED,
                error=e.to_dict(),
                stage=PipelineStage.RESOLVING,
                attempts=0,
                **keys,
            )

        attempt = 0
        while True:
            if self.cancelled:
                self.metrics.record_record_skipped(CANCELLED)
                return RecordOutcome(
                    index=index,
                    status=OutcomeStatus.SKIPPED,
                    reason=CANCELLED,
                    attempts=attempt,
                    **keys,
                )

            attempt += 1
            state = RecordState()
            try:
                await self.pipeline.run(record, state)
            except SyncError as e:
                if e.retryable and attempt < self.config.max_record_attempts:
                    delay = retry_delay(self.config, attempt)
                    self.metrics.record_record_retry(attempt, e.code)
                    logger.warning(
                        f"Attempt {attempt}/{self.config.max_record_attempts} failed at "
                        f"{state.stage.value}: {e.message}; retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                return self._error_outcome(index, keys, state, e, attempt)
            except Exception as e:
                logger.exception(f"Unexpected error at {state.stage.value}: {e}")
                self.metrics.record_record_failed("internal_error")
                return RecordOutcome(
                    index=index,
                    status=OutcomeStatus.FAILED,
                    board_id=state.mapping.board_id if state.mapping else None,
                    error={"code": "internal_error", "message": f"{type(e).__name__}: {e}",
                           "retryable": False, "details": {}},
                    stage=PipelineStage.FAILED,
                    attempts=attempt,
                    **keys,
                )

            duration_ms = (time.perf_counter() - start) * 1000
            self.metrics.record_record_succeeded(state.action.kind.value, duration_ms)
            return RecordOutcome(
                index=index,
                status=OutcomeStatus.SUCCEEDED,
                item_id=state.item_id,
                board_id=state.mapping.board_id,
                action=state.action.kind.value,
                stage=PipelineStage.SUCCEEDED,
                attempts=attempt,
                **keys,
            )

    def _error_outcome(
        self,
        index: int,
        keys: Dict[str, Optional[str]],
        state: RecordState,
        error: SyncError,
        attempt: int,
    ) -> RecordOutcome:
        board_id = state.mapping.board_id if state.mapping else None
        if error.skippable:
            logger.info(f"Record skipped at {state.stage.value}: {error.message}")
            self.metrics.record_record_skipped(error.code)
            return RecordOutcome(
                index=index,
                status=OutcomeStatus.SKIPPED,
                board_id=board_id,
                reason=error.code,
                error=error.to_dict(),
                stage=state.stage,
                attempts=attempt,
                **keys,
            )

        logger.error(f"Record failed at {state.stage.value}: [{error.code}] {error.message}")
        self.metrics.record_record_failed(error.code)
        return RecordOutcome(
            index=index,
            status=OutcomeStatus.FAILED,
            board_id=board_id,
            action=state.action.kind.value if state.action else None,
            error=error.to_dict(),
            stage=state.stage,
            attempts=attempt,
            **keys,
        )

    async def preview(self, records: Sequence[RecordInput]) -> List[Dict[str, Any]]:
        """Resolve, locate and decide every record without executing anything."""
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def _one(index: int, raw: RecordInput) -> Dict[str, Any]:
            async with semaphore:
                entry: Dict[str, Any] = {"index": index, **_raw_keys(raw)}
                try:
                    record = coerce_record(raw)
                    self.pipeline.engine.validate_record(record)
                    plan = await self.pipeline.plan(record)
                except SyncError as e:
                    entry["status"] = OutcomeStatus.SKIPPED.value if e.skippable else OutcomeStatus.FAILED.value
                    entry["error"] = e.to_dict()
                    return entry
                except Exception as e:
                    logger.exception(f"Unexpected error while planning record {index}: {e}")
                    entry["status"] = OutcomeStatus.FAILED.value
                    entry["error"] = {"code": "internal_error", "message": f"{type(e).__name__}: {e}",
                                      "retryable": False, "details": {}}
                    return entry
                entry["status"] = "PLANNED"
                entry["existing_item_id"] = plan.existing_item.id if plan.existing_item else None
                entry["action"] = plan.action.to_dict()
                return entry

        return list(await asyncio.gather(*(_one(i, raw) for i, raw in enumerate(records))))


# =============================================================================
# Entry Points
# =============================================================================

async def reconcile_batch(
    records: Sequence[RecordInput],
    config: SyncConfig,
    client: Optional[BoardClient] = None,
    metrics: Optional[MetricsCollector] = None,
    cancel_event: Optional[asyncio.Event] = None,
    batch_id: Optional[str] = None,
    locks: Optional[KeyedLocks] = None,
) -> BatchReport:
    """Reconcile a batch of financial records onto their boards.

    Args:
        records: FinancialRecord instances or raw dicts (validated per record)
        config: Sync configuration
        client: Board client; when omitted one is built from the config and
            environment, connected for the batch and closed afterwards
        metrics: Collector for counts and timings (default: shared instance)
        cancel_event: When set, records that have not started are skipped;
            records already running finish their current run
        batch_id: Correlation id for logs (generated if omitted)
        locks: Per (board, business key) locks; defaults to the process-wide
            set so overlapping batches never create the same item twice

    Returns:
        BatchReport with one outcome per record, in input order
    """
    config.validate()
    if client is None:
        async with create_connector(load_connector_config(config)) as owned_client:
            runner = BatchRunner(owned_client, config, metrics, cancel_event, locks)
            return await runner.run(records, batch_id)
    runner = BatchRunner(client, config, metrics, cancel_event, locks)
    return await runner.run(records, batch_id)


async def preview_batch(
    records: Sequence[RecordInput],
    config: SyncConfig,
    client: BoardClient,
) -> List[Dict[str, Any]]:
    """Report the Action each record would produce, without executing it."""
    config.validate()
    return await BatchRunner(client, config, MetricsCollector()).preview(records)
