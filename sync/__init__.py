"""Sync - reconcile SAP FI records onto Monday.com boards."""

from sync.batch import BatchRunner, build_pipeline, coerce_record, preview_batch, reconcile_batch
from sync.config import SyncConfig, load_connector_config, load_environment, load_sync_config
from sync.executor import ExecutionResult, MutationExecutor
from sync.locator import ItemLocator
from sync.pipeline import KeyedLocks, RecordPipeline, RecordPlan, RecordState
from sync.resolver import BoardMappingResolver

__all__ = [
    "BatchRunner",
    "BoardMappingResolver",
    "ExecutionResult",
    "ItemLocator",
    "KeyedLocks",
    "MutationExecutor",
    "RecordPipeline",
    "RecordPlan",
    "RecordState",
    "SyncConfig",
    "build_pipeline",
    "coerce_record",
    "load_connector_config",
    "load_environment",
    "load_sync_config",
    "preview_batch",
    "reconcile_batch",
]
