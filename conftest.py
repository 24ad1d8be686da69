"""Shared pytest fixtures: an in-memory board, column table and sync config."""

import sys
from pathlib import Path

import pytest

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from connectors.in_memory import InMemoryBoardClient
from core.mapping import ColumnMapping, ColumnMappingTable
from core.models import ColumnType
from core.observability.metrics import MetricsCollector
from sync.config import SyncConfig


BOARD_ID = "5000"
MAPPING_BOARD_ID = "9000"
BOARD_COLUMNS = ["wbs__1", "numbers9__1", "numeric8__1", "numeric5__1"]


@pytest.fixture
def column_mappings():
    return ColumnMappingTable([
        ColumnMapping("wbs", "wbs__1", ColumnType.TEXT),
        ColumnMapping("budget", "numbers9__1"),
        ColumnMapping("paid", "numeric8__1"),
        ColumnMapping("remaining", "numeric5__1"),
    ])


@pytest.fixture
def sync_config(column_mappings):
    """Static board mapping: project 123 -> board 5000. No backoff delay."""
    return SyncConfig(
        item_key_column="wbs__1",
        column_mappings=column_mappings,
        board_mappings={"123": BOARD_ID},
        call_timeout_seconds=5,
        retry_base_delay=0,
        retry_max_delay=0,
    )


@pytest.fixture
def mapping_board_config(column_mappings):
    """Board-backed mapping read from board 9000."""
    return SyncConfig(
        item_key_column="wbs__1",
        column_mappings=column_mappings,
        mapping_board_id=MAPPING_BOARD_ID,
        mapping_key_column="text__1",
        mapping_target_column="board_id__1",
        call_timeout_seconds=5,
        retry_base_delay=0,
        retry_max_delay=0,
    )


@pytest.fixture
def board_client():
    client = InMemoryBoardClient()
    client.add_board(BOARD_ID, columns=BOARD_COLUMNS)
    return client


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def record_data():
    return {
        "projectId": "123",
        "wbs": "2000000036.2",
        "name": "X",
        "budget": 111,
        "paid": 50,
        "remaining": 5,
    }
