"""Sync configuration.

All identifiers the pipeline needs (mapping board, key columns, column
table, static board mappings) come from here and are passed explicitly into
every entry point. Credentials are read from the environment (optionally via
a ``.env`` file) and only ever land in the connector configuration.

Environment variables:
- MONDAY_API_TOKEN: API token sent as the Authorization header
- MONDAY_API_URL: GraphQL endpoint override
- MONDAY_API_VERSION: API-Version header override
- SYNC_CONFIG_PATH: JSON config used by the API server and CLI
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from connectors.board_base import BoardClientConfig
from core.mapping import ColumnMappingTable
from core.models import ColumnType


REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = REPO_ROOT / "config" / "sap_fi_sync.example.json"


def load_environment(env_path: Optional[Path] = None) -> None:
    """Load a .env file into the process environment if it exists."""
    env_path = env_path or REPO_ROOT / ".env"
    if env_path.exists():
        load_dotenv(env_path)


@dataclass
class SyncConfig:
    """Configuration for a sync batch.

    Board resolution uses the mapping board when ``mapping_board_id`` is
    set, otherwise the static ``board_mappings`` table.
    """
    item_key_column: str                                # Business-key column on target boards
    column_mappings: ColumnMappingTable = field(default_factory=ColumnMappingTable)

    # Board-backed mapping
    mapping_board_id: Optional[str] = None
    mapping_key_column: Optional[str] = None            # Column holding the project id
    mapping_target_column: Optional[str] = None         # Column holding the target board id

    # Static mapping: project id -> board id
    board_mappings: Dict[str, str] = field(default_factory=dict)

    # Concurrency and retry policy
    max_concurrency: int = 5
    call_timeout_seconds: float = 30.0
    max_record_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0

    # Connector
    connector_type: str = "monday"
    connector_settings: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.board_mappings = {str(k): str(v) for k, v in self.board_mappings.items()}
        if self.mapping_board_id is not None:
            self.mapping_board_id = str(self.mapping_board_id)

    @property
    def uses_mapping_board(self) -> bool:
        return self.mapping_board_id is not None

    def validate(self) -> None:
        """Raise ValueError if the configuration cannot drive a batch."""
        if not self.item_key_column:
            raise ValueError("item_key_column must be set")
        if len(self.column_mappings) == 0:
            raise ValueError("column_mappings must contain at least one column")
        if self.item_key_column not in self.column_mappings.column_ids:
            raise ValueError(
                f"item_key_column {self.item_key_column!r} must be one of the mapped columns"
            )
        key_mapping = self.column_mappings.get(self.item_key_column)
        if key_mapping.source_field != "wbs" or key_mapping.column_type != ColumnType.TEXT:
            # The locator searches this column for the WBS element
            raise ValueError(
                f"item_key_column {self.item_key_column!r} must be a text column fed from 'wbs', "
                f"not {key_mapping.source_field!r} ({key_mapping.column_type.value})"
            )
        if self.uses_mapping_board:
            if not self.mapping_key_column or not self.mapping_target_column:
                raise ValueError(
                    "mapping_key_column and mapping_target_column are required "
                    "when mapping_board_id is set"
                )
        elif not self.board_mappings:
            raise ValueError("Either mapping_board_id or board_mappings must be configured")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if self.max_record_attempts < 1:
            raise ValueError("max_record_attempts must be >= 1")
        if self.call_timeout_seconds <= 0:
            raise ValueError("call_timeout_seconds must be > 0")

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncConfig":
        config = cls(
            item_key_column=data.get("item_key_column", ""),
            column_mappings=ColumnMappingTable.from_list(data.get("columns", [])),
            mapping_board_id=data.get("mapping_board_id"),
            mapping_key_column=data.get("mapping_key_column"),
            mapping_target_column=data.get("mapping_target_column"),
            board_mappings=data.get("board_mappings", {}),
            max_concurrency=data.get("max_concurrency", 5),
            call_timeout_seconds=data.get("call_timeout_seconds", 30.0),
            max_record_attempts=data.get("max_record_attempts", 3),
            retry_base_delay=data.get("retry_base_delay", 1.0),
            retry_max_delay=data.get("retry_max_delay", 30.0),
            connector_type=data.get("connector_type", "monday"),
            connector_settings=data.get("connector_settings", {}),
        )
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: Path) -> "SyncConfig":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_key_column": self.item_key_column,
            "columns": self.column_mappings.to_list(),
            "mapping_board_id": self.mapping_board_id,
            "mapping_key_column": self.mapping_key_column,
            "mapping_target_column": self.mapping_target_column,
            "board_mappings": dict(self.board_mappings),
            "max_concurrency": self.max_concurrency,
            "call_timeout_seconds": self.call_timeout_seconds,
            "max_record_attempts": self.max_record_attempts,
            "retry_base_delay": self.retry_base_delay,
            "retry_max_delay": self.retry_max_delay,
            "connector_type": self.connector_type,
            "connector_settings": dict(self.connector_settings),
        }


def load_sync_config(path: Optional[Path] = None) -> SyncConfig:
    """Load the sync config from ``path``, SYNC_CONFIG_PATH, or the bundled example."""
    load_environment()
    if path is None:
        env_path = os.getenv("SYNC_CONFIG_PATH")
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    return SyncConfig.from_file(Path(path))


def load_connector_config(config: SyncConfig, connector_type: Optional[str] = None) -> BoardClientConfig:
    """Build the connector configuration, pulling credentials from the environment.

    Raises:
        ValueError: If the Monday connector is selected and no token is set
    """
    load_environment()
    connector_type = (connector_type or config.connector_type).lower()
    settings = dict(config.connector_settings)

    client_config = BoardClientConfig(
        connector_type=connector_type,
        api_url=os.getenv("MONDAY_API_URL") or settings.pop("api_url", None),
        api_token=os.getenv("MONDAY_API_TOKEN"),
        api_version=os.getenv("MONDAY_API_VERSION") or settings.pop("api_version", None),
        timeout_seconds=float(settings.pop("timeout_seconds", config.call_timeout_seconds)),
        max_retries=int(settings.pop("max_retries", 3)),
        page_size=int(settings.pop("page_size", 100)),
        custom_settings=settings,
    )

    if connector_type == "monday" and not client_config.api_token:
        raise ValueError(
            "MONDAY_API_TOKEN environment variable not set. "
            "Set it to a Monday.com API token or use the memory connector"
        )
    return client_config
