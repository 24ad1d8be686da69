"""Abstract Board Client Interface.

This module defines the abstract interface that all board connectors must implement.
It is intentionally service-agnostic - no Monday.com specifics here.

Connectors implement this interface to:
1. Connect and authenticate with their board service
2. Query board items by column value
3. Create items and change their column values

Key Design Principles:
- All methods return NORMALIZED objects (BoardItem) - not service-specific payloads
- The sync pipeline and API routes depend ONLY on this interface
- Service-specific implementations live in connector subfolders
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from core.models import BoardItem


# =============================================================================
# Enums
# =============================================================================

class BoardConnectionStatus(str, Enum):
    """Connection status to the board service."""
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    FAILED = "FAILED"


class MutationName(str, Enum):
    """Mutations the pipeline submits."""
    CREATE_ITEM = "create_item"
    CHANGE_MULTIPLE_COLUMN_VALUES = "change_multiple_column_values"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class FilterRule:
    """Match items whose column equals one of the given values."""
    column_id: str
    values: tuple = ()

    @classmethod
    def equals(cls, column_id: str, value: str) -> "FilterRule":
        return cls(column_id=column_id, values=(value,))


@dataclass
class BoardClientConfig:
    """Configuration for a board connector.

    Generic configuration that can be extended by specific connectors.
    Credentials are injected here; the connector never reads them itself.
    """
    connector_type: str                     # "monday", "memory", etc.
    api_url: Optional[str] = None           # Service endpoint
    api_token: Optional[str] = None         # Bearer token
    api_version: Optional[str] = None       # Service API version header

    # Behavior
    timeout_seconds: float = 30.0
    max_retries: int = 3
    page_size: int = 100

    # Service-specific settings
    custom_settings: Dict[str, Any] = field(default_factory=dict)


class BoardClientError(Exception):
    """Error raised by a board connector.

    ``retryable`` marks failures where the request may succeed if sent again
    (timeouts, rate limits, 5xx). Anything else means the service refused it.
    ``not_found`` marks a refusal because the addressed item no longer exists.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        retryable: bool = False,
        errors: Optional[List[Any]] = None,
        not_found: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
        self.errors = errors or []
        self.not_found = not_found


# =============================================================================
# Abstract Connector Interface
# =============================================================================

class BoardClient(ABC):
    """Abstract base class for board connectors.

    All service-specific connectors must implement this interface.

    Implementations:
    - connectors/monday/monday_connector.py
    - connectors/in_memory.py
    """

    def __init__(self, config: BoardClientConfig):
        """Initialize connector with configuration."""
        self.config = config
        self._connection_status = BoardConnectionStatus.DISCONNECTED

    # =========================================================================
    # Connection Management
    # =========================================================================

    @abstractmethod
    async def connect(self) -> bool:
        """Establish connection to the board service."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the board service."""
        pass

    @property
    def connection_status(self) -> BoardConnectionStatus:
        """Get current connection status."""
        return self._connection_status

    async def __aenter__(self) -> "BoardClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # =========================================================================
    # Queries
    # =========================================================================

    @abstractmethod
    async def query_items(
        self,
        board_id: str,
        rules: List[FilterRule],
    ) -> List[BoardItem]:
        """Return all items on a board matching every filter rule.

        The service may match loosely (e.g. case-insensitive); callers that
        need exact matches re-check the returned column values.

        Args:
            board_id: Board to search
            rules: Column/value filters

        Returns:
            Matching items with their current column values
        """
        pass

    # =========================================================================
    # Mutations
    # =========================================================================

    @abstractmethod
    async def create_item(
        self,
        board_id: str,
        name: str,
        column_values: str,
    ) -> str:
        """Create an item.

        Args:
            board_id: Target board
            name: Item display name
            column_values: Serialized column-value payload

        Returns:
            New item id
        """
        pass

    @abstractmethod
    async def update_item(
        self,
        board_id: str,
        item_id: str,
        column_values: str,
    ) -> str:
        """Change several column values of an existing item in one call.

        Returns:
            The updated item id
        """
        pass

    async def submit(self, mutation_name: str, args: Dict[str, Any]) -> str:
        """Submit a named mutation. Returns the affected item id."""
        name = MutationName(mutation_name)
        if name == MutationName.CREATE_ITEM:
            return await self.create_item(
                board_id=args["board_id"],
                name=args["item_name"],
                column_values=args["column_values"],
            )
        return await self.update_item(
            board_id=args["board_id"],
            item_id=args["item_id"],
            column_values=args["column_values"],
        )

    # -------------------------------------------------------------------------
    # Utilities
    # -------------------------------------------------------------------------

    def get_connector_name(self) -> str:
        """Get the name of this connector."""
        return self.config.connector_type


# =============================================================================
# Connector Factory
# =============================================================================

_connector_registry: Dict[str, type] = {}


def register_connector(connector_type: str):
    """Decorator to register a connector implementation."""
    def decorator(cls):
        _connector_registry[connector_type] = cls
        return cls
    return decorator


def create_connector(config: BoardClientConfig) -> BoardClient:
    """Create a connector instance from configuration.

    Args:
        config: BoardClientConfig with connector_type specified

    Returns:
        Configured connector instance

    Raises:
        ValueError: If connector_type is not registered
    """
    connector_type = config.connector_type.lower()

    if connector_type not in _connector_registry:
        available = list(_connector_registry.keys())
        raise ValueError(
            f"Unknown connector type: {connector_type}. "
            f"Available: {available}"
        )

    connector_class = _connector_registry[connector_type]
    return connector_class(config)


def list_available_connectors() -> List[str]:
    """List all registered connector types."""
    return list(_connector_registry.keys())
