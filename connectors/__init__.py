"""Board Connectors - Pluggable board service integrations.

This package contains the abstract board client interface and concrete
implementations for specific services (Monday.com, in-memory).

Core sync models are service-neutral. This package handles:
- Service-specific authentication headers
- Query / mutation translation
- API communication and error classification

Key Design Principle:
- The sync pipeline and API routes depend ONLY on the BoardClient interface
- All methods return NORMALIZED types (BoardItem)
- No Monday-specific types should leak through the interface

To add a new board service:
1. Create a new folder (e.g., smartsheet/)
2. Implement BoardClient interface
3. Register using @register_connector decorator
"""

from connectors.board_base import (
    # Core interface
    BoardClient,
    BoardClientConfig,
    BoardClientError,
    BoardConnectionStatus,
    FilterRule,
    MutationName,

    # Factory functions
    create_connector,
    register_connector,
    list_available_connectors,
)

# Registers the built-in connectors
from connectors.in_memory import InMemoryBoardClient
from connectors.monday import MondayConnector

__all__ = [
    # Core interface
    "BoardClient",
    "BoardClientConfig",
    "BoardClientError",
    "BoardConnectionStatus",
    "FilterRule",
    "MutationName",

    # Implementations
    "InMemoryBoardClient",
    "MondayConnector",

    # Factory
    "create_connector",
    "register_connector",
    "list_available_connectors",
]
