"""Monday.com Connector Package.

Implements the BoardClient interface for Monday.com boards.
"""

from connectors.monday.monday_connector import MondayConnector
from connectors.monday.monday_client import (
    MondayApiClient,
    MondayApiConfig,
    MondayApiError,
    MondayAuthenticationError,
    MondayGraphQLError,
    MondayRateLimitError,
    RetryConfig,
)
from connectors.monday.monday_models import (
    MondayColumnValue,
    MondayItem,
    MondayItemsPage,
)

__all__ = [
    # Connector
    "MondayConnector",
    # Client
    "MondayApiClient",
    "MondayApiConfig",
    "MondayApiError",
    "MondayAuthenticationError",
    "MondayGraphQLError",
    "MondayRateLimitError",
    "RetryConfig",
    # Models
    "MondayColumnValue",
    "MondayItem",
    "MondayItemsPage",
]
