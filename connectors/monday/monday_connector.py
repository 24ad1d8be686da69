"""Monday.com Board Connector.

Implements the BoardClient interface for Monday.com boards via the GraphQL API.
"""

from typing import Any, Dict, List, Optional

from connectors.board_base import (
    BoardClient,
    BoardClientConfig,
    BoardConnectionStatus,
    FilterRule,
    register_connector,
)
from connectors.monday.monday_client import (
    DEFAULT_API_URL,
    DEFAULT_API_VERSION,
    MondayApiClient,
    MondayApiConfig,
    MondayApiError,
    MondayGraphQLError,
    RetryConfig,
)
from connectors.monday.monday_models import MondayItemsPage
from core.models import BoardItem
from core.observability.logging import get_logger

logger = get_logger(__name__)


ITEMS_BY_COLUMN_VALUES_QUERY = """
query ($board_id: ID!, $columns: [ItemsPageByColumnValuesQuery!], $limit: Int!) {
  items_page_by_column_values(board_id: $board_id, columns: $columns, limit: $limit) {
    cursor
    items { id name column_values { id type text value } }
  }
}
"""

ITEMS_BY_CURSOR_QUERY = """
query ($board_id: ID!, $cursor: String!, $limit: Int!) {
  items_page_by_column_values(board_id: $board_id, cursor: $cursor, limit: $limit) {
    cursor
    items { id name column_values { id type text value } }
  }
}
"""

CREATE_ITEM_MUTATION = """
mutation ($board_id: ID!, $item_name: String!, $column_values: JSON) {
  create_item(board_id: $board_id, item_name: $item_name, column_values: $column_values) { id }
}
"""

CHANGE_COLUMN_VALUES_MUTATION = """
mutation ($board_id: ID!, $item_id: ID!, $column_values: JSON!) {
  change_multiple_column_values(board_id: $board_id, item_id: $item_id, column_values: $column_values) { id }
}
"""


@register_connector("monday")
class MondayConnector(BoardClient):
    """Monday.com connector implementation.

    Required configuration:
    - api_token: Monday API token (sent as the Authorization header)

    Optional configuration:
    - api_url: GraphQL endpoint (default: https://api.monday.com/v2)
    - api_version: API-Version header (default: 2024-01)
    - page_size: items per page for column-value searches
    - max_retries / timeout_seconds: transport behavior
    """

    def __init__(self, config: BoardClientConfig):
        super().__init__(config)

        api_config = MondayApiConfig(
            api_url=config.api_url or DEFAULT_API_URL,
            api_version=config.api_version or DEFAULT_API_VERSION,
            api_token=config.api_token or "",
            timeout_seconds=config.timeout_seconds,
            retry_config=RetryConfig(
                max_retries=config.max_retries,
                base_delay=float(config.custom_settings.get("retry_base_delay", 1.0)),
            ),
        )
        self._api_client = MondayApiClient(api_config)

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> bool:
        """Open the HTTP session."""
        try:
            await self._api_client.connect()
        except MondayApiError as e:
            logger.error(f"Monday connection failed: {e}")
            self._connection_status = BoardConnectionStatus.FAILED
            raise
        self._connection_status = BoardConnectionStatus.CONNECTED
        return True

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        await self._api_client.disconnect()
        self._connection_status = BoardConnectionStatus.DISCONNECTED

    # =========================================================================
    # Queries
    # =========================================================================

    async def query_items(self, board_id: str, rules: List[FilterRule]) -> List[BoardItem]:
        """Search a board with ``items_page_by_column_values``, following cursors."""
        columns = [
            {"column_id": rule.column_id, "column_values": [str(v) for v in rule.values]}
            for rule in rules
        ]
        limit = self.config.page_size

        data = await self._api_client.execute(
            ITEMS_BY_COLUMN_VALUES_QUERY,
            {"board_id": str(board_id), "columns": columns, "limit": limit},
        )
        page = MondayItemsPage.model_validate(data.get("items_page_by_column_values") or {})
        items = [item.to_board_item(str(board_id)) for item in page.items]

        while page.cursor:
            data = await self._api_client.execute(
                ITEMS_BY_CURSOR_QUERY,
                {"board_id": str(board_id), "cursor": page.cursor, "limit": limit},
            )
            page = MondayItemsPage.model_validate(data.get("items_page_by_column_values") or {})
            items.extend(item.to_board_item(str(board_id)) for item in page.items)

        logger.debug(
            f"Board {board_id}: {len(items)} item(s) match {columns}",
            extra_fields={"board_id": str(board_id)},
        )
        return items

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_item(self, board_id: str, name: str, column_values: str) -> str:
        data = await self._api_client.execute(
            CREATE_ITEM_MUTATION,
            {"board_id": str(board_id), "item_name": name, "column_values": column_values},
            idempotent=False,
        )
        return self._returned_id(data, "create_item")

    async def update_item(self, board_id: str, item_id: str, column_values: str) -> str:
        data = await self._api_client.execute(
            CHANGE_COLUMN_VALUES_MUTATION,
            {"board_id": str(board_id), "item_id": str(item_id), "column_values": column_values},
            idempotent=False,
        )
        return self._returned_id(data, "change_multiple_column_values")

    @staticmethod
    def _returned_id(data: Dict[str, Any], field: str) -> str:
        result: Optional[Dict[str, Any]] = data.get(field)
        if not result or result.get("id") is None:
            raise MondayGraphQLError(f"{field} returned no item id", errors=[data])
        return str(result["id"])
