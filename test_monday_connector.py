"""
Monday.com Connector Tests

The HTTP session is replaced with a scripted fake, so these run offline.
Covers GraphQL translation, cursor pagination, error classification and
the retry rules (queries retried on 5xx/timeouts, mutations only on 429).
"""

import asyncio
import json
from decimal import Decimal
from unittest.mock import AsyncMock

import aiohttp
import pytest

from connectors.board_base import BoardClientConfig, FilterRule, create_connector
from connectors.monday import (
    MondayApiClient,
    MondayApiConfig,
    MondayApiError,
    MondayAuthenticationError,
    MondayConnector,
    MondayGraphQLError,
    MondayItem,
    RetryConfig,
)
from connectors.monday.monday_connector import CHANGE_COLUMN_VALUES_MUTATION, CREATE_ITEM_MUTATION
from core.errors import ItemNotFoundError, MutationRejectedError, TransportError
from reconciliation.engine import ColumnValuePayload, UpdateAction
from sync.executor import MutationExecutor


# =============================================================================
# Fakes
# =============================================================================

class FakeResponse:
    def __init__(self, status=200, body=None, headers=None, text=None):
        self.status = status
        if text is None:
            text = json.dumps(body) if body is not None else ""
        self._text = text
        self.headers = headers or {}

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Hands out scripted responses (or raises scripted exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.requests.append({"url": url, "headers": headers, "json": json})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        pass


def api_client(*responses, max_retries=2):
    client = MondayApiClient(MondayApiConfig(
        api_token="test-token",
        api_version="2024-01",
        retry_config=RetryConfig(max_retries=max_retries, base_delay=0),
    ))
    client._session = FakeSession(*responses)
    return client


def data(payload):
    return FakeResponse(200, {"data": payload})


@pytest.fixture
def connector():
    return create_connector(BoardClientConfig(connector_type="monday", api_token="test-token", page_size=2))


def column(column_id, column_type, text, value=None):
    return {"id": column_id, "type": column_type, "text": text, "value": value}


# =============================================================================
# HTTP client
# =============================================================================

class TestMondayApiClient:

    def test_headers_and_payload(self):
        client = api_client(data({"me": {"id": 1}}))

        result = asyncio.run(client.execute("query { me { id } }", {"x": 1}))

        assert result == {"me": {"id": 1}}
        request = client._session.requests[0]
        assert request["headers"]["Authorization"] == "test-token"
        assert request["headers"]["API-Version"] == "2024-01"
        assert request["json"] == {"query": "query { me { id } }", "variables": {"x": 1}}

    def test_query_retried_on_server_error(self):
        client = api_client(FakeResponse(502, {"error": "bad gateway"}), data({"ok": True}))
        assert asyncio.run(client.execute("query { ok }")) == {"ok": True}
        assert len(client._session.requests) == 2

    def test_mutation_not_retried_on_server_error(self):
        client = api_client(FakeResponse(502, {"error": "bad gateway"}), data({"ok": True}))

        with pytest.raises(MondayApiError) as exc_info:
            asyncio.run(client.execute("mutation { ok }", idempotent=False))

        assert exc_info.value.retryable
        assert exc_info.value.status_code == 502
        assert len(client._session.requests) == 1

    def test_mutation_not_retried_on_connection_error(self):
        client = api_client(aiohttp.ClientConnectionError("reset"), data({"ok": True}))

        with pytest.raises(MondayApiError) as exc_info:
            asyncio.run(client.execute("mutation { ok }", idempotent=False))

        assert exc_info.value.retryable
        assert len(client._session.requests) == 1

    def test_query_retried_on_connection_error(self):
        client = api_client(aiohttp.ClientConnectionError("reset"), data({"ok": True}))
        assert asyncio.run(client.execute("query { ok }")) == {"ok": True}

    def test_rate_limit_retried_for_mutations(self):
        client = api_client(FakeResponse(429, {}, headers={"Retry-After": "0"}), data({"ok": True}))
        assert asyncio.run(client.execute("mutation { ok }", idempotent=False)) == {"ok": True}

    def test_query_retried_on_unparseable_body(self):
        client = api_client(FakeResponse(200, text="<html>Bad Gateway</html>"), data({"ok": True}))
        assert asyncio.run(client.execute("query { ok }")) == {"ok": True}
        assert len(client._session.requests) == 2

    def test_unparseable_mutation_response_is_transport_failure(self):
        client = api_client(FakeResponse(200, text="<html>Bad Gateway</html>"), data({"ok": True}))

        with pytest.raises(MondayApiError, match="Unparseable response body") as exc_info:
            asyncio.run(client.execute("mutation { ok }", idempotent=False))

        assert exc_info.value.retryable
        assert len(client._session.requests) == 1

    def test_authentication_failure(self):
        client = api_client(FakeResponse(401, {"errors": [{"message": "Not Authenticated"}]}))
        with pytest.raises(MondayAuthenticationError):
            asyncio.run(client.execute("query { me { id } }"))

    def test_client_error_not_retried(self):
        client = api_client(FakeResponse(400, {"error": "bad request"}), data({"ok": True}))
        with pytest.raises(MondayApiError) as exc_info:
            asyncio.run(client.execute("query { ok }"))
        assert not exc_info.value.retryable

    def test_connect_requires_token(self):
        client = MondayApiClient(MondayApiConfig(api_token=""))
        with pytest.raises(MondayAuthenticationError):
            asyncio.run(client.connect())

    def test_not_connected(self):
        client = MondayApiClient(MondayApiConfig(api_token="t"))
        with pytest.raises(MondayApiError, match="Not connected"):
            asyncio.run(client.execute("query { ok }"))


class TestGraphQLErrors:

    def test_invalid_column_is_not_retryable(self):
        client = api_client(FakeResponse(200, {"errors": [{
            "message": "This column ID doesn't exist for the board",
            "extensions": {"code": "InvalidColumnIdException"},
        }]}))

        with pytest.raises(MondayGraphQLError) as exc_info:
            asyncio.run(client.execute("mutation { x }", idempotent=False))

        assert str(exc_info.value) == "This column ID doesn't exist for the board"
        assert not exc_info.value.retryable
        assert not exc_info.value.not_found

    def test_complexity_budget_is_retryable(self):
        client = api_client(FakeResponse(200, {"errors": [{
            "message": "Complexity budget exhausted",
            "extensions": {"code": "COMPLEXITY_BUDGET_EXHAUSTED"},
        }]}))
        with pytest.raises(MondayGraphQLError) as exc_info:
            asyncio.run(client.execute("query { x }"))
        assert exc_info.value.retryable

    def test_top_level_error_code(self):
        client = api_client(FakeResponse(200, {
            "error_code": "InvalidItemIdException",
            "error_message": "Item not found",
        }))
        with pytest.raises(MondayGraphQLError) as exc_info:
            asyncio.run(client.execute("mutation { x }", idempotent=False))
        assert exc_info.value.not_found
        assert exc_info.value.errors[0]["extensions"]["code"] == "InvalidItemIdException"


# =============================================================================
# Connector
# =============================================================================

class TestMondayConnector:

    def test_registered(self, connector):
        assert isinstance(connector, MondayConnector)
        assert connector.get_connector_name() == "monday"

    def test_query_follows_cursor(self, connector):
        connector._api_client.execute = AsyncMock(side_effect=[
            {"items_page_by_column_values": {
                "cursor": "abc",
                "items": [{"id": 1, "name": "A", "column_values": [
                    column("wbs__1", "text", "W-1"),
                    column("numbers9__1", "numbers", "111.5", '"111.5"'),
                ]}],
            }},
            {"items_page_by_column_values": {
                "cursor": None,
                "items": [{"id": "2", "name": "B", "column_values": [column("wbs__1", "text", "W-1")]}],
            }},
        ])

        items = asyncio.run(connector.query_items("5000", [FilterRule.equals("wbs__1", "W-1")]))

        assert [i.id for i in items] == ["1", "2"]
        assert items[0].board_id == "5000"
        assert items[0].column_values == {"wbs__1": "W-1", "numbers9__1": Decimal("111.5")}

        first_vars = connector._api_client.execute.call_args_list[0].args[1]
        assert first_vars == {
            "board_id": "5000",
            "columns": [{"column_id": "wbs__1", "column_values": ["W-1"]}],
            "limit": 2,
        }
        second_vars = connector._api_client.execute.call_args_list[1].args[1]
        assert second_vars["cursor"] == "abc"

    def test_create_item(self, connector):
        connector._api_client.execute = AsyncMock(return_value={"create_item": {"id": "7388693067"}})

        item_id = asyncio.run(connector.create_item("5000", "X", '{"numbers9__1": 111}'))

        assert item_id == "7388693067"
        connector._api_client.execute.assert_awaited_once_with(
            CREATE_ITEM_MUTATION,
            {"board_id": "5000", "item_name": "X", "column_values": '{"numbers9__1": 111}'},
            idempotent=False,
        )

    def test_update_item(self, connector):
        connector._api_client.execute = AsyncMock(
            return_value={"change_multiple_column_values": {"id": 42}}
        )

        item_id = asyncio.run(connector.update_item("5000", "42", '{"numbers9__1": 111}'))

        assert item_id == "42"
        args = connector._api_client.execute.call_args
        assert args.args[0] == CHANGE_COLUMN_VALUES_MUTATION
        assert args.kwargs == {"idempotent": False}

    def test_missing_id_in_response(self, connector):
        connector._api_client.execute = AsyncMock(return_value={"create_item": None})
        with pytest.raises(MondayGraphQLError, match="returned no item id"):
            asyncio.run(connector.create_item("5000", "X", "{}"))

    def test_connect_without_token_fails(self):
        connector = create_connector(BoardClientConfig(connector_type="monday"))
        with pytest.raises(MondayAuthenticationError):
            asyncio.run(connector.connect())


class TestMondayModels:

    def test_number_from_raw_value(self):
        item = MondayItem.model_validate({"id": "1", "name": "A", "column_values": [
            column("numbers9__1", "numbers", "", '"12"'),
            column("text__1", "text", ""),
        ]})
        board_item = item.to_board_item("5000")
        assert board_item.column_values == {"numbers9__1": Decimal("12"), "text__1": None}
        assert board_item.text("numbers9__1") == "12"


class TestMondayErrorsThroughExecutor:
    """Connector errors come out of the executor as the sync error taxonomy."""

    PAYLOAD = ColumnValuePayload([("numbers9__1", Decimal("1"))])

    def test_deleted_item(self, connector):
        connector._api_client.execute = AsyncMock(side_effect=MondayGraphQLError(
            "Item not found", errors=[{"extensions": {"code": "InvalidItemIdException"}}], not_found=True,
        ))
        action = UpdateAction(board_id="5000", item_id="42", column_values=self.PAYLOAD)

        with pytest.raises(ItemNotFoundError):
            asyncio.run(MutationExecutor(connector).execute(action))

    def test_rejected_payload(self, connector):
        connector._api_client.execute = AsyncMock(side_effect=MondayGraphQLError("Invalid column"))
        action = UpdateAction(board_id="5000", item_id="42", column_values=self.PAYLOAD)

        with pytest.raises(MutationRejectedError, match="Invalid column"):
            asyncio.run(MutationExecutor(connector).execute(action))

    def test_server_error(self, connector):
        connector._api_client.execute = AsyncMock(side_effect=MondayApiError("API error 503", 503, retryable=True))
        action = UpdateAction(board_id="5000", item_id="42", column_values=self.PAYLOAD)

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(MutationExecutor(connector).execute(action))
        assert exc_info.value.status_code == 503
