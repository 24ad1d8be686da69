"""
Board Mapping Resolver and Item Locator Tests

Lookups are exact and case-sensitive even when the board service matches
loosely; several matches are always an error.
"""

import asyncio

import pytest

from connectors.board_base import BoardClientError
from conftest import BOARD_ID, MAPPING_BOARD_ID
from core.errors import (
    AmbiguousItemError,
    AmbiguousMappingError,
    MappingNotFoundError,
    QueryRejectedError,
    TransportError,
)
from sync.locator import ItemLocator
from sync.resolver import BoardMappingResolver


@pytest.fixture
def mapping_client(board_client):
    board_client.add_board(MAPPING_BOARD_ID)
    board_client.add_item(MAPPING_BOARD_ID, "Project 123", {"text__1": "123", "board_id__1": BOARD_ID})
    return board_client


class TestStaticResolver:

    def test_configured_project(self, board_client, sync_config):
        mapping = asyncio.run(BoardMappingResolver(board_client, sync_config).resolve("123"))
        assert mapping.board_id == BOARD_ID
        assert mapping.source_item_id is None
        assert board_client.calls == []

    def test_unknown_project_is_not_found(self, board_client, sync_config):
        with pytest.raises(MappingNotFoundError) as exc_info:
            asyncio.run(BoardMappingResolver(board_client, sync_config).resolve("999"))
        assert exc_info.value.skippable
        assert exc_info.value.details == {"project_id": "999"}


class TestBoardResolver:

    def test_single_row(self, mapping_client, mapping_board_config):
        mapping = asyncio.run(BoardMappingResolver(mapping_client, mapping_board_config).resolve("123"))
        assert mapping.board_id == BOARD_ID
        assert mapping.source_item_id is not None

    def test_no_row(self, mapping_client, mapping_board_config):
        with pytest.raises(MappingNotFoundError):
            asyncio.run(BoardMappingResolver(mapping_client, mapping_board_config).resolve("456"))

    def test_two_rows_are_ambiguous(self, mapping_client, mapping_board_config):
        mapping_client.add_item(MAPPING_BOARD_ID, "Dup", {"text__1": "123", "board_id__1": "6000"})

        with pytest.raises(AmbiguousMappingError) as exc_info:
            asyncio.run(BoardMappingResolver(mapping_client, mapping_board_config).resolve("123"))

        assert sorted(exc_info.value.board_ids) == [BOARD_ID, "6000"]
        assert not exc_info.value.skippable

    def test_case_insensitive_service_is_rechecked(self, mapping_client, mapping_board_config):
        mapping_client.case_insensitive_search = True
        mapping_client.add_item(MAPPING_BOARD_ID, "Other", {"text__1": "abc", "board_id__1": "6000"})
        mapping_client.add_item(MAPPING_BOARD_ID, "Other upper", {"text__1": "ABC", "board_id__1": "7000"})

        mapping = asyncio.run(BoardMappingResolver(mapping_client, mapping_board_config).resolve("ABC"))

        assert mapping.board_id == "7000"

    def test_blank_board_column_is_not_found(self, mapping_client, mapping_board_config):
        mapping_client.add_item(MAPPING_BOARD_ID, "Unassigned", {"text__1": "777"})
        with pytest.raises(MappingNotFoundError):
            asyncio.run(BoardMappingResolver(mapping_client, mapping_board_config).resolve("777"))

    def test_transport_failure(self, mapping_client, mapping_board_config):
        mapping_client.fail_next("query_items")
        with pytest.raises(TransportError) as exc_info:
            asyncio.run(BoardMappingResolver(mapping_client, mapping_board_config).resolve("123"))
        assert exc_info.value.retryable
        assert exc_info.value.status_code == 504


class TestItemLocator:

    def test_no_item(self, board_client):
        locator = ItemLocator(board_client, "wbs__1")
        assert asyncio.run(locator.find(BOARD_ID, "2000000036.2")) is None

    def test_single_item(self, board_client):
        item_id = board_client.add_item(BOARD_ID, "X", {"wbs__1": "2000000036.2"})
        board_client.add_item(BOARD_ID, "Y", {"wbs__1": "2000000036.3"})

        item = asyncio.run(ItemLocator(board_client, "wbs__1").find(BOARD_ID, "2000000036.2"))

        assert item.id == item_id
        assert item.board_id == BOARD_ID

    def test_duplicate_items_are_ambiguous(self, board_client):
        first = board_client.add_item(BOARD_ID, "X", {"wbs__1": "W-1"})
        second = board_client.add_item(BOARD_ID, "X again", {"wbs__1": "W-1"})

        with pytest.raises(AmbiguousItemError) as exc_info:
            asyncio.run(ItemLocator(board_client, "wbs__1").find(BOARD_ID, "W-1"))

        assert exc_info.value.item_ids == [first, second]

    def test_loose_match_is_not_an_item(self, board_client):
        board_client.case_insensitive_search = True
        board_client.add_item(BOARD_ID, "X", {"wbs__1": "w-1"})

        assert asyncio.run(ItemLocator(board_client, "wbs__1").find(BOARD_ID, "W-1")) is None

    def test_unknown_board_is_rejected(self, board_client):
        with pytest.raises(QueryRejectedError):
            asyncio.run(ItemLocator(board_client, "wbs__1").find("404", "W-1"))

    def test_timeout_is_transport_error(self, board_client):
        board_client.latency_seconds = 0.2
        locator = ItemLocator(board_client, "wbs__1", call_timeout_seconds=0.01)

        with pytest.raises(TransportError, match="timed out"):
            asyncio.run(locator.find(BOARD_ID, "W-1"))

    def test_non_retryable_client_error(self, board_client):
        board_client.fail_next("query_items", BoardClientError("Invalid column", status_code=200))
        with pytest.raises(QueryRejectedError, match="Invalid column"):
            asyncio.run(ItemLocator(board_client, "wbs__1").find(BOARD_ID, "W-1"))
