"""
Mutation Executor Tests

Each Action becomes exactly one mutation; failures are classified, and a
cancelled caller never abandons a mutation that is already on the wire.
"""

import asyncio
from decimal import Decimal

import pytest

from connectors.board_base import BoardClientError
from conftest import BOARD_ID
from core.errors import ItemNotFoundError, MutationRejectedError, TransportError
from reconciliation.engine import ColumnValuePayload, CreateAction, UpdateAction
from sync.executor import MutationExecutor

PAYLOAD = ColumnValuePayload([("wbs__1", "W-1"), ("numbers9__1", Decimal("111"))])


def create_action(board_id=BOARD_ID, payload=PAYLOAD):
    return CreateAction(board_id=board_id, name="X", column_values=payload)


class TestExecute:

    def test_create(self, board_client):
        item_id = asyncio.run(MutationExecutor(board_client).execute(create_action()))

        item = board_client.get_item(BOARD_ID, item_id)
        assert item.name == "X"
        assert item.column_values == {"wbs__1": "W-1", "numbers9__1": Decimal("111")}
        assert board_client.mutation_calls() == [
            ("create_item", {"board_id": BOARD_ID, "item_name": "X", "column_values": PAYLOAD.serialize()}),
        ]

    def test_update_overwrites_mapped_columns_only(self, board_client):
        item_id = board_client.add_item(BOARD_ID, "X", {"wbs__1": "W-1", "numbers9__1": Decimal("1"),
                                                         "numeric5__1": Decimal("9")})
        action = UpdateAction(board_id=BOARD_ID, item_id=item_id, column_values=PAYLOAD)

        result = asyncio.run(MutationExecutor(board_client).execute(action))

        assert result == item_id
        assert board_client.get_item(BOARD_ID, item_id).column_values == {
            "wbs__1": "W-1", "numbers9__1": Decimal("111"), "numeric5__1": Decimal("9"),
        }
        assert len(board_client.mutation_calls()) == 1

    def test_unknown_column_is_rejected_verbatim(self, board_client):
        payload = ColumnValuePayload([("status__7", "Done")])

        with pytest.raises(MutationRejectedError) as exc_info:
            asyncio.run(MutationExecutor(board_client).execute(create_action(payload=payload)))

        assert exc_info.value.message == "This column ID doesn't exist for the board: ['status__7']"
        assert exc_info.value.remote_errors[0]["column_ids"] == ["status__7"]
        assert not exc_info.value.retryable
        assert board_client.items(BOARD_ID) == []

    def test_deleted_item_is_not_found(self, board_client):
        action = UpdateAction(board_id=BOARD_ID, item_id="31337", column_values=PAYLOAD)

        with pytest.raises(ItemNotFoundError) as exc_info:
            asyncio.run(MutationExecutor(board_client).execute(action))

        assert exc_info.value.skippable
        assert exc_info.value.details == {"board_id": BOARD_ID, "item_id": "31337"}

    def test_transient_failure_is_retryable(self, board_client):
        board_client.fail_next("create_item")
        with pytest.raises(TransportError) as exc_info:
            asyncio.run(MutationExecutor(board_client).execute(create_action()))
        assert exc_info.value.operation == "create_item"

    def test_timeout_is_transport_error(self, board_client):
        board_client.latency_seconds = 0.2
        executor = MutationExecutor(board_client, call_timeout_seconds=0.01)

        with pytest.raises(TransportError, match="timed out"):
            asyncio.run(executor.execute(create_action()))

    def test_cancellation_waits_for_in_flight_mutation(self, board_client):
        board_client.latency_seconds = 0.05
        executor = MutationExecutor(board_client)

        async def scenario():
            task = asyncio.ensure_future(executor.execute(create_action()))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        # The create landed in full before the cancellation surfaced
        items = board_client.items(BOARD_ID)
        assert len(items) == 1
        assert items[0].column_values["numbers9__1"] == Decimal("111")


class TestExecuteMany:

    def test_failures_are_independent(self, board_client):
        actions = [create_action(), create_action(board_id="404"), create_action()]

        results = asyncio.run(MutationExecutor(board_client).execute_many(actions))

        assert [r.succeeded for r in results] == [True, False, True]
        assert isinstance(results[1].error, MutationRejectedError)
        assert results[1].action is actions[1]
        assert len(board_client.items(BOARD_ID)) == 2

    def test_transient_failure_reported_per_action(self, board_client):
        board_client.fail_next("create_item", BoardClientError("Gateway timeout", status_code=504, retryable=True))

        results = asyncio.run(MutationExecutor(board_client).execute_many([create_action(), create_action()]))

        assert sorted(r.succeeded for r in results) == [False, True]
        failed = next(r for r in results if not r.succeeded)
        assert isinstance(failed.error, TransportError)
