"""
Record Pipeline Tests

RESOLVING -> LOCATING -> DECIDING -> EXECUTING for a single record, plus
the per-(board, business key) serialization that prevents duplicate creates.
"""

import asyncio
from decimal import Decimal

import pytest

from conftest import BOARD_ID
from core.errors import AmbiguousItemError, MappingNotFoundError
from core.models import FinancialRecord, PipelineStage
from reconciliation.engine import ActionKind, CreateAction
from sync.batch import build_pipeline
from sync.pipeline import KeyedLocks, RecordState


@pytest.fixture
def record(record_data):
    return FinancialRecord.model_validate(record_data)


@pytest.fixture
def pipeline(board_client, sync_config, metrics):
    return build_pipeline(board_client, sync_config, metrics)


class TestRecordPipeline:

    def test_first_run_creates(self, pipeline, record, board_client):
        state = asyncio.run(pipeline.run(record))

        assert state.stage == PipelineStage.SUCCEEDED
        assert state.action.kind == ActionKind.CREATE
        assert state.mapping.board_id == BOARD_ID
        item = board_client.get_item(BOARD_ID, state.item_id)
        assert item.column_values == {
            "wbs__1": "2000000036.2",
            "numbers9__1": Decimal("111"),
            "numeric8__1": Decimal("50"),
            "numeric5__1": Decimal("5"),
        }

    def test_second_run_updates_same_item(self, pipeline, record, board_client):
        first = asyncio.run(pipeline.run(record))
        second = asyncio.run(pipeline.run(record))

        assert second.action.kind == ActionKind.UPDATE
        assert second.item_id == first.item_id
        assert len(board_client.items(BOARD_ID)) == 1
        assert [name for name, _ in board_client.mutation_calls()] == ["create_item", "update_item"]

    def test_existing_item_is_updated_without_create(self, pipeline, record, board_client):
        board_client.add_item(BOARD_ID, "X", {"wbs__1": "2000000036.2"}, item_id="7388693067")

        state = asyncio.run(pipeline.run(record))

        assert state.item_id == "7388693067"
        assert [name for name, _ in board_client.mutation_calls()] == ["update_item"]

    def test_concurrent_same_key_creates_once(self, pipeline, record, board_client):
        board_client.latency_seconds = 0.01

        async def scenario():
            return await asyncio.gather(pipeline.run(record), pipeline.run(record))

        states = asyncio.run(scenario())

        kinds = sorted(s.action.kind.value for s in states)
        assert kinds == ["create", "update"]
        assert states[0].item_id == states[1].item_id
        assert len(board_client.items(BOARD_ID)) == 1
        assert len(pipeline.locks) == 0

    def test_different_keys_run_concurrently(self, pipeline, record, board_client):
        other = record.model_copy(update={"wbs": "2000000036.3"})

        async def scenario():
            return await asyncio.gather(pipeline.run(record), pipeline.run(other))

        states = asyncio.run(scenario())

        assert all(s.action.kind == ActionKind.CREATE for s in states)
        assert len(board_client.items(BOARD_ID)) == 2

    def test_ambiguous_item_issues_no_mutation(self, pipeline, record, board_client):
        board_client.add_item(BOARD_ID, "X", {"wbs__1": "2000000036.2"})
        board_client.add_item(BOARD_ID, "X copy", {"wbs__1": "2000000036.2"})
        state = RecordState()

        with pytest.raises(AmbiguousItemError):
            asyncio.run(pipeline.run(record, state))

        assert state.stage == PipelineStage.LOCATING
        assert state.action is None
        assert board_client.mutation_calls() == []

    def test_unmapped_project_stops_at_resolving(self, pipeline, record, board_client):
        state = RecordState()
        unmapped = record.model_copy(update={"project_id": "999"})

        with pytest.raises(MappingNotFoundError):
            asyncio.run(pipeline.run(unmapped, state))

        assert state.stage == PipelineStage.RESOLVING
        assert board_client.calls == []

    def test_plan_does_not_mutate(self, pipeline, record, board_client):
        plan = asyncio.run(pipeline.plan(record))

        assert isinstance(plan.action, CreateAction)
        assert plan.existing_item is None
        assert board_client.mutation_calls() == []

    def test_stage_timings_recorded(self, pipeline, record, metrics):
        asyncio.run(pipeline.run(record))

        stages = metrics.get_summary()["timings"]["by_stage"]
        assert {"resolve", "locate", "execute"} <= set(stages)


class TestKeyedLocks:

    def test_serializes_same_key(self):
        locks = KeyedLocks()
        order = []

        async def worker(name, key):
            async with locks.hold(key):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        async def scenario():
            await asyncio.gather(worker("a", ("b", "k")), worker("b", ("b", "k")))

        asyncio.run(scenario())

        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert len(locks) == 0

    def test_independent_keys_overlap(self):
        locks = KeyedLocks()
        order = []

        async def worker(name, key):
            async with locks.hold(key):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        async def scenario():
            await asyncio.gather(worker("a", ("b", "k1")), worker("b", ("b", "k2")))

        asyncio.run(scenario())

        assert order[:2] == ["a-in", "b-in"]
