"""Tests for moving features between lanes and reordering within them."""

import asyncio

import pytest

import config
from features.catalog_sync import PublishOverrides
from features.engine import CatalogEngine
from features.errors import PlacementBusy, PlacementError, UnknownItem, ValidationError
from features.persistence import BatchPersistence
from features.placement import CATALOG, FEATURED, UNASSIGNED, Lane, load_catalog
from models.catalog import Connector
from tests.conftest import SEED, FlakyStore, make_engine, run

OPTIONS = config.CATALOG_COLLECTION
FEATURES = config.FEATURES_COLLECTION


def lane_ids(state, lane):
    return [f.id for f in state.lane_members(lane)]


def assert_consistent(state):
    """Every feature in exactly one lane, every lane numbered 0..n-1."""
    seen = []
    for lane, members in state.lanes().items():
        assert [f.position for f in members] == list(range(len(members))), lane
        seen.extend(f.id for f in members)
        for f in members:
            option = state.option(f.id)
            if lane.is_package:
                assert not f.publish_to_catalog
                assert option is None or not option.is_published
            if lane.is_catalog:
                assert f.publish_to_catalog and f.column is None
                assert option.position == f.position
    assert sorted(seen) == sorted(state.features)


class TestCrossLaneMoves:
    def test_package_to_catalog(self, engine, store):
        result = run(engine.placement.move("f1", CATALOG))

        assert result.changed
        assert lane_ids(engine.state, Lane.package(2)) == ["f2"]
        assert engine.state.features["f2"].position == 0
        moved = engine.state.features["f1"]
        assert moved.publish_to_catalog and moved.column is None

        assert store.doc(FEATURES, "f2")["position"] == 0
        assert "column" not in store.doc(FEATURES, "f1")
        assert store.doc(FEATURES, "f1")["publishToCatalog"] is True
        option = store.doc(OPTIONS, "f1")
        assert option["isPublished"] is True
        assert option["price"] == 199
        assert option["position"] == 1
        assert store.commit_calls == 1
        assert_consistent(engine.state)

    def test_catalog_to_package_unpublishes(self, engine, store):
        run(engine.placement.move("f4", Lane.package(1), 0))

        assert lane_ids(engine.state, Lane.package(1)) == ["f4", "f3"]
        assert lane_ids(engine.state, CATALOG) == []
        assert store.doc(FEATURES, "f4")["column"] == 1
        assert store.doc(FEATURES, "f4")["publishToCatalog"] is False
        assert store.doc(FEATURES, "f3")["position"] == 1
        assert store.doc(OPTIONS, "f4")["isPublished"] is False
        assert_consistent(engine.state)

    def test_catalog_to_featured(self, engine, store):
        run(engine.placement.move("f4", FEATURED))
        assert lane_ids(engine.state, FEATURED) == ["f5", "f4"]
        assert store.doc(OPTIONS, "f4")["column"] == config.FEATURED_COLUMN
        assert store.doc(OPTIONS, "f4")["position"] == 1
        assert_consistent(engine.state)

    def test_featured_to_catalog_clears_featured_column(self, engine, store):
        run(engine.placement.move("f5", CATALOG, 0))
        assert lane_ids(engine.state, CATALOG) == ["f5", "f4"]
        assert "column" not in store.doc(OPTIONS, "f5")
        assert store.doc(OPTIONS, "f4")["position"] == 1
        assert_consistent(engine.state)

    def test_package_to_unassigned(self, engine, store):
        run(engine.placement.move("f1", UNASSIGNED))
        assert lane_ids(engine.state, UNASSIGNED) == ["f6", "f1"]
        assert "column" not in store.doc(FEATURES, "f1")
        assert store.doc(OPTIONS, "f1") is None
        assert_consistent(engine.state)

    def test_insert_in_middle(self, engine):
        run(engine.placement.move("f3", Lane.package(2), 1))
        assert lane_ids(engine.state, Lane.package(2)) == ["f1", "f3", "f2"]
        assert lane_ids(engine.state, Lane.package(1)) == []
        assert_consistent(engine.state)

    def test_target_index_is_clamped(self, engine):
        run(engine.placement.move("f6", Lane.package(2), 99))
        assert lane_ids(engine.state, Lane.package(2)) == ["f1", "f2", "f6"]

    def test_publish_without_price_changes_nothing(self, engine, store):
        before = engine.state.snapshot()
        with pytest.raises(ValidationError):
            run(engine.placement.move("f2", CATALOG))
        assert engine.state.features == before.features
        assert store.commit_calls == 0

    def test_unknown_feature(self, engine):
        with pytest.raises(UnknownItem):
            run(engine.placement.move("nope", CATALOG))


class TestSameLane:
    def test_reorder(self, engine, store):
        result = run(engine.placement.reorder(Lane.package(2), 0, 1))
        assert result.changed
        assert lane_ids(engine.state, Lane.package(2)) == ["f2", "f1"]
        assert store.doc(FEATURES, "f2")["position"] == 0
        assert store.doc(FEATURES, "f1")["position"] == 1

    def test_drop_on_itself_is_no_op(self, engine, store):
        result = run(engine.placement.move("f1", Lane.package(2), 0))
        assert not result.changed
        assert result.writes == []
        assert store.commit_calls == 0

    def test_drop_at_end_when_already_last_is_no_op(self, engine, store):
        result = run(engine.placement.move("f2", Lane.package(2)))
        assert not result.changed
        assert store.commit_calls == 0

    def test_reorder_bad_index(self, engine):
        with pytest.raises(ValidationError):
            run(engine.placement.reorder(Lane.package(2), 5, 0))


class TestRollback:
    def test_failed_commit_restores_state(self):
        store = FlakyStore(SEED, failures=3)
        engine = make_engine(store)
        before = engine.state.snapshot()

        with pytest.raises(PlacementError) as exc_info:
            run(engine.placement.move("f1", CATALOG))

        assert exc_info.value.feature_id == "f1"
        assert exc_info.value.recoverable
        assert not exc_info.value.partially_applied
        assert engine.state.features == before.features
        assert engine.state.options == before.options
        assert lane_ids(engine.state, Lane.package(2)) == ["f1", "f2"]
        assert store.snapshot() == FlakyStore(SEED).snapshot()
        assert not engine.placement.is_busy("f1")

    def test_partial_commit_is_reported(self):
        store = FlakyStore(SEED, fail_calls={2, 3, 4})
        loaded = run(load_catalog(store))
        persistence = BatchPersistence(store, batch_limit=1, max_attempts=3, base_delay=0)
        engine = CatalogEngine.create(store, loaded.state, persistence=persistence)
        before = engine.state.snapshot()

        with pytest.raises(PlacementError) as exc_info:
            run(engine.placement.move("f1", CATALOG))

        assert exc_info.value.partially_applied
        assert engine.state.features == before.features

    def test_connector_rollback(self):
        store = FlakyStore(SEED, failures=3)
        engine = make_engine(store)
        with pytest.raises(PlacementError):
            run(engine.placement.toggle_connector("f2"))
        assert engine.state.features["f2"].connector is Connector.OR

    def test_unexpected_store_error_restores_state(self):
        class BrokenDriverStore(FlakyStore):
            async def commit(self, writes):
                raise RuntimeError("driver crashed")

        engine = make_engine(BrokenDriverStore(SEED))
        before = engine.state.snapshot()

        with pytest.raises(RuntimeError):
            run(engine.placement.move("f1", CATALOG))

        assert engine.state.features == before.features
        assert engine.state.options == before.options
        assert engine.state.lane_of("f1") == Lane.package(2)
        assert not engine.placement.is_busy("f1")


class TestBetweenCatalogLanes:
    def test_override_price_survives_move_to_featured(self, engine, store):
        run(engine.publish("f6", PublishOverrides(price=55)))
        run(engine.placement.move("f6", FEATURED))

        assert engine.state.lane_of("f6") == FEATURED
        assert engine.state.option("f6").price == 55
        doc = store.doc(OPTIONS, "f6")
        assert doc["price"] == 55
        assert doc["column"] == config.FEATURED_COLUMN
        assert doc["position"] == 1
        assert_consistent(engine.state)

    def test_published_price_kept_both_ways(self, engine, store):
        run(engine.publish("f4", PublishOverrides(price=120)))
        run(engine.placement.move("f4", FEATURED))
        assert store.doc(OPTIONS, "f4")["price"] == 120

        run(engine.placement.move("f4", CATALOG))
        doc = store.doc(OPTIONS, "f4")
        assert doc["price"] == 120
        assert "column" not in doc
        assert doc["position"] == 0
        assert engine.state.option("f4").price == 120
        assert_consistent(engine.state)


class TestConnector:
    def test_flips(self, engine, store):
        assert run(engine.placement.toggle_connector("f2")).connector is Connector.AND
        assert run(engine.placement.toggle_connector("f1")).connector is Connector.OR
        assert store.doc(FEATURES, "f2")["connector"] == "AND"

    def test_missing_connector_counts_as_and(self, engine):
        assert run(engine.placement.toggle_connector("f3")).connector is Connector.OR

    def test_position_untouched(self, engine):
        run(engine.placement.toggle_connector("f2"))
        assert engine.state.features["f2"].position == 1
        assert engine.state.lane_of("f2") == Lane.package(2)

    def test_only_package_features(self, engine):
        with pytest.raises(ValidationError):
            run(engine.placement.toggle_connector("f4"))


class TestDuplicate:
    def test_copy_lands_at_end_without_catalog_fields(self, engine, store):
        copy = run(engine.placement.duplicate_to_lane("f4", 2))

        assert copy.id != "f4"
        assert lane_ids(engine.state, Lane.package(2)) == ["f1", "f2", copy.id]
        assert copy.position == 2
        assert not copy.publish_to_catalog and copy.catalog_price is None
        doc = store.doc(FEATURES, copy.id)
        assert doc["name"] == "Windshield Repair"
        assert "catalogPrice" not in doc
        assert engine.state.lane_of("f4") == CATALOG
        assert_consistent(engine.state)

    def test_bad_column(self, engine):
        with pytest.raises(ValidationError):
            run(engine.placement.duplicate_to_lane("f4", 4))


class SlowStore(FlakyStore):
    def __init__(self, seed):
        super().__init__(seed)
        self.gate = asyncio.Event()

    async def commit(self, writes):
        await self.gate.wait()
        await super().commit(writes)


def test_second_move_while_first_in_flight_is_busy():
    async def scenario():
        store = SlowStore(SEED)
        loaded = await load_catalog(store)
        engine = CatalogEngine.create(store, loaded.state, persistence=BatchPersistence(store, max_attempts=3, base_delay=0))

        first = asyncio.create_task(engine.placement.move("f1", Lane.package(1)))
        await asyncio.sleep(0)
        assert engine.placement.is_busy("f1")
        with pytest.raises(PlacementBusy):
            await engine.placement.move("f1", CATALOG)
        # optimistic state is already visible
        assert engine.state.lane_of("f1") == Lane.package(1)

        store.gate.set()
        await first
        assert not engine.placement.is_busy("f1")
        return engine

    engine = asyncio.run(scenario())
    assert lane_ids(engine.state, Lane.package(1)) == ["f3", "f1"]


def test_sequence_keeps_lanes_consistent(engine):
    moves = [
        ("f1", CATALOG, None),
        ("f4", Lane.package(3), None),
        ("f5", CATALOG, 0),
        ("f2", Lane.package(3), 0),
        ("f1", FEATURED, None),
        ("f6", Lane.package(1), 0),
        ("f3", UNASSIGNED, None),
        ("f4", CATALOG, 1),
        ("f2", Lane.package(3), 5),
    ]
    for feature_id, lane, index in moves:
        run(engine.placement.move(feature_id, lane, index))
        assert engine.state.lane_of(feature_id) == lane
        assert_consistent(engine.state)
