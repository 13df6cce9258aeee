"""Tests for catalog option publish/unpublish and mirrored field edits."""

import math

import pytest

import config
from features.catalog_sync import PublishOverrides
from features.errors import ValidationError
from features.placement import CATALOG, UNASSIGNED
from models.catalog import Feature
from tests.conftest import run

OPTIONS = config.CATALOG_COLLECTION
FEATURES = config.FEATURES_COLLECTION


class TestPublish:
    def test_publish_without_price_fails_before_any_write(self, engine, store):
        with pytest.raises(ValidationError):
            run(engine.publish("f6"))
        assert store.doc(OPTIONS, "f6") is None
        assert store.commit_calls == 0
        assert engine.state.lane_of("f6") == UNASSIGNED

    def test_resolve_price_prefers_override(self, engine):
        feature = Feature(id="x", name="X", catalog_price=10)
        assert engine.sync.resolve_publish_price(feature, 25) == 25
        assert engine.sync.resolve_publish_price(feature) == 10
        with pytest.raises(ValidationError):
            engine.sync.resolve_publish_price(Feature(id="y", name="Y"))

    @pytest.mark.parametrize("price", [-1, math.nan, math.inf, True])
    def test_rejects_invalid_price(self, engine, price):
        with pytest.raises(ValidationError):
            engine.sync.resolve_publish_price(Feature(id="x", name="X"), price)

    def test_publish_moves_into_catalog(self, engine, store):
        option = run(engine.publish("f6", PublishOverrides(price=350)))

        assert option.is_published and option.price == 350
        doc = store.doc(OPTIONS, "f6")
        assert doc["isPublished"] is True
        assert doc["price"] == 350
        assert doc["warranty"] == "Lifetime"
        assert doc["sourceFeatureId"] == "f6"
        assert doc["isNew"] is False
        assert store.doc(FEATURES, "f6")["publishToCatalog"] is True
        assert engine.state.lane_of("f6") == CATALOG
        assert [f.id for f in engine.state.lane_members(CATALOG)] == ["f4", "f6"]

    def test_warranty_override_order(self, engine):
        feature = Feature(id="w", name="W", publish_to_catalog=True, catalog_price=5,
                          warranty="1 year", catalog_warranty_override="3 years")
        assert engine.sync.build_published_option(feature).warranty == "3 years"
        overridden = engine.sync.build_published_option(feature, PublishOverrides(warranty="5 years"))
        assert overridden.warranty == "5 years"

    def test_publish_is_idempotent(self, engine, store):
        run(engine.sync.publish("f4"))
        first = store.doc(OPTIONS, "f4")
        run(engine.sync.publish("f4"))
        assert store.doc(OPTIONS, "f4") == first
        assert first["price"] == 149
        assert first["pick2Eligible"] is True

    def test_publish_refuses_package_feature(self, engine):
        with pytest.raises(ValidationError):
            run(engine.sync.publish("f1"))


class TestUnpublish:
    def test_unpublish_retires_without_deleting(self, engine, store):
        run(engine.sync.unpublish("f4"))
        doc = store.doc(OPTIONS, "f4")
        assert doc is not None
        assert doc["isPublished"] is False
        assert engine.state.option("f4").is_published is False

    def test_missing_option_is_success(self, engine):
        assert run(engine.sync.unpublish("f6")) is None

    def test_idempotent(self, engine, store):
        run(engine.sync.unpublish("f4"))
        first = store.doc(OPTIONS, "f4")
        run(engine.sync.unpublish("f4"))
        assert store.doc(OPTIONS, "f4") == first


class TestCatalogPrice:
    def test_mirrors_onto_option(self, engine, store):
        run(engine.sync.update_catalog_price("f4", 175))
        assert store.doc(FEATURES, "f4")["catalogPrice"] == 175
        assert store.doc(OPTIONS, "f4")["price"] == 175
        assert engine.state.option("f4").price == 175
        assert store.commit_calls == 1

    def test_feature_without_option(self, engine, store):
        run(engine.sync.update_catalog_price("f1", 210))
        assert store.doc(FEATURES, "f1")["catalogPrice"] == 210
        assert store.doc(OPTIONS, "f1") is None

    @pytest.mark.parametrize("price", [-5, math.nan, math.inf])
    def test_rejects_invalid(self, engine, store, price):
        with pytest.raises(ValidationError):
            run(engine.sync.update_catalog_price("f4", price))
        assert store.commit_calls == 0


class TestPick2Metadata:
    def test_creates_unpublished_shadow(self, engine, store):
        option = run(engine.sync.update_pick2_metadata("f6", eligible=True))
        assert option.pick2_eligible and not option.is_published
        doc = store.doc(OPTIONS, "f6")
        assert doc["isPublished"] is False
        assert doc["price"] == 400
        assert doc["pick2Eligible"] is True
        assert engine.state.lane_of("f6") == UNASSIGNED

    def test_shadow_price_prefers_catalog_price(self, engine, store):
        run(engine.sync.update_pick2_metadata("f1", eligible=True))
        assert store.doc(OPTIONS, "f1")["price"] == 199

    def test_no_option_and_not_eligible_is_no_op(self, engine, store):
        assert run(engine.sync.update_pick2_metadata("f3", sort=2)) is None
        assert store.doc(OPTIONS, "f3") is None

    def test_text_fields_are_cleaned(self, engine, store):
        option = run(engine.sync.update_pick2_metadata(
            "f4", short_value="  ", highlights=[" Chip repair ", "", "Crack repair", "Extra"],
        ))
        assert option.short_value is None
        assert option.highlights == ("Chip repair", "Crack repair")
        assert store.doc(OPTIONS, "f4")["highlights"] == ["Chip repair", "Crack repair"]

    def test_sort_can_be_cleared(self, engine, store):
        run(engine.sync.update_pick2_metadata("f4", sort=None))
        assert "pick2Sort" not in store.doc(OPTIONS, "f4")

    def test_rejects_negative_sort(self, engine):
        with pytest.raises(ValidationError):
            run(engine.sync.update_pick2_metadata("f4", sort=-1))
