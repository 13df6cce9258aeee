"""
Cross-collection sync between features and their catalog options.

Every Feature may have one CatalogOption under the same id. The option is the
public record, so its name, price, warranty and "new" flag must always come
from the feature (or explicit overrides) and never drift on their own.

This module writes the option side only. Lane changes, which also touch the
feature's placement fields, go through PlacementController.move; it uses the
plan_* methods here so the mirror writes land in the same batch as the move.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

import config
from features.catalog_sync.models import NO_OVERRIDES, PublishOverrides
from features.errors import PersistenceError, ValidationError
from features.persistence import BatchPersistence
from features.validation import clean_highlights, clean_text, require_amount
from models.catalog import CatalogOption, Feature, changed_fields
from utils.docstore import DELETE_FIELD, DocumentNotFound, DocumentStore, FieldUpdate, StoreError, WriteKind

if TYPE_CHECKING:
    from features.placement.state import CatalogState

log = logging.getLogger(__name__)

# Marks an optional argument that was not passed
UNCHANGED: Any = object()


class CrossCollectionSync:
    def __init__(self, store: DocumentStore, state: CatalogState, persistence: BatchPersistence | None = None):
        self.store = store
        self.state = state
        self.persistence = persistence or BatchPersistence(store)

    # ── planning ──

    def resolve_publish_price(self, feature: Feature, price: float | None = None) -> float:
        """The price an option is published at: the override, else the feature's catalog price."""
        resolved = price if price is not None else feature.catalog_price
        if resolved is None:
            raise ValidationError(f"Set a catalog price for '{feature.name}' before publishing it")
        return require_amount(resolved, "Catalog price")

    def validate_publish(self, feature: Feature, overrides: PublishOverrides = NO_OVERRIDES) -> float:
        if not feature.publish_to_catalog:
            raise ValidationError(f"'{feature.name}' is not marked for the catalog")
        return self.resolve_publish_price(feature, overrides.price)

    def build_published_option(
        self,
        feature: Feature,
        overrides: PublishOverrides = NO_OVERRIDES,
        column: int | None = UNCHANGED,
        position: int | None = UNCHANGED,
    ) -> CatalogOption:
        price = self.validate_publish(feature, overrides)
        warranty = next(
            (w for w in (overrides.warranty, feature.catalog_warranty_override, feature.warranty) if w is not None),
            None,
        )
        existing = self.state.option(feature.id) or CatalogOption(id=feature.id, name=feature.name)
        option = dataclasses.replace(
            existing,
            name=feature.name,
            description=feature.description,
            points=feature.points,
            use_cases=feature.use_cases,
            cost=feature.cost,
            price=price,
            warranty=warranty if warranty is not None else existing.warranty,
            is_new=overrides.is_new if overrides.is_new is not None else feature.is_new,
            source_feature_id=feature.id,
            is_published=True,
        )
        if column is not UNCHANGED:
            option = dataclasses.replace(option, column=column)
        if position is not UNCHANGED:
            option = dataclasses.replace(option, position=position)
        return option

    def plan_publish(
        self,
        feature: Feature,
        overrides: PublishOverrides = NO_OVERRIDES,
        column: int | None = UNCHANGED,
        position: int | None = UNCHANGED,
    ) -> tuple[CatalogOption, FieldUpdate]:
        """The published option and the merge-upsert that writes it."""
        option = self.build_published_option(feature, overrides, column, position)
        fields: dict[str, Any] = {
            "name": option.name,
            "description": option.description,
            "points": list(option.points),
            "useCases": list(option.use_cases),
            "cost": option.cost,
            "price": option.price,
            "isNew": option.is_new,
            "sourceFeatureId": option.source_feature_id,
            "isPublished": True,
        }
        if option.warranty is not None:
            fields["warranty"] = option.warranty
        if column is not UNCHANGED:
            fields["column"] = DELETE_FIELD if column is None else column
        if position is not UNCHANGED:
            fields["position"] = DELETE_FIELD if position is None else position
        return option, FieldUpdate(config.CATALOG_COLLECTION, feature.id, fields, WriteKind.MERGE)

    def plan_unpublish(self, feature_id: str) -> tuple[CatalogOption, FieldUpdate] | None:
        """The retired option and its update, or None when nothing is published."""
        option = self.state.option(feature_id)
        if option is None or not option.is_published:
            return None
        retired = dataclasses.replace(option, is_published=False)
        return retired, FieldUpdate(config.CATALOG_COLLECTION, feature_id, {"isPublished": False})

    # ── writes ──

    async def publish(self, feature_id: str, overrides: PublishOverrides = NO_OVERRIDES) -> CatalogOption:
        """Upsert the published option for a feature already marked for the catalog."""
        feature = self.state.feature(feature_id)
        if feature.in_package:
            raise ValidationError(f"'{feature.name}' is in package {feature.column}; move it out first")
        option, write = self.plan_publish(feature, overrides)
        await self.persistence.commit([write])
        self.state.apply(options=[option])
        log.info("[SYNC] Published %s at %.2f", feature_id, option.price)
        return option

    async def unpublish(self, feature_id: str) -> CatalogOption | None:
        """Retire the option without deleting it. A missing option counts as success."""
        try:
            await self.store.update(config.CATALOG_COLLECTION, feature_id, {"isPublished": False})
        except DocumentNotFound:
            log.info("[SYNC] No catalog option for %s, nothing to unpublish", feature_id)
            return None
        except StoreError as e:
            log.error("[SYNC] Failed to unpublish %s: %s", feature_id, e)
            raise PersistenceError("Failed to unpublish from the catalog. Please check your connection.") from e

        option = self.state.option(feature_id)
        if option is not None:
            option = dataclasses.replace(option, is_published=False)
            self.state.apply(options=[option])
        log.info("[SYNC] Unpublished %s", feature_id)
        return option

    async def update_catalog_price(self, feature_id: str, price: float) -> Feature:
        """Set the feature's catalog price and mirror it onto the option when there is one."""
        price = require_amount(price, "Catalog price")
        feature = self.state.feature(feature_id)
        updated = dataclasses.replace(feature, catalog_price=price)
        writes = [FieldUpdate(config.FEATURES_COLLECTION, feature_id, {"catalogPrice": price})]

        option = self.state.option(feature_id)
        options = []
        if option is not None:
            options.append(dataclasses.replace(option, price=price))
            writes.append(FieldUpdate(config.CATALOG_COLLECTION, feature_id, {"price": price}))

        await self.persistence.commit(writes)
        self.state.apply(features=[updated], options=options)
        log.info("[SYNC] Catalog price for %s set to %.2f", feature_id, price)
        return updated

    async def update_pick2_metadata(
        self,
        feature_id: str,
        eligible: bool = UNCHANGED,
        sort: float | None = UNCHANGED,
        short_value: str | None = UNCHANGED,
        highlights: list[str] | None = UNCHANGED,
    ) -> CatalogOption | None:
        """Edit Pick-2 fields on the option, creating an unpublished shadow when needed.

        Returns None when the feature has no option and is not being made eligible.
        """
        feature = self.state.feature(feature_id)
        changes: dict[str, Any] = {}
        if eligible is not UNCHANGED:
            changes["pick2_eligible"] = bool(eligible)
        if sort is not UNCHANGED:
            changes["pick2_sort"] = None if sort is None else require_amount(sort, "Pick-2 sort")
        if short_value is not UNCHANGED:
            changes["short_value"] = clean_text(short_value)
        if highlights is not UNCHANGED:
            changes["highlights"] = clean_highlights(highlights, config.MAX_PICK2_HIGHLIGHTS)

        existing = self.state.option(feature_id)
        if existing is None:
            if not changes.get("pick2_eligible"):
                return None
            existing = self._shadow_option(feature)
            kind = WriteKind.MERGE
        else:
            kind = WriteKind.UPDATE

        option = dataclasses.replace(existing, **changes)
        if kind is WriteKind.MERGE:
            fields = option.to_doc()
        else:
            fields = changed_fields(existing, option)
        if not fields:
            return option

        await self.persistence.commit([FieldUpdate(config.CATALOG_COLLECTION, feature_id, fields, kind)])
        self.state.apply(options=[option])
        log.info("[SYNC] Pick-2 metadata for %s updated: %s", feature_id, sorted(fields))
        return option

    def _shadow_option(self, feature: Feature) -> CatalogOption:
        price = feature.catalog_price if feature.catalog_price is not None else feature.price
        return CatalogOption(
            id=feature.id,
            name=feature.name,
            price=price,
            cost=feature.cost,
            description=feature.description,
            points=feature.points,
            use_cases=feature.use_cases,
            warranty=feature.warranty,
            is_new=feature.is_new,
            is_published=False,
            source_feature_id=feature.id,
        )
