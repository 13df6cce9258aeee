"""
Placement controller: moves features between lanes and reorders them.

Each operation is computed in full before anything changes: new records for
every feature whose lane or position moves, the catalog mirror writes, and
the feature field updates. The in-memory state is then updated optimistically
and the writes go out as one BatchPersistence commit. If the commit fails the
touched records are reverted and a recoverable PlacementError is raised.

Only one placement operation per feature may be in flight. A second one for
the same feature raises PlacementBusy and changes nothing.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid

import config
from features.catalog_sync.models import NO_OVERRIDES, PublishOverrides
from features.catalog_sync.sync import UNCHANGED, CrossCollectionSync
from features.errors import PersistenceError, PlacementBusy, PlacementError, ValidationError
from features.persistence import BatchPersistence
from features.placement.models import Lane, LaneKind, MoveResult, ReorderIntent
from features.placement.ordering import normalize_positions
from features.placement.state import CatalogState
from models.catalog import CatalogOption, Connector, Feature, changed_fields
from utils.docstore import DELETE_FIELD, FieldUpdate, WriteKind

log = logging.getLogger(__name__)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


class PlacementController:
    def __init__(self, state: CatalogState, persistence: BatchPersistence, sync: CrossCollectionSync):
        self.state = state
        self.persistence = persistence
        self.sync = sync
        self._in_flight: set[str] = set()

    def is_busy(self, feature_id: str) -> bool:
        return feature_id in self._in_flight

    # ── intents ──

    async def handle_intent(self, intent: ReorderIntent) -> MoveResult:
        return await self.move(intent.feature_id, intent.target_lane, intent.target_index)

    async def reorder(self, lane: Lane, from_index: int, to_index: int) -> MoveResult:
        """Move the item at `from_index` of `lane` to `to_index` of the same lane."""
        members = self.state.lane_members(lane)
        if not 0 <= from_index < len(members):
            raise ValidationError(f"No item at index {from_index} in lane {lane}")
        return await self.move(members[from_index].id, lane, to_index)

    async def move(
        self,
        feature_id: str,
        target_lane: Lane,
        target_index: int | None = None,
        overrides: PublishOverrides = NO_OVERRIDES,
    ) -> MoveResult:
        """Place a feature in `target_lane` at `target_index` (end of lane when None)."""
        self._check_idle(feature_id)
        feature = self.state.feature(feature_id)
        source = self.state.lane_of(feature_id)
        source_members = self.state.lane_members(source)
        from_index = next(i for i, f in enumerate(source_members) if f.id == feature_id)

        if source == target_lane:
            to_index = len(source_members) - 1 if target_index is None else target_index
            to_index = _clamp(to_index, 0, len(source_members) - 1)
            if to_index == from_index:
                return MoveResult(feature_id, source, target_lane)
            members = list(source_members)
            members.insert(to_index, members.pop(from_index))
            lanes = {target_lane: normalize_positions(members)}
        else:
            remaining = [f for f in source_members if f.id != feature_id]
            target_members = self.state.lane_members(target_lane)
            insert_at = len(target_members) if target_index is None else _clamp(target_index, 0, len(target_members))
            target_members.insert(insert_at, self._with_lane_fields(feature, target_lane))
            lanes = {
                source: normalize_positions(remaining),
                target_lane: normalize_positions(target_members),
            }

        features, options, writes = self._plan(feature_id, source, target_lane, lanes, overrides)
        result = MoveResult(
            feature_id, source, target_lane,
            changed=True,
            changed_ids=[f.id for f in features],
            writes=writes,
        )
        result.report = await self._apply_and_commit(feature_id, features, options, writes)
        log.info(
            "[PLACEMENT] %s: %s -> %s (%d feature(s), %d write(s))",
            feature_id, source, target_lane, len(features), len(writes),
        )
        return result

    async def toggle_connector(self, feature_id: str) -> Feature:
        """Flip AND/OR between a package feature and the next one in its lane."""
        self._check_idle(feature_id)
        feature = self.state.feature(feature_id)
        if not feature.in_package:
            raise ValidationError(f"'{feature.name}' is not in a package lane")
        current = feature.connector or Connector.AND
        updated = dataclasses.replace(feature, connector=current.flipped())
        write = FieldUpdate(config.FEATURES_COLLECTION, feature_id, {"connector": updated.connector.value})
        await self._apply_and_commit(feature_id, [updated], [], [write])
        log.info("[PLACEMENT] %s connector %s -> %s", feature_id, current.value, updated.connector.value)
        return updated

    async def duplicate_to_lane(self, feature_id: str, column: int) -> Feature:
        """Copy a feature into the end of a package lane under a new id.

        The copy does not carry catalog publishing fields. It is added to the
        state only after the write succeeds.
        """
        lane = Lane.package(column)
        feature = self.state.feature(feature_id)
        copy = dataclasses.replace(
            feature,
            id=uuid.uuid4().hex,
            column=column,
            position=len(self.state.lane_members(lane)),
            publish_to_catalog=False,
            catalog_price=None,
            catalog_warranty_override=None,
            is_new=False,
        )
        await self.persistence.commit([
            FieldUpdate(config.FEATURES_COLLECTION, copy.id, copy.to_doc(), WriteKind.MERGE),
        ])
        self.state.apply(features=[copy])
        log.info("[PLACEMENT] Duplicated %s into %s as %s", feature_id, lane, copy.id)
        return copy

    # ── internals ──

    def _check_idle(self, feature_id: str) -> None:
        if feature_id in self._in_flight:
            raise PlacementBusy(feature_id)

    @staticmethod
    def _with_lane_fields(feature: Feature, lane: Lane) -> Feature:
        if lane.kind is LaneKind.PACKAGE:
            return dataclasses.replace(feature, column=lane.column, publish_to_catalog=False)
        return dataclasses.replace(feature, column=None, publish_to_catalog=lane.is_catalog)

    def _plan(
        self,
        feature_id: str,
        source: Lane,
        target: Lane,
        lanes: dict[Lane, list[Feature]],
        overrides: PublishOverrides,
    ) -> tuple[list[Feature], list[CatalogOption], list[FieldUpdate]]:
        """Changed records and the writes that persist them. Raises before any mutation."""
        features: list[Feature] = []
        options: list[CatalogOption] = []
        feature_writes: list[FieldUpdate] = []
        option_writes: list[FieldUpdate] = []

        for lane, members in lanes.items():
            for member in members:
                before = self.state.features[member.id]
                if member != before:
                    features.append(member)
                    feature_writes.append(
                        FieldUpdate(config.FEATURES_COLLECTION, member.id, changed_fields(before, member))
                    )
                if member.id == feature_id and source != target:
                    continue
                if lane.is_catalog:
                    mirrored = self._mirror_position(member)
                    if mirrored is not None:
                        options.append(mirrored[0])
                        option_writes.append(mirrored[1])

        if source != target:
            moved = next(m for m in lanes[target] if m.id == feature_id)
            if source.is_catalog and target.is_catalog:
                # Already published: only placement changes, price stays as published
                option, write = self._replace_in_catalog(moved, target)
                options.append(option)
                option_writes.append(write)
            elif target.is_catalog:
                option, write = self.sync.plan_publish(
                    moved, overrides, column=self._option_column(feature_id, target), position=moved.position,
                )
                options.append(option)
                option_writes.append(write)
            elif source.is_catalog:
                planned = self.sync.plan_unpublish(feature_id)
                if planned is not None:
                    options.append(planned[0])
                    option_writes.append(planned[1])

        return features, options, feature_writes + option_writes

    def _mirror_position(self, member: Feature) -> tuple[CatalogOption, FieldUpdate] | None:
        option = self.state.option(member.id)
        if option is None or option.position == member.position:
            return None
        return (
            dataclasses.replace(option, position=member.position),
            FieldUpdate(config.CATALOG_COLLECTION, member.id, {"position": member.position}),
        )

    def _replace_in_catalog(self, moved: Feature, target: Lane) -> tuple[CatalogOption, FieldUpdate]:
        """Move a published option between Catalog and Featured without republishing it."""
        option = self.state.options[moved.id]
        fields: dict = {"position": moved.position}
        column = self._option_column(moved.id, target)
        if column is not UNCHANGED:
            fields["column"] = DELETE_FIELD if column is None else column
            option = dataclasses.replace(option, column=column)
        option = dataclasses.replace(option, position=moved.position)
        return option, FieldUpdate(config.CATALOG_COLLECTION, moved.id, fields)

    def _option_column(self, feature_id: str, target: Lane) -> int | None:
        """Featured pins the option to the featured column; Catalog keeps a 1..3 category."""
        if target.kind is LaneKind.FEATURED:
            return config.FEATURED_COLUMN
        option = self.state.option(feature_id)
        if option is not None and option.column == config.FEATURED_COLUMN:
            return None
        return UNCHANGED

    async def _apply_and_commit(
        self,
        feature_id: str,
        features: list[Feature],
        options: list[CatalogOption],
        writes: list[FieldUpdate],
    ):
        snapshot = self.state.snapshot()
        self.state.apply(features=features, options=options)
        self._in_flight.add(feature_id)
        try:
            return await self.persistence.commit(writes)
        except PersistenceError as e:
            self.state.revert(snapshot, [f.id for f in features], [o.id for o in options])
            partially_applied = getattr(e, "partially_applied", False)
            log.warning(
                "[PLACEMENT] Rolled back %s after failed save (partially applied: %s)",
                feature_id, partially_applied,
            )
            raise PlacementError(
                "Failed to save changes. Please check your connection and try again.",
                feature_id,
                partially_applied=partially_applied,
            ) from e
        except BaseException:
            self.state.revert(snapshot, [f.id for f in features], [o.id for o in options])
            log.error("[PLACEMENT] Rolled back %s after an unexpected error while saving", feature_id)
            raise
        finally:
            self._in_flight.discard(feature_id)
