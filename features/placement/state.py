"""
In-memory catalog state.

CatalogState owns every Feature and CatalogOption and keeps a by-lane index
next to the by-id maps. Records are immutable, so a snapshot is a pair of
shallow dict copies and restoring one is exact.

A feature's lane position is always `Feature.position`; for the Catalog and
Featured lanes it is mirrored onto the option.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from features.errors import UnknownItem
from features.placement.lanes import classify
from features.placement.models import Lane, all_lanes
from features.placement.ordering import sort_orderable
from models.catalog import CatalogOption, Feature


@dataclass(frozen=True)
class StateSnapshot:
    features: dict[str, Feature]
    options: dict[str, CatalogOption]


class CatalogState:
    def __init__(self, features: Iterable[Feature] = (), options: Iterable[CatalogOption] = ()):
        self.features: dict[str, Feature] = {f.id: f for f in features}
        self.options: dict[str, CatalogOption] = {o.id: o for o in options}
        self._lanes: dict[Lane, list[str]] = {}
        self._reindex()

    # ── lookups ──

    def feature(self, feature_id: str) -> Feature:
        try:
            return self.features[feature_id]
        except KeyError:
            raise UnknownItem("feature", feature_id) from None

    def option(self, option_id: str) -> CatalogOption | None:
        return self.options.get(option_id)

    def lane_of(self, feature_id: str) -> Lane:
        feature = self.feature(feature_id)
        return classify(feature, self.options.get(feature_id))

    def lane_members(self, lane: Lane) -> list[Feature]:
        """Features in `lane`, in display order."""
        return [self.features[fid] for fid in self._lanes.get(lane, [])]

    def lanes(self) -> dict[Lane, list[Feature]]:
        return {lane: self.lane_members(lane) for lane in all_lanes()}

    def pick2_eligible(self) -> list[CatalogOption]:
        """Options flagged for Pick-2, published or not, by pick2Sort then name."""
        eligible = [o for o in self.options.values() if o.pick2_eligible]
        return sorted(eligible, key=lambda o: (
            o.pick2_sort is None, o.pick2_sort or 0, o.name.lower(),
        ))

    # ── mutation ──

    def apply(self, features: Iterable[Feature] = (), options: Iterable[CatalogOption] = ()) -> None:
        for f in features:
            self.features[f.id] = f
        for o in options:
            self.options[o.id] = o
        self._reindex()

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(features=dict(self.features), options=dict(self.options))

    def restore(self, snapshot: StateSnapshot) -> None:
        self.features = dict(snapshot.features)
        self.options = dict(snapshot.options)
        self._reindex()

    def revert(self, snapshot: StateSnapshot, feature_ids: Iterable[str] = (), option_ids: Iterable[str] = ()) -> None:
        """Put the given records back to their snapshot values, leaving the rest alone."""
        for fid in feature_ids:
            if fid in snapshot.features:
                self.features[fid] = snapshot.features[fid]
            else:
                self.features.pop(fid, None)
        for oid in option_ids:
            if oid in snapshot.options:
                self.options[oid] = snapshot.options[oid]
            else:
                self.options.pop(oid, None)
        self._reindex()

    def _reindex(self) -> None:
        grouped: dict[Lane, list[Feature]] = {lane: [] for lane in all_lanes()}
        for feature in self.features.values():
            grouped[classify(feature, self.options.get(feature.id))].append(feature)
        self._lanes = {lane: [f.id for f in sort_orderable(members)] for lane, members in grouped.items()}
