"""
CatalogEngine: one object that owns the store, the in-memory catalog and the
controllers built on it. Hosts (the API, scripts, tests) talk to this.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from features.catalog_sync import NO_OVERRIDES, CrossCollectionSync, PublishOverrides
from features.persistence import BatchPersistence
from features.pick2 import Pick2Config, Pick2SelectionController, load_pick2_config
from features.placement import CATALOG, UNASSIGNED, CatalogState, MoveResult, PlacementController, load_catalog
from models.catalog import CatalogOption
from utils.docstore import DocumentStore

log = logging.getLogger(__name__)


@dataclass
class CatalogEngine:
    store: DocumentStore
    state: CatalogState
    persistence: BatchPersistence
    sync: CrossCollectionSync
    placement: PlacementController
    pick2_config: Pick2Config

    @classmethod
    def create(
        cls,
        store: DocumentStore,
        state: CatalogState | None = None,
        pick2_config: Pick2Config | None = None,
        persistence: BatchPersistence | None = None,
    ) -> CatalogEngine:
        state = state or CatalogState()
        persistence = persistence or BatchPersistence(store)
        sync = CrossCollectionSync(store, state, persistence)
        return cls(
            store=store,
            state=state,
            persistence=persistence,
            sync=sync,
            placement=PlacementController(state, persistence, sync),
            pick2_config=pick2_config or Pick2Config(),
        )

    async def publish(self, feature_id: str, overrides: PublishOverrides = NO_OVERRIDES) -> CatalogOption:
        """Publish a feature to the catalog, moving it there first if needed."""
        if self.state.lane_of(feature_id).is_catalog:
            return await self.sync.publish(feature_id, overrides)
        await self.placement.move(feature_id, CATALOG, overrides=overrides)
        return self.state.options[feature_id]

    async def unpublish(self, feature_id: str) -> MoveResult | None:
        """Take a feature out of the catalog. Features not in the catalog are left alone."""
        if not self.state.lane_of(feature_id).is_catalog:
            await self.sync.unpublish(feature_id)
            return None
        return await self.placement.move(feature_id, UNASSIGNED)

    def new_pick2_session(self) -> Pick2SelectionController:
        return Pick2SelectionController(self.pick2_config, self.state.pick2_eligible())


async def build_engine(store: DocumentStore, apply_repairs: bool = False) -> CatalogEngine:
    """Load the catalog and Pick-2 config from `store` into a ready engine."""
    loaded = await load_catalog(store)
    engine = CatalogEngine.create(store, loaded.state, await load_pick2_config(store))
    if loaded.repairs:
        if apply_repairs:
            await engine.persistence.commit(loaded.repairs)
            log.info("Applied %d load-time repairs", len(loaded.repairs))
        else:
            log.warning("%d documents need repair; run migrate.py to write them", len(loaded.repairs))
    return engine
