"""
Placement feature: lanes, ordering and the controller that moves features between them.

Public API:
    from features.placement import PlacementController, CatalogState, Lane, load_catalog
"""

from features.placement.models import CATALOG, FEATURED, UNASSIGNED, Lane, LaneKind, MoveResult, ReorderIntent
from features.placement.lanes import classify
from features.placement.ordering import (
    catalog_display_order,
    derive_tier_features,
    normalize_positions,
    sort_orderable,
)
from features.placement.state import CatalogState
from features.placement.controller import PlacementController
from features.placement.loader import LoadResult, load_catalog

__all__ = [
    "CATALOG",
    "FEATURED",
    "UNASSIGNED",
    "CatalogState",
    "Lane",
    "LaneKind",
    "LoadResult",
    "MoveResult",
    "PlacementController",
    "ReorderIntent",
    "catalog_display_order",
    "classify",
    "derive_tier_features",
    "load_catalog",
    "normalize_positions",
    "sort_orderable",
]
