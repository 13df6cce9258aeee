"""
Ordering helpers: contiguous positions, stable sorting and tier derivation.

Everything here is pure. Records are frozen dataclasses, so every function
returns new objects and leaves its input untouched.
"""

from __future__ import annotations

import dataclasses
from typing import Iterable, Sequence, TypeVar

from models.catalog import CatalogOption, Connector, Feature

T = TypeVar("T", Feature, CatalogOption)

# Package lanes that make up each tier, in display order
TIER_LADDER: dict[str, tuple[int, ...]] = {
    "gold": (1,),
    "platinum": (1, 3),
    "elite": (1, 3, 2),
}

# Catalog categories are displayed 2, 3, 1, then Featured
_CATEGORY_RANK = {2: 1, 3: 2, 1: 3, 4: 4}
_UNCATEGORISED_RANK = 999


def normalize_positions(items: Sequence[T]) -> list[T]:
    """Give `items` positions 0..n-1 in their current order."""
    return [dataclasses.replace(item, position=index) for index, item in enumerate(items)]


def _orderable_key(item: Feature | CatalogOption) -> tuple:
    missing = item.position is None
    return (missing, 0 if missing else item.position, item.name.lower())


def sort_orderable(items: Iterable[T]) -> list[T]:
    """Sort by position with missing positions last, ties broken by name."""
    return sorted(items, key=_orderable_key)


def tier_columns(tier: str) -> tuple[int, ...]:
    return TIER_LADDER.get((tier or "").strip().lower(), ())


def derive_tier_features(tier: str, features: Iterable[Feature]) -> list[Feature]:
    """The features shown for a tier, following the package ladder.

    Lanes are read in ladder order and each lane by position. A name that
    appears twice (case-insensitive, trimmed) is shown once. Outside Gold,
    OR connectors are shown as AND since higher tiers include every option.
    """
    columns = tier_columns(tier)
    if not columns:
        return []

    features = list(features)
    upgrade_connectors = tier.strip().lower() != "gold"
    seen: set[str] = set()
    result: list[Feature] = []
    for column in columns:
        for feature in sort_orderable(f for f in features if f.column == column):
            key = feature.name.strip().lower()
            if key in seen:
                continue
            seen.add(key)
            if upgrade_connectors and feature.connector is Connector.OR:
                feature = dataclasses.replace(feature, connector=Connector.AND)
            result.append(feature)
    return result


def catalog_display_order(options: Iterable[CatalogOption]) -> list[CatalogOption]:
    """Published options in customer display order."""
    def key(option: CatalogOption):
        rank = _CATEGORY_RANK.get(option.column, _UNCATEGORISED_RANK)
        return (rank,) + _orderable_key(option)

    return sorted((o for o in options if o.is_published), key=key)
