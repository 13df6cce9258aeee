"""
Lane classification.

A feature sits in exactly one lane. Package membership is decided by the
feature's own column; publication lanes are decided by its catalog option.
"""

from __future__ import annotations

import config
from features.placement.models import CATALOG, FEATURED, UNASSIGNED, Lane
from models.catalog import CatalogOption, Feature


def classify(feature: Feature, option: CatalogOption | None) -> Lane:
    if feature.column in config.PACKAGE_COLUMNS:
        return Lane.package(feature.column)
    if option is not None and option.is_published:
        return FEATURED if option.column == config.FEATURED_COLUMN else CATALOG
    return UNASSIGNED
