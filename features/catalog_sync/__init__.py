"""
Catalog sync feature: keeps each catalog option in step with its feature.

Public API:
    from features.catalog_sync import CrossCollectionSync, PublishOverrides
"""

from features.catalog_sync.models import NO_OVERRIDES, PublishOverrides
from features.catalog_sync.sync import UNCHANGED, CrossCollectionSync

__all__ = ["NO_OVERRIDES", "UNCHANGED", "CrossCollectionSync", "PublishOverrides"]
