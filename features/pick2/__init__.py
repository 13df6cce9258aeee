"""
Pick-2 feature: bundle configuration and the shopper's two-item selection.

Public API:
    from features.pick2 import Pick2SelectionController, Pick2Config, load_pick2_config
"""

from features.pick2.models import Pick2Config, RecommendedPair, SelectionStatus
from features.pick2.config import load_pick2_config, save_pick2_settings, save_recommended_pairs
from features.pick2.selection import BLOCKED_MESSAGE, Pick2SelectionController

__all__ = [
    "BLOCKED_MESSAGE",
    "Pick2Config",
    "Pick2SelectionController",
    "RecommendedPair",
    "SelectionStatus",
    "load_pick2_config",
    "save_pick2_settings",
    "save_recommended_pairs",
]
