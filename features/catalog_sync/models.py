"""
Data models for catalog sync.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PublishOverrides:
    """Values that take precedence over the feature's own fields when publishing."""
    price: float | None = None
    warranty: str | None = None
    is_new: bool | None = None


NO_OVERRIDES = PublishOverrides()
