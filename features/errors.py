"""
Exceptions shared by the catalog features.

Every error raised by the engine derives from CatalogError so host code can
render it as an inline, recoverable message next to the affected item.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from features.persistence.models import CommitReport


class CatalogError(Exception):
    """Base class for engine errors."""

    recoverable = True


class ValidationError(CatalogError, ValueError):
    """Input rejected before any write; no state was touched."""


class UnknownItem(CatalogError, LookupError):
    """A feature or catalog option id that the engine does not know about."""

    def __init__(self, kind: str, item_id: str):
        super().__init__(f"Unknown {kind}: {item_id}")
        self.kind = kind
        self.item_id = item_id


class PersistenceError(CatalogError):
    """The store could not durably apply a write."""


class BatchCommitError(PersistenceError):
    """A chunk of a batched commit failed after every retry."""

    def __init__(self, message: str, report: CommitReport):
        super().__init__(message)
        self.report = report

    @property
    def partially_applied(self) -> bool:
        return self.report.partially_applied


class PlacementError(CatalogError):
    """A placement change was rolled back after its writes failed."""

    def __init__(self, message: str, feature_id: str, partially_applied: bool = False):
        super().__init__(message)
        self.feature_id = feature_id
        self.partially_applied = partially_applied


class PlacementBusy(CatalogError):
    """Another placement operation for the same feature is still in flight."""

    def __init__(self, feature_id: str):
        super().__init__(f"A change to {feature_id} is still being saved")
        self.feature_id = feature_id
