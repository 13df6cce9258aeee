"""
Data models for placement: lanes, reorder intents and move results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import config
from features.errors import ValidationError
from features.persistence.models import CommitReport
from utils.docstore import FieldUpdate


class LaneKind(str, Enum):
    PACKAGE = "package"
    FEATURED = "featured"
    CATALOG = "catalog"
    UNASSIGNED = "unassigned"


@dataclass(frozen=True)
class Lane:
    """One display lane. Only package lanes carry a column."""
    kind: LaneKind
    column: int | None = None

    def __post_init__(self):
        if self.kind is LaneKind.PACKAGE:
            if self.column not in config.PACKAGE_COLUMNS:
                raise ValidationError(f"Package column must be one of {config.PACKAGE_COLUMNS}, got {self.column!r}")
        elif self.column is not None:
            raise ValidationError(f"Lane {self.kind.value} does not take a column")

    @classmethod
    def package(cls, column: int) -> Lane:
        return cls(LaneKind.PACKAGE, column)

    @classmethod
    def parse(cls, key: str) -> Lane:
        """Parse a lane key such as "package-2", "featured" or "catalog"."""
        key = (key or "").strip().lower()
        if key.startswith("package-"):
            try:
                column = int(key.split("-", 1)[1])
            except ValueError:
                raise ValidationError(f"Unknown lane: {key!r}") from None
            return cls.package(column)
        try:
            kind = LaneKind(key)
        except ValueError:
            raise ValidationError(f"Unknown lane: {key!r}") from None
        if kind is LaneKind.PACKAGE:
            raise ValidationError("Package lanes need a column, e.g. 'package-1'")
        return cls(kind)

    @property
    def key(self) -> str:
        if self.kind is LaneKind.PACKAGE:
            return f"package-{self.column}"
        return self.kind.value

    @property
    def is_package(self) -> bool:
        return self.kind is LaneKind.PACKAGE

    @property
    def is_catalog(self) -> bool:
        """Catalog and Featured both publish the paired option."""
        return self.kind in (LaneKind.CATALOG, LaneKind.FEATURED)

    def __str__(self) -> str:
        return self.key


FEATURED = Lane(LaneKind.FEATURED)
CATALOG = Lane(LaneKind.CATALOG)
UNASSIGNED = Lane(LaneKind.UNASSIGNED)


def all_lanes() -> list[Lane]:
    return [Lane.package(c) for c in config.PACKAGE_COLUMNS] + [FEATURED, CATALOG, UNASSIGNED]


@dataclass(frozen=True)
class ReorderIntent:
    """An abstract drop: put `feature_id` into `target_lane` at `target_index` (end when None)."""
    feature_id: str
    target_lane: Lane
    target_index: int | None = None


@dataclass
class MoveResult:
    feature_id: str
    source: Lane
    target: Lane
    changed: bool = False
    changed_ids: list[str] = field(default_factory=list)
    writes: list[FieldUpdate] = field(default_factory=list)
    report: CommitReport | None = None
