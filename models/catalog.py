"""
Catalog records shared across features.

Feature is the admin-authored record (`features/{id}`); CatalogOption is its
customer-facing mirror (`ala_carte_options/{id}`), one-to-one by id. Both are
immutable: changes produce new objects via dataclasses.replace, which keeps
in-memory snapshots safe to restore.

Stored documents use camelCase keys; the mapping lives next to each record.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any

import config
from utils.docstore import DELETE_FIELD


class Connector(str, Enum):
    AND = "AND"
    OR = "OR"

    def flipped(self) -> Connector:
        return Connector.OR if self is Connector.AND else Connector.AND


def _to_doc(record: Any, key_map: dict[str, str]) -> dict:
    doc: dict[str, Any] = {}
    for f in fields(record):
        if f.name == "id":
            continue
        value = getattr(record, f.name)
        if value is None:
            continue
        if isinstance(value, tuple):
            value = list(value)
        elif isinstance(value, Enum):
            value = value.value
        doc[key_map.get(f.name, f.name)] = value
    return doc


def _from_doc(cls, doc: dict, key_map: dict[str, str]):
    kwargs: dict[str, Any] = {"id": doc["id"]}
    for f in fields(cls):
        if f.name == "id":
            continue
        key = key_map.get(f.name, f.name)
        if key in doc and doc[key] is not None:
            value = doc[key]
            if isinstance(value, list):
                value = tuple(value)
            kwargs[f.name] = value
    if kwargs.get("connector") is not None:
        kwargs["connector"] = Connector(kwargs["connector"])
    return cls(**kwargs)


def changed_fields(old: Any | None, new: Any) -> dict:
    """Document fields that differ between two records.

    Fields present on `old` but cleared on `new` map to DELETE_FIELD.
    """
    before = old.to_doc() if old is not None else {}
    after = new.to_doc()
    diff = {key: value for key, value in after.items() if before.get(key) != value}
    for key in before:
        if key not in after:
            diff[key] = DELETE_FIELD
    return diff


FEATURE_KEYS = {
    "use_cases": "useCases",
    "publish_to_catalog": "publishToCatalog",
    "catalog_price": "catalogPrice",
    "catalog_warranty_override": "catalogWarrantyOverride",
    "is_new": "isNew",
}

OPTION_KEYS = {
    "use_cases": "useCases",
    "is_new": "isNew",
    "is_published": "isPublished",
    "source_feature_id": "sourceFeatureId",
    "pick2_eligible": "pick2Eligible",
    "pick2_sort": "pick2Sort",
    "short_value": "shortValue",
}


@dataclass(frozen=True)
class Feature:
    """An admin-authored sellable item."""
    id: str
    name: str
    price: float = 0.0
    cost: float = 0.0
    description: str = ""
    points: tuple[str, ...] = ()
    use_cases: tuple[str, ...] = ()
    warranty: str | None = None
    column: int | None = None       # package lane 1..3, None when not in a package
    position: int | None = None
    connector: Connector | None = None
    publish_to_catalog: bool = False
    catalog_price: float | None = None
    catalog_warranty_override: str | None = None
    is_new: bool = False

    @property
    def in_package(self) -> bool:
        return self.column in config.PACKAGE_COLUMNS

    def to_doc(self) -> dict:
        return _to_doc(self, FEATURE_KEYS)

    @classmethod
    def from_doc(cls, doc: dict) -> Feature:
        return _from_doc(cls, doc, FEATURE_KEYS)


@dataclass(frozen=True)
class CatalogOption:
    """The public mirror of a Feature, used for a la carte and Pick-2 display."""
    id: str
    name: str
    price: float = 0.0
    cost: float = 0.0
    description: str = ""
    points: tuple[str, ...] = ()
    use_cases: tuple[str, ...] = ()
    warranty: str | None = None
    is_new: bool = False
    is_published: bool = False
    column: int | None = None       # 1..3 display category, 4 = featured
    position: int | None = None
    connector: Connector | None = None
    source_feature_id: str | None = None
    pick2_eligible: bool = False
    pick2_sort: float | None = None
    short_value: str | None = None
    highlights: tuple[str, ...] = ()

    @property
    def is_featured(self) -> bool:
        return self.is_published and self.column == config.FEATURED_COLUMN

    def to_doc(self) -> dict:
        return _to_doc(self, OPTION_KEYS)

    @classmethod
    def from_doc(cls, doc: dict) -> CatalogOption:
        return _from_doc(cls, doc, OPTION_KEYS)
