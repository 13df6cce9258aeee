"""
Pydantic schemas for documents read from the store.

Loading validates every raw document before it becomes a catalog record.
Invalid documents are logged and skipped so one bad record never blocks the
rest of the catalog from loading. Older documents used a la carte field
names (publishToAlaCarte, alaCartePrice, ...); those are accepted as aliases.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

log = logging.getLogger(__name__)


class _Doc(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class FeatureDoc(_Doc):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    price: float = Field(default=0.0, ge=0)
    cost: float = Field(default=0.0, ge=0)
    description: str = ""
    points: list[str] = Field(default_factory=list)
    useCases: list[str] = Field(default_factory=list)
    warranty: str | None = None
    column: int | None = Field(default=None, ge=1, le=4)
    position: int | None = Field(default=None, ge=0)
    connector: Literal["AND", "OR"] | None = None
    publishToCatalog: bool = Field(
        default=False, validation_alias=AliasChoices("publishToCatalog", "publishToAlaCarte"),
    )
    catalogPrice: float | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("catalogPrice", "alaCartePrice"),
    )
    catalogWarrantyOverride: str | None = Field(
        default=None, validation_alias=AliasChoices("catalogWarrantyOverride", "alaCarteWarranty"),
    )
    isNew: bool = Field(default=False, validation_alias=AliasChoices("isNew", "alaCarteIsNew"))

    # Legacy multi-lane fields, folded into column/position at load time
    columns: list[int] | None = None
    positionsByColumn: dict[str, int] | None = None


class CatalogOptionDoc(_Doc):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    price: float = Field(default=0.0, ge=0)
    cost: float = Field(default=0.0, ge=0)
    description: str = ""
    points: list[str] = Field(default_factory=list)
    useCases: list[str] = Field(default_factory=list)
    warranty: str | None = None
    isNew: bool = False
    isPublished: bool = False
    column: int | None = Field(default=None, ge=1, le=4)
    position: int | None = Field(default=None, ge=0)
    connector: Literal["AND", "OR"] | None = None
    sourceFeatureId: str | None = None
    pick2Eligible: bool = False
    pick2Sort: float | None = Field(default=None, ge=0)
    shortValue: str | None = None
    highlights: list[str] = Field(default_factory=list, max_length=2)


class RecommendedPairDoc(_Doc):
    label: str = ""
    optionIds: list[str] = Field(default_factory=list)


class Pick2ConfigDoc(_Doc):
    enabled: bool = False
    price: float = Field(default=0.0, ge=0)
    title: str | None = None
    subtitle: str | None = None
    recommendedPairs: list[RecommendedPairDoc] = Field(default_factory=list)
    presetOrder: list[str] = Field(default_factory=list)
    featuredPresetLabel: str | None = None


def validate_documents(schema: type[_Doc], docs: list[dict], context: str = "") -> list[dict]:
    """Validate raw documents, dropping (and logging) the ones that fail."""
    valid: list[dict] = []
    for index, doc in enumerate(docs):
        try:
            valid.append(schema.model_validate(doc).model_dump(exclude_none=True))
        except SchemaError as e:
            log.error(
                "Validation error in %s for item %d (%s): %s",
                context or schema.__name__, index, doc.get("id", "?"), e.errors(),
            )
    return valid
