"""
Data models for the Pick-2 bundle: its configuration and recommended pairs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


@dataclass(frozen=True)
class RecommendedPair:
    label: str
    option_ids: tuple[str, ...]

    def is_valid(self, eligible_ids: Iterable[str]) -> bool:
        """Two distinct ids, both currently Pick-2 eligible."""
        eligible = set(eligible_ids)
        return (
            len(self.option_ids) == 2
            and self.option_ids[0] != self.option_ids[1]
            and all(oid in eligible for oid in self.option_ids)
        )

    def to_doc(self) -> dict:
        return {"label": self.label, "optionIds": list(self.option_ids)}

    @classmethod
    def from_doc(cls, doc: dict) -> RecommendedPair:
        return cls(label=doc.get("label", ""), option_ids=tuple(doc.get("optionIds") or ()))


@dataclass(frozen=True)
class Pick2Config:
    """The `app_config/pick2` singleton."""
    enabled: bool = False
    price: float = 0.0
    title: str | None = None
    subtitle: str | None = None
    recommended_pairs: tuple[RecommendedPair, ...] = ()
    preset_order: tuple[str, ...] = ()
    featured_preset_label: str | None = None

    def presets(self, eligible_ids: Iterable[str]) -> list[RecommendedPair]:
        """Valid recommended pairs, in preset order first, then in stored order."""
        eligible = set(eligible_ids)
        valid = [p for p in self.recommended_pairs if p.is_valid(eligible)]
        rank = {label.lower(): i for i, label in enumerate(self.preset_order)}
        return sorted(valid, key=lambda p: rank.get(p.label.lower(), len(rank)))

    def featured_preset(self, eligible_ids: Iterable[str]) -> RecommendedPair | None:
        if not self.featured_preset_label:
            return None
        wanted = self.featured_preset_label.lower()
        return next((p for p in self.presets(eligible_ids) if p.label.lower() == wanted), None)

    def to_doc(self) -> dict:
        doc = {
            "enabled": self.enabled,
            "price": self.price,
            "recommendedPairs": [p.to_doc() for p in self.recommended_pairs],
            "presetOrder": list(self.preset_order),
        }
        for key, value in (("title", self.title), ("subtitle", self.subtitle),
                           ("featuredPresetLabel", self.featured_preset_label)):
            if value is not None:
                doc[key] = value
        return doc

    @classmethod
    def from_doc(cls, doc: dict) -> Pick2Config:
        return cls(
            enabled=bool(doc.get("enabled", False)),
            price=float(doc.get("price", 0.0)),
            title=doc.get("title"),
            subtitle=doc.get("subtitle"),
            recommended_pairs=tuple(RecommendedPair.from_doc(p) for p in doc.get("recommendedPairs") or ()),
            preset_order=tuple(doc.get("presetOrder") or ()),
            featured_preset_label=doc.get("featuredPresetLabel"),
        )


class SelectionStatus(str, Enum):
    EMPTY = "empty"
    PARTIAL = "partial"
    COMPLETE = "complete"
    BLOCKED = "blocked"
