"""
Pick-2 selection: a shopper picks exactly two eligible items for one price.

The selection holds at most PICK2_CAPACITY ids. Picking a third item is
blocked with a message rather than silently replacing one; the shopper must
remove an item first (or use swap). The bundle is charged once, at the
configured price, and only when the selection is complete.
"""

from __future__ import annotations

import logging
from typing import Iterable

import config
from features.errors import ValidationError
from features.pick2.models import Pick2Config, RecommendedPair, SelectionStatus
from models.catalog import CatalogOption

log = logging.getLogger(__name__)

BLOCKED_MESSAGE = "You've selected 2. Remove one to swap."


class Pick2SelectionController:
    def __init__(self, cfg: Pick2Config, items: Iterable[CatalogOption], capacity: int | None = None):
        self.config = cfg
        self.capacity = capacity or config.PICK2_CAPACITY
        self.items: dict[str, CatalogOption] = {}
        self.selected: list[str] = []
        self.message: str | None = None
        self.refresh(items)

    def refresh(self, items: Iterable[CatalogOption], cfg: Pick2Config | None = None) -> None:
        """Swap in a new eligible set; selected items that lost eligibility are dropped."""
        if cfg is not None:
            self.config = cfg
        self.items = {o.id: o for o in items if o.pick2_eligible}
        kept = [oid for oid in self.selected if oid in self.items]
        if kept != self.selected:
            log.info("[PICK2] Dropped %d selection(s) no longer eligible", len(self.selected) - len(kept))
            self.selected = kept
            self.message = None

    # ── transitions ──

    def select(self, item_id: str) -> bool:
        """Add an item. Returns False when nothing changed (already selected or blocked).

        Picking an item that is already selected is a no-op even at capacity:
        nothing would be displaced, so the blocked message is not shown.
        """
        self._require_enabled()
        if item_id in self.selected:
            return False
        if len(self.selected) >= self.capacity:
            self.message = BLOCKED_MESSAGE
            return False
        self._require_eligible(item_id)
        self.selected.append(item_id)
        self.message = None
        return True

    def remove(self, item_id: str) -> bool:
        self.message = None
        if item_id not in self.selected:
            return False
        self.selected.remove(item_id)
        return True

    def swap(self, remove_id: str, add_id: str) -> bool:
        removed = self.remove(remove_id)
        added = self.select(add_id)
        return removed or added

    def apply_preset(self, pair: RecommendedPair) -> None:
        self._require_enabled()
        if not pair.is_valid(self.items):
            raise ValidationError(f"Preset '{pair.label}' is not available")
        self.selected = list(pair.option_ids)
        self.message = None

    def apply_preset_label(self, label: str) -> None:
        wanted = label.strip().lower()
        for pair in self.config.presets(self.items):
            if pair.label.lower() == wanted:
                self.apply_preset(pair)
                return
        raise ValidationError(f"Preset '{label}' is not available")

    def clear(self) -> None:
        self.selected = []
        self.message = None

    # ── derived ──

    @property
    def is_complete(self) -> bool:
        return len(self.selected) == self.capacity

    @property
    def status(self) -> SelectionStatus:
        if self.message:
            return SelectionStatus.BLOCKED
        if self.is_complete:
            return SelectionStatus.COMPLETE
        return SelectionStatus.PARTIAL if self.selected else SelectionStatus.EMPTY

    @property
    def total_contribution(self) -> float:
        """What the bundle adds to the order total: the bundle price once complete, else 0."""
        return self.config.price if self.is_complete else 0.0

    @property
    def retail_value(self) -> float:
        return sum(self.items[oid].price for oid in self.selected)

    @property
    def bundle_cost(self) -> float:
        return sum(self.items[oid].cost for oid in self.selected)

    @property
    def savings(self) -> float:
        if not self.is_complete:
            return 0.0
        return max(0.0, self.retail_value - self.config.price)

    @property
    def summary_text(self) -> str:
        if self.is_complete:
            return " + ".join(self.items[oid].name for oid in self.selected)
        return f"{len(self.selected)}/{self.capacity}"

    def to_dict(self) -> dict:
        return {
            "selected": list(self.selected),
            "status": self.status.value,
            "message": self.message,
            "isComplete": self.is_complete,
            "totalContribution": self.total_contribution,
            "bundleCost": self.bundle_cost,
            "savings": self.savings,
            "summary": self.summary_text,
        }

    # ── checks ──

    def _require_enabled(self) -> None:
        if not self.config.enabled:
            raise ValidationError("The Pick-2 bundle is not available right now")

    def _require_eligible(self, item_id: str) -> None:
        if item_id not in self.items:
            raise ValidationError(f"{item_id} is not eligible for the Pick-2 bundle")
