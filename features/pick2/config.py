"""
Pick-2 configuration persistence (`app_config/pick2`).

Saves compute the new config first, write it with a merge and only then
return it; on failure the caller's config object is untouched.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Iterable

import config
from features.errors import PersistenceError
from features.pick2.models import Pick2Config, RecommendedPair
from features.validation import clean_text, require_amount
from models.schemas import Pick2ConfigDoc, validate_documents
from utils.docstore import DELETE_FIELD, DocumentStore, StoreError

log = logging.getLogger(__name__)


async def load_pick2_config(store: DocumentStore) -> Pick2Config:
    doc = await store.get(config.APP_CONFIG_COLLECTION, config.PICK2_CONFIG_DOC_ID)
    if doc is None:
        log.info("[PICK2] No config document, using defaults (disabled)")
        return Pick2Config()
    valid = validate_documents(Pick2ConfigDoc, [doc], "pick2 config")
    if not valid:
        return Pick2Config()
    return Pick2Config.from_doc(valid[0])


async def _write(store: DocumentStore, fields: dict[str, Any]) -> None:
    try:
        await store.merge(config.APP_CONFIG_COLLECTION, config.PICK2_CONFIG_DOC_ID, fields)
    except StoreError as e:
        log.error("[PICK2] Failed to save config: %s", e)
        raise PersistenceError("Failed to save Pick-2 settings. Please check your connection.") from e


async def save_pick2_settings(
    store: DocumentStore,
    cfg: Pick2Config,
    enabled: bool | None = None,
    price: float | None = None,
    title: str | None = None,
    subtitle: str | None = None,
) -> Pick2Config:
    """Update the bundle switch, price and headings. None leaves a value as is; blank text clears it."""
    changes: dict[str, Any] = {}
    fields: dict[str, Any] = {}
    if enabled is not None:
        changes["enabled"] = fields["enabled"] = bool(enabled)
    if price is not None:
        changes["price"] = fields["price"] = require_amount(price, "Bundle price")
    for name, value in (("title", title), ("subtitle", subtitle)):
        if value is None:
            continue
        cleaned = clean_text(value)
        changes[name] = cleaned
        fields[name] = cleaned if cleaned is not None else DELETE_FIELD

    if not fields:
        return cfg
    await _write(store, fields)
    log.info("[PICK2] Settings saved: %s", sorted(fields))
    return dataclasses.replace(cfg, **changes)


def normalize_pairs(draft: Iterable[RecommendedPair]) -> list[RecommendedPair]:
    """Trim labels and ids, drop incomplete or self-paired entries, keep the first few."""
    pairs: list[RecommendedPair] = []
    for pair in draft:
        label = pair.label.strip()
        ids = tuple(oid.strip() for oid in pair.option_ids)
        if not label or len(ids) != 2 or not all(ids) or ids[0] == ids[1]:
            continue
        pairs.append(RecommendedPair(label=label, option_ids=ids))
    return pairs[:config.MAX_RECOMMENDED_PAIRS]


def build_preset_order(pairs: Iterable[RecommendedPair]) -> list[str]:
    seen: set[str] = set()
    order: list[str] = []
    for pair in pairs:
        key = pair.label.lower()
        if key in seen:
            continue
        seen.add(key)
        order.append(pair.label)
    return order


async def save_recommended_pairs(
    store: DocumentStore,
    cfg: Pick2Config,
    draft: Iterable[RecommendedPair],
    featured_label: str | None = None,
) -> Pick2Config:
    """Replace the recommended pairs.

    The featured preset (the given label, else the current one) is kept only
    if a saved pair still carries that label.
    """
    pairs = normalize_pairs(draft)
    order = build_preset_order(pairs)
    wanted = (featured_label if featured_label is not None else cfg.featured_preset_label or "").strip()
    featured = wanted if wanted and wanted.lower() in {label.lower() for label in order} else None

    await _write(store, {
        "recommendedPairs": [p.to_doc() for p in pairs],
        "presetOrder": order,
        "featuredPresetLabel": featured if featured is not None else DELETE_FIELD,
    })
    log.info("[PICK2] Saved %d recommended pair(s)", len(pairs))
    return dataclasses.replace(
        cfg,
        recommended_pairs=tuple(pairs),
        preset_order=tuple(order),
        featured_preset_label=featured,
    )
