"""
Catalog loading and load-time normalization.

Stored documents can predate the single column/position model: some carry a
`columns` list with per-column positions, some use the a la carte field
names, and positions drift when edits fail half way. load_catalog reads both
collections, repairs what it finds in memory and returns the writes that
would make the store match.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field

import config
from features.placement.lanes import classify
from features.placement.ordering import normalize_positions
from features.placement.state import CatalogState
from models.catalog import CatalogOption, Feature, changed_fields
from models.schemas import CatalogOptionDoc, FeatureDoc, validate_documents
from utils.docstore import DELETE_FIELD, DocumentStore, FieldUpdate

log = logging.getLogger(__name__)

# Legacy feature key -> the key that replaces it
LEGACY_FEATURE_KEYS = {
    "columns": "column",
    "positionsByColumn": "position",
    "publishToAlaCarte": "publishToCatalog",
    "alaCartePrice": "catalogPrice",
    "alaCarteWarranty": "catalogWarrantyOverride",
    "alaCarteIsNew": "isNew",
}


@dataclass
class LoadResult:
    state: CatalogState
    repairs: list[FieldUpdate] = field(default_factory=list)
    skipped: int = 0


def fold_legacy_placement(doc: dict) -> dict:
    """Resolve `columns` / `positionsByColumn` into one column and position.

    The first entry of `columns` wins when present; otherwise `column` is used.
    """
    doc = dict(doc)
    columns = doc.pop("columns", None) or []
    positions = doc.pop("positionsByColumn", None) or {}
    column = columns[0] if columns else doc.get("column")
    if column is None:
        doc.pop("column", None)
    else:
        doc["column"] = column
    if column is not None and str(column) in positions:
        doc["position"] = positions[str(column)]
    if doc.get("column") not in config.PACKAGE_COLUMNS:
        doc.pop("column", None)
    return doc


def _align_feature(feature: Feature, option: CatalogOption | None) -> tuple[Feature, CatalogOption | None]:
    lane = classify(feature, option)
    if lane.is_package and option is not None and option.is_published:
        log.warning("[LOAD] %s is in %s but also published; unpublishing", feature.id, lane)
        option = dataclasses.replace(option, is_published=False)
    if feature.publish_to_catalog != lane.is_catalog:
        feature = dataclasses.replace(feature, publish_to_catalog=lane.is_catalog)
    return feature, option


async def load_catalog(store: DocumentStore) -> LoadResult:
    raw_features = await store.list_documents(config.FEATURES_COLLECTION)
    raw_options = await store.list_documents(config.CATALOG_COLLECTION)
    feature_docs = validate_documents(FeatureDoc, raw_features, config.FEATURES_COLLECTION)
    option_docs = validate_documents(CatalogOptionDoc, raw_options, config.CATALOG_COLLECTION)
    skipped = len(raw_features) - len(feature_docs) + len(raw_options) - len(option_docs)

    raw_by_id = {doc["id"]: doc for doc in raw_features}
    loaded_features = {doc["id"]: Feature.from_doc(fold_legacy_placement(doc)) for doc in feature_docs}
    loaded_options = {doc["id"]: CatalogOption.from_doc(doc) for doc in option_docs}

    features: dict[str, Feature] = {}
    options = dict(loaded_options)
    for fid, feature in loaded_features.items():
        feature, option = _align_feature(feature, options.get(fid))
        features[fid] = feature
        if option is not None:
            options[fid] = option

    state = CatalogState(features.values(), options.values())
    for lane, members in state.lanes().items():
        renumbered = normalize_positions(members)
        mirrored = []
        if lane.is_catalog:
            for member in renumbered:
                option = state.options[member.id]
                if option.position != member.position:
                    mirrored.append(dataclasses.replace(option, position=member.position))
        state.apply(features=renumbered, options=mirrored)

    repairs: list[FieldUpdate] = []
    for fid, feature in state.features.items():
        raw = raw_by_id[fid]
        doc = feature.to_doc()
        fields = changed_fields(loaded_features[fid], feature)
        for key in ("column", "position"):
            if raw.get(key) != doc.get(key):
                fields[key] = doc.get(key, DELETE_FIELD)
        for legacy, canonical in LEGACY_FEATURE_KEYS.items():
            if legacy in raw:
                fields[legacy] = DELETE_FIELD
                if canonical in doc and canonical not in raw:
                    fields.setdefault(canonical, doc[canonical])
        if fields:
            repairs.append(FieldUpdate(config.FEATURES_COLLECTION, fid, fields))
    for oid, option in state.options.items():
        fields = changed_fields(loaded_options[oid], option)
        if fields:
            repairs.append(FieldUpdate(config.CATALOG_COLLECTION, oid, fields))

    log.info(
        "[LOAD] Loaded %d features, %d options (%d invalid skipped, %d repairs needed)",
        len(state.features), len(state.options), skipped, len(repairs),
    )
    return LoadResult(state=state, repairs=repairs, skipped=skipped)
