"""
FastAPI application: HTTP host for the catalog engine.

The admin UI and the shopper menu send their events here. Every endpoint
turns a request into one engine call; the business rules live in features/.

Endpoints:
  GET    /health                          Health check
  GET    /lanes                           Lane key -> ordered members
  POST   /placement/intents               Drop a feature into a lane
  POST   /placement/reorder               Reorder within a lane
  POST   /features/{id}/connector         Flip AND/OR
  POST   /features/{id}/duplicate         Copy into a package lane
  POST   /features/{id}/publish           Publish to the catalog
  DELETE /features/{id}/publish           Take out of the catalog
  PUT    /features/{id}/catalog-price     Set the catalog price
  PUT    /features/{id}/pick2             Pick-2 metadata
  GET    /pick2/config                    Bundle settings and presets
  PUT    /pick2/config                    Update bundle settings
  PUT    /pick2/pairs                     Replace recommended pairs
  POST   /pick2/sessions                  Start a shopper selection
  GET    /pick2/sessions/{sid}            Selection state
  DELETE /pick2/sessions/{sid}            Discard a selection
  POST   /pick2/sessions/{sid}/{action}   select | remove | swap | preset | clear
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

import config
from features.catalog_sync import PublishOverrides
from features.engine import CatalogEngine, build_engine
from features.errors import CatalogError, PlacementBusy, UnknownItem, ValidationError
from features.pick2 import Pick2SelectionController, RecommendedPair, save_pick2_settings, save_recommended_pairs
from features.placement import Lane, MoveResult, ReorderIntent
from models.catalog import Feature
from utils.docstore import MemoryDocumentStore, StoreError, build_store

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)

engine: CatalogEngine | None = None
sessions: OrderedDict[str, Pick2SelectionController] = OrderedDict()


@asynccontextmanager
async def lifespan(app: FastAPI):
    global engine
    try:
        store = build_store()
    except StoreError as e:
        log.warning("Could not connect to Postgres: %s (catalog will be in-memory only)", e)
        store = MemoryDocumentStore()
    engine = await build_engine(store)
    log.info("Catalog loaded: %d features, %d options", len(engine.state.features), len(engine.state.options))
    yield
    sessions.clear()


app = FastAPI(
    title="Catalog Engine",
    description="Protection package placement, catalog sync and Pick-2 bundles",
    version="1.0.0",
    lifespan=lifespan,
)


def _engine() -> CatalogEngine:
    if engine is None:
        raise HTTPException(status_code=503, detail="Catalog is still loading")
    return engine


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    if isinstance(exc, ValidationError):
        status = 422
    elif isinstance(exc, UnknownItem):
        status = 404
    elif isinstance(exc, PlacementBusy):
        status = 409
    else:
        status = 503
    body: dict[str, Any] = {"error": str(exc), "recoverable": exc.recoverable}
    if hasattr(exc, "feature_id"):
        body["featureId"] = exc.feature_id
    if hasattr(exc, "partially_applied"):
        body["partiallyApplied"] = exc.partially_applied
    return JSONResponse(status_code=status, content=body)


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _feature_summary(feature: Feature) -> dict:
    option = _engine().state.option(feature.id)
    return {
        "id": feature.id,
        "name": feature.name,
        "position": feature.position,
        "column": feature.column,
        "connector": feature.connector.value if feature.connector else None,
        "publishToCatalog": feature.publish_to_catalog,
        "price": feature.price,
        "catalogPrice": option.price if option and option.is_published else feature.catalog_price,
    }


def _move_response(result: MoveResult) -> dict:
    return {
        "featureId": result.feature_id,
        "source": result.source.key,
        "target": result.target.key,
        "changed": result.changed,
        "changedIds": result.changed_ids,
        "writes": len(result.writes),
        "commit": result.report.summary() if result.report else None,
    }


# ── Health ────────────────────────────────────────────────────────────

@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": "catalog-engine",
        "store": type(engine.store).__name__ if engine else None,
    }


# ── Placement ─────────────────────────────────────────────────────────

class IntentRequest(_Body):
    feature_id: str = Field(alias="featureId")
    target_lane: str = Field(alias="targetLane")
    target_index: int | None = Field(default=None, alias="targetIndex", ge=0)


class ReorderRequest(_Body):
    lane: str
    from_index: int = Field(alias="fromIndex", ge=0)
    to_index: int = Field(alias="toIndex", ge=0)


class DuplicateRequest(_Body):
    column: int


@app.get("/lanes")
def list_lanes():
    return {lane.key: [_feature_summary(f) for f in members] for lane, members in _engine().state.lanes().items()}


@app.post("/placement/intents")
async def place_feature(req: IntentRequest):
    intent = ReorderIntent(req.feature_id, Lane.parse(req.target_lane), req.target_index)
    return _move_response(await _engine().placement.handle_intent(intent))


@app.post("/placement/reorder")
async def reorder_lane(req: ReorderRequest):
    result = await _engine().placement.reorder(Lane.parse(req.lane), req.from_index, req.to_index)
    return _move_response(result)


@app.post("/features/{feature_id}/connector")
async def toggle_connector(feature_id: str):
    return _feature_summary(await _engine().placement.toggle_connector(feature_id))


@app.post("/features/{feature_id}/duplicate")
async def duplicate_feature(feature_id: str, req: DuplicateRequest):
    return _feature_summary(await _engine().placement.duplicate_to_lane(feature_id, req.column))


# ── Catalog sync ──────────────────────────────────────────────────────

class PublishRequest(_Body):
    price: float | None = None
    warranty: str | None = None
    is_new: bool | None = Field(default=None, alias="isNew")


class CatalogPriceRequest(_Body):
    price: float


class Pick2MetadataRequest(_Body):
    eligible: bool | None = None
    sort: float | None = None
    short_value: str | None = Field(default=None, alias="shortValue")
    highlights: list[str] | None = None


@app.post("/features/{feature_id}/publish")
async def publish_feature(feature_id: str, req: PublishRequest | None = None):
    req = req or PublishRequest()
    overrides = PublishOverrides(price=req.price, warranty=req.warranty, is_new=req.is_new)
    option = await _engine().publish(feature_id, overrides)
    return {"id": option.id, **option.to_doc()}


@app.delete("/features/{feature_id}/publish")
async def unpublish_feature(feature_id: str):
    result = await _engine().unpublish(feature_id)
    return {"featureId": feature_id, "published": False, "move": _move_response(result) if result else None}


@app.put("/features/{feature_id}/catalog-price")
async def set_catalog_price(feature_id: str, req: CatalogPriceRequest):
    return _feature_summary(await _engine().sync.update_catalog_price(feature_id, req.price))


@app.put("/features/{feature_id}/pick2")
async def set_pick2_metadata(feature_id: str, req: Pick2MetadataRequest):
    # Only fields present in the body are changed; explicit nulls clear
    kwargs = {name: getattr(req, name) for name in req.model_fields_set}
    if kwargs.get("eligible", False) is None:
        del kwargs["eligible"]
    option = await _engine().sync.update_pick2_metadata(feature_id, **kwargs)
    return {"featureId": feature_id, "option": {"id": option.id, **option.to_doc()} if option else None}


# ── Pick-2 configuration ──────────────────────────────────────────────

class Pick2SettingsRequest(_Body):
    enabled: bool | None = None
    price: float | None = None
    title: str | None = None
    subtitle: str | None = None


class PairBody(_Body):
    label: str = ""
    option_ids: list[str] = Field(default_factory=list, alias="optionIds")


class PairsRequest(_Body):
    pairs: list[PairBody]
    featured_label: str | None = Field(default=None, alias="featuredLabel")


def _config_response() -> dict:
    eng = _engine()
    eligible = [o.id for o in eng.state.pick2_eligible()]
    cfg = eng.pick2_config
    featured = cfg.featured_preset(eligible)
    return {
        **cfg.to_doc(),
        "presets": [p.to_doc() for p in cfg.presets(eligible)],
        "featuredPreset": featured.to_doc() if featured else None,
        "eligible": eligible,
    }


@app.get("/pick2/config")
def get_pick2_config():
    return _config_response()


@app.put("/pick2/config")
async def update_pick2_config(req: Pick2SettingsRequest):
    eng = _engine()
    eng.pick2_config = await save_pick2_settings(
        eng.store, eng.pick2_config,
        enabled=req.enabled, price=req.price, title=req.title, subtitle=req.subtitle,
    )
    return _config_response()


@app.put("/pick2/pairs")
async def update_recommended_pairs(req: PairsRequest):
    eng = _engine()
    draft = [RecommendedPair(label=p.label, option_ids=tuple(p.option_ids)) for p in req.pairs]
    eng.pick2_config = await save_recommended_pairs(eng.store, eng.pick2_config, draft, req.featured_label)
    return _config_response()


# ── Pick-2 sessions ───────────────────────────────────────────────────

class SessionAction(_Body):
    option_id: str | None = Field(default=None, alias="optionId")
    remove_id: str | None = Field(default=None, alias="removeId")
    add_id: str | None = Field(default=None, alias="addId")
    label: str | None = None


def _session(session_id: str) -> Pick2SelectionController:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    sessions.move_to_end(session_id)
    eng = _engine()
    session.refresh(eng.state.pick2_eligible(), eng.pick2_config)
    return session


def _require(value: str | None, name: str) -> str:
    if not value:
        raise ValidationError(f"'{name}' is required")
    return value


@app.post("/pick2/sessions")
def start_session():
    session_id = uuid.uuid4().hex
    sessions[session_id] = _engine().new_pick2_session()
    while len(sessions) > config.MAX_PICK2_SESSIONS:
        expired, _ = sessions.popitem(last=False)
        log.info("[PICK2] Session limit reached, dropped %s", expired)
    return {"sessionId": session_id, **sessions[session_id].to_dict()}


@app.get("/pick2/sessions/{session_id}")
def get_session(session_id: str):
    return {"sessionId": session_id, **_session(session_id).to_dict()}


@app.delete("/pick2/sessions/{session_id}")
def end_session(session_id: str):
    if sessions.pop(session_id, None) is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"sessionId": session_id, "deleted": True}


@app.post("/pick2/sessions/{session_id}/{action}")
def session_action(session_id: str, action: str, req: SessionAction | None = None):
    session = _session(session_id)
    req = req or SessionAction()
    if action == "select":
        session.select(_require(req.option_id, "optionId"))
    elif action == "remove":
        session.remove(_require(req.option_id, "optionId"))
    elif action == "swap":
        session.swap(_require(req.remove_id, "removeId"), _require(req.add_id, "addId"))
    elif action == "preset":
        session.apply_preset_label(_require(req.label, "label"))
    elif action == "clear":
        session.clear()
    else:
        raise HTTPException(status_code=404, detail=f"Unknown action: {action}")
    return {"sessionId": session_id, **session.to_dict()}
