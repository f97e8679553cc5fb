"""Current configuration, forced reload, feature lookup, and live update stream."""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect

from liveconf.documents import document_to_dict
from liveconf.domains import Domain
from liveconf.engine import ConfigEngine
from liveconf.errors import NotInitialized
from liveconf.features import FeatureState, feature_state, parse_feature_key

router = APIRouter(prefix="/api/config", tags=["config"])


def get_engine(request: Request) -> ConfigEngine:
    engine = request.app.state.engine
    if engine is None:
        raise HTTPException(status_code=503, detail="configuration not loaded")
    return engine


def _document(engine: ConfigEngine, domain: Domain) -> dict:
    try:
        return document_to_dict(engine.get_document(domain))
    except NotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.get("/current")
async def current_configurations(engine: ConfigEngine = Depends(get_engine)) -> dict:
    """All documents keyed by domain (app, business, ui, features)."""
    return {d.value: _document(engine, d) for d in engine.domains}


@router.post("/reload")
async def force_reload(engine: ConfigEngine = Depends(get_engine)) -> dict:
    """Reload every domain now. Per-domain status; 200 even when some domains failed."""
    results = await asyncio.to_thread(engine.force_reload_all)
    domains = {d.value: outcome.to_dict() for d, outcome in results.items()}
    ok = all(outcome.ok for outcome in results.values())
    return {"status": "ok" if ok else "partial", "domains": domains}


@router.get("/feature/{feature}")
async def feature_enabled(feature: str, engine: ConfigEngine = Depends(get_engine)) -> dict:
    """Whether a feature flag is on; 404 for a name that is not a known flag."""
    key = parse_feature_key(feature)
    if key is None:
        raise HTTPException(status_code=404, detail=f"unknown feature: {feature}")
    try:
        flags = engine.get_document(Domain.FEATURE_FLAGS)
    except NotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return {"feature": key.value, "enabled": feature_state(flags, key) is FeatureState.ENABLED}


@router.websocket("/updates")
async def config_updates(websocket: WebSocket) -> None:
    """Push a message for every successful reload until the client disconnects."""
    hub = websocket.app.state.hub
    await hub.connect(websocket)
    try:
        while True:
            # Clients do not send anything meaningful; receiving detects disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)


@router.get("/{domain}")
async def domain_snapshot(domain: str, engine: ConfigEngine = Depends(get_engine)) -> dict:
    """One document with its version metadata and the version it replaced."""
    try:
        d = Domain.parse(domain)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    if d not in engine.domains:
        raise HTTPException(status_code=404, detail=f"domain not served: {d.value}")
    try:
        snapshot = engine.get_snapshot(d)
    except NotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    previous = engine.previous_snapshot(d)
    return {
        "domain": d.value,
        "version": snapshot.source_version,
        "loaded_at": snapshot.loaded_at.isoformat(),
        "previous_version": previous.source_version if previous else None,
        "config": document_to_dict(snapshot.document),
    }
