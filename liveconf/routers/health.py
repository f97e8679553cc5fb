"""Health / readiness endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    """Readiness probe: 200 once every domain has a snapshot, 503 before."""
    engine = request.app.state.engine
    ready = engine is not None and engine.is_ready()
    body = {
        "status": "ok" if ready else "starting",
        "ready": ready,
        "watch": engine.watch_strategy if engine is not None else None,
    }
    return JSONResponse(body, status_code=200 if ready else 503)
