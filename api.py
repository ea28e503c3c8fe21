"""Local HTTP endpoints for the desktop UI.

This module exposes the Bridge over HTTP:
- /api/auth/*: login status, start the browser login, logout
- /api/stream/*: start, stop, stats and status of the stream session

Failures use the Bridge's ``{"success": false, "error": ...}`` body with an
HTTP status picked from the error code.
"""

import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Router for UI endpoints
router = APIRouter(prefix="/api", tags=["bridge"])

# Bridge instance - set by init_api_routes()
_bridge = None

ERROR_STATUS = {
    "configuration_error": 400,
    "validation_error": 400,
    "listener_bind_error": 409,
    "already_active": 409,
    "not_active": 409,
    "engine_error": 502,
}


def init_api_routes(bridge):
    """Initialize API routes with the app's Bridge.

    Must be called before including the router in the app.
    """
    global _bridge
    _bridge = bridge


def get_bridge():
    if _bridge is None:
        raise RuntimeError("init_api_routes() was not called")
    return _bridge


def respond(result: dict) -> JSONResponse:
    """Turn a Bridge result into a JSON response."""
    if result.get("success", False) or "error" not in result:
        return JSONResponse(result)
    return JSONResponse(result, status_code=ERROR_STATUS.get(result["error"], 500))


class StreamSettings(BaseModel):
    bitrate_kbps: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    fps: Optional[int] = None


# ============== Auth ==============

@router.get("/auth/status")
def auth_status():
    """Whether this process holds tokens."""
    return {"authenticated": get_bridge().auth_status()}


@router.post("/auth/start")
def auth_start():
    """Open the provider login in the system browser."""
    logger.info("[API] Authorization requested")
    return respond(get_bridge().start_authorization())


@router.post("/auth/logout")
def auth_logout():
    return respond(get_bridge().logout())


# ============== Streaming ==============

@router.post("/stream/start")
def stream_start(settings: Optional[StreamSettings] = None):
    """Start streaming. Omitted fields use the configured defaults."""
    data = settings.model_dump(exclude_none=True) if settings else {}
    return respond(get_bridge().start_stream(data))


@router.post("/stream/stop")
def stream_stop():
    return respond(get_bridge().stop_stream())


@router.get("/stream/stats")
def stream_stats():
    return respond(get_bridge().get_stats())


@router.get("/stream/status")
def stream_status():
    return {"status": get_bridge().stream_status()}
