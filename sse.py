"""Server-sent events for the desktop UI.

``GET /events`` streams core notifications as they happen:
- ``authenticated``: a login completed
- ``auth_failed``: a login timed out or the token exchange failed
- ``stream_status``: the stream session changed state

Core callbacks fire on worker threads; they are handed to the event loop
with ``call_soon_threadsafe``.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

# Router for SSE endpoints
router = APIRouter(tags=["sse"])

KEEPALIVE_SECONDS = 15.0

# Bridge instance - set by init_sse_routes()
_bridge = None


def init_sse_routes(bridge):
    """Initialize SSE routes with the app's Bridge.

    Must be called before including the router in the app.
    """
    global _bridge
    _bridge = bridge


def format_event(event: str, data: dict) -> str:
    """Encode one SSE frame."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def subscribe_all(bridge, push) -> list:
    """Wire ``push(event, data)`` to every bridge channel. Returns unsubscribe handles."""
    return [
        bridge.on_authenticated(lambda: push("authenticated", {"authenticated": True})),
        bridge.on_auth_failed(lambda result: push("auth_failed", result)),
        bridge.on_stream_status(lambda status: push("stream_status", {"status": status.value})),
    ]


@router.get("/events")
async def events(request: Request) -> StreamingResponse:
    """Stream notifications until the client disconnects."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def push(event: str, data: dict) -> None:
        if loop.is_closed():
            return
        loop.call_soon_threadsafe(queue.put_nowait, (event, data))

    unsubscribers = subscribe_all(_bridge, push)
    logger.info("[SSE] Client connected")

    async def stream():
        try:
            yield format_event("ready", {"authenticated": _bridge.auth_status(),
                                         "stream_status": _bridge.stream_status()})
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event, data = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield format_event(event, data)
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()
            logger.info("[SSE] Client disconnected")

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
