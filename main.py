"""Slump local API - runs next to the desktop UI.

This server:
- Exposes the Bridge (login, logout, stream control, stats) under /api
- Streams login and stream notifications on /events
- Binds to the loopback interface only

Tokens live in this process only; restarting it logs the user out.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import router as api_router, init_api_routes
from bridge import Bridge
from config import load_config, load_env
from middleware import OriginGuardMiddleware
from sse import router as sse_router, init_sse_routes

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(bridge: Optional[Bridge] = None) -> FastAPI:
    """Build the FastAPI app around ``bridge`` (a new one by default)."""
    bridge = bridge or Bridge(load_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[STARTUP] Local API ready")
        yield
        # Process teardown: no poll thread or listener may outlive the app
        bridge.shutdown()

    app = FastAPI(
        title="Slump",
        description="Desktop login and stream control for the Slump UI",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.bridge = bridge

    # The renderer is loaded from file:// or a dev server
    allowed_origins = bridge.config.allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )
    # Added last so it runs first
    app.add_middleware(OriginGuardMiddleware, allowed_origins=allowed_origins)

    init_api_routes(bridge)
    app.include_router(api_router)
    init_sse_routes(bridge)
    app.include_router(sse_router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "slump"}

    @app.get("/")
    async def root():
        """Root endpoint with server info."""
        return {
            "name": "Slump",
            "version": VERSION,
            "authenticated": bridge.auth_status(),
            "stream_status": bridge.stream_status(),
            "endpoints": {
                "auth": "/api/auth",
                "stream": "/api/stream",
                "events": "/events",
            },
        }

    return app


def run(host: str = None, port: int = None) -> None:
    """Serve the local API with uvicorn."""
    import uvicorn

    config = load_config()
    host = host or config.api_host
    port = port or config.api_port
    logger.info(f"[STARTUP] Serving local API on http://{host}:{port}")
    uvicorn.run(create_app(Bridge(config)), host=host, port=port, log_config=None)


if __name__ == "__main__":
    from logging_config import setup_logging

    load_env()
    _config = load_config()
    setup_logging(_config.log_level, _config.log_file)
    run()
