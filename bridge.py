"""UI-facing surface over the auth flow and the stream controller.

Every call returns a plain dict: ``{"success": True, ...}`` or
``{"success": False, "error": <code>, "error_description": <message>}``.
Core exceptions never cross this boundary.
"""

import logging
import threading
from typing import Callable

from config import Config, load_config
from errors import NotActiveError, SlumpError
from events import EventChannel
from oauth.flow import AuthOrchestrator
from oauth.stores import SessionStore
from streaming.controller import StreamConfig, StreamingController, StreamStatus
from streaming.engine import load_engine

logger = logging.getLogger(__name__)


def error_response(error: SlumpError) -> dict:
    return {"success": False, "error": error.code, "error_description": error.description}


class Bridge:
    """Owns one SessionStore, one AuthOrchestrator and, lazily, one StreamingController.

    ``engine_factory`` is only called on the first stream operation, so a
    missing native module surfaces as an ``engine_error`` result instead of a
    startup failure.
    """

    def __init__(
        self,
        config: Config = None,
        store: SessionStore = None,
        orchestrator: AuthOrchestrator = None,
        controller: StreamingController = None,
        engine_factory: Callable = None,
    ):
        self.config = config or load_config()
        self.store = store or SessionStore()
        self.orchestrator = orchestrator or AuthOrchestrator(self.store, config=self.config)
        self._controller = controller
        self._controller_lock = threading.Lock()
        self._engine_factory = engine_factory or (lambda: load_engine(self.config.engine_module))
        self.stream_status_changed = EventChannel("bridge_stream_status")
        if controller is not None:
            controller.on_status_changed(self.stream_status_changed.emit)

    # ============== Auth ==============

    def auth_status(self) -> bool:
        return self.store.status()

    def start_authorization(self) -> dict:
        try:
            self.orchestrator.start_authorization()
        except SlumpError as e:
            logger.warning(f"[BRIDGE] start_authorization failed: {e.code}: {e}")
            return error_response(e)
        return {"success": True}

    def logout(self) -> dict:
        self.orchestrator.cancel()
        self.store.logout()
        logger.info("[BRIDGE] Logged out")
        return {"success": True}

    def on_authenticated(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self.orchestrator.on_authenticated(callback)

    def on_auth_failed(self, callback: Callable[[dict], None]) -> Callable[[], None]:
        """Failures are delivered in the same dict shape as call results.

        ``logout()`` cancels a pending or in-flight login without a failure
        event; its own result is the outcome.
        """
        return self.orchestrator.on_auth_failed(lambda error: callback(error_response(error)))

    # ============== Streaming ==============

    def controller(self) -> StreamingController:
        """The stream controller, created on first use. Raises EngineError."""
        with self._controller_lock:
            if self._controller is None:
                engine = self._engine_factory()
                controller = StreamingController(
                    engine,
                    poll_interval=self.config.stats_interval,
                    max_poll_failures=self.config.max_poll_failures,
                )
                controller.on_status_changed(self.stream_status_changed.emit)
                self._controller = controller
        return self._controller

    def on_stream_status(self, callback: Callable[[StreamStatus], None]) -> Callable[[], None]:
        """Subscribe to stream status changes, even before the engine is loaded."""
        return self.stream_status_changed.subscribe(callback)

    def stream_status(self) -> str:
        if self._controller is None:
            return StreamStatus.IDLE.value
        return self._controller.status.value

    def start_stream(self, settings: dict = None) -> dict:
        """Start streaming; missing settings fall back to the configured defaults."""
        merged = self.config.stream_defaults()
        merged.update({k: v for k, v in (settings or {}).items() if v is not None})
        try:
            config = StreamConfig.from_dict(merged).validate()
            self.controller().start_stream(config)
        except SlumpError as e:
            logger.warning(f"[BRIDGE] start_stream failed: {e.code}: {e}")
            return error_response(e)
        return {"success": True, "status": self.stream_status(), "config": merged}

    def stop_stream(self) -> dict:
        if self._controller is None:
            return {"success": False, "status": StreamStatus.IDLE.value}
        stopped = self._controller.stop_stream()
        return {"success": stopped, "status": self.stream_status()}

    def get_stats(self) -> dict:
        if self._controller is None:
            return error_response(NotActiveError())
        try:
            stats = self._controller.get_stats()
        except SlumpError as e:
            return error_response(e)
        return {"success": True, **stats.to_dict()}

    # ============== Teardown ==============

    def shutdown(self) -> None:
        """Stop the stream and drop any pending authorization."""
        if self._controller is not None:
            self._controller.shutdown()
        self.orchestrator.shutdown()
        logger.info("[BRIDGE] Shut down")

