"""Streaming engine boundary.

The core only needs ``start``, ``stop`` and ``get_stats`` (plus an optional
``is_running``). ``NativeEngine`` adapts the compiled media module, which
is loaded by name so tests and the CLI can run without it.
"""

import importlib
import logging
from typing import Mapping, Protocol, runtime_checkable

from errors import EngineError

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_MODULE = "slump_native"


@runtime_checkable
class StreamingEngine(Protocol):
    def start(self, bitrate_kbps: int, width: int, height: int, fps: int) -> bool: ...

    def stop(self) -> bool: ...

    def get_stats(self) -> Mapping: ...


def normalize_stats(payload) -> dict:
    """Map an engine stats payload onto ``bitrate_kbps`` / ``latency_ms``.

    Accepts a mapping or an object with attributes. Payloads that only
    carry per-track ``video_kbps`` / ``audio_kbps`` and ``rtt`` are summed
    and mapped. Raises ValueError for anything else.
    """
    if payload is None:
        raise ValueError("engine returned no stats")

    if isinstance(payload, Mapping):
        get = payload.get
    else:
        def get(key, default=None):
            return getattr(payload, key, default)

    bitrate = get("bitrate_kbps")
    if bitrate is None and (get("video_kbps") is not None or get("audio_kbps") is not None):
        bitrate = (get("video_kbps") or 0) + (get("audio_kbps") or 0)

    latency = get("latency_ms")
    if latency is None:
        latency = get("rtt")

    if bitrate is None or latency is None:
        raise ValueError(f"unrecognized stats payload: {payload!r}")

    try:
        return {"bitrate_kbps": int(round(float(bitrate))), "latency_ms": int(round(float(latency)))}
    except (TypeError, ValueError) as e:
        raise ValueError(f"non-numeric stats payload: {payload!r}") from e


class NativeEngine:
    """Adapter over the native module's ``start_stream`` / ``stop_stream`` API."""

    def __init__(self, module):
        self.module = module

    @property
    def name(self) -> str:
        return getattr(self.module, "__name__", type(self.module).__name__)

    def start(self, bitrate_kbps: int, width: int, height: int, fps: int) -> bool:
        return bool(self.module.start_stream(bitrate_kbps, width, height, fps))

    def stop(self) -> bool:
        return bool(self.module.stop_stream())

    def get_stats(self) -> dict:
        return normalize_stats(self.module.get_stats())

    def is_running(self) -> bool:
        check = getattr(self.module, "is_running", None)
        if check is None:
            return True
        return bool(check())


def load_engine(module_name: str = DEFAULT_ENGINE_MODULE) -> NativeEngine:
    """Import the native engine module. Raises EngineError if it is unavailable."""
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        logger.warning(f"[STREAM] Native module {module_name!r} not loaded: {e}")
        raise EngineError(f"Native module not loaded: {module_name}") from e

    missing = [fn for fn in ("start_stream", "stop_stream", "get_stats") if not hasattr(module, fn)]
    if missing:
        raise EngineError(f"Native module {module_name} lacks {', '.join(missing)}")

    logger.info(f"[STREAM] Loaded native engine {module_name}")
    return NativeEngine(module)
