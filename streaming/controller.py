"""Stream session state machine.

    idle -> connecting -> connected -> stopping -> idle
    connecting -> idle, connected -> idle      (engine failure)

Start and stop are serialized by an operation lock. Status and stats are
guarded by a separate state lock, the only one the poll thread takes, so
``stop_stream`` can join the poll thread without deadlocking.
"""

import logging
import threading
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, Optional

from errors import AlreadyActiveError, EngineError, NotActiveError, ValidationError
from events import EventChannel
from streaming.engine import StreamingEngine, normalize_stats

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MAX_POLL_FAILURES = 5


class StreamStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STOPPING = "stopping"


ACTIVE_STATUSES = (StreamStatus.CONNECTING, StreamStatus.CONNECTED)


@dataclass(frozen=True)
class StreamConfig:
    bitrate_kbps: int
    width: int
    height: int
    fps: int

    def validate(self) -> "StreamConfig":
        """Raise ValidationError unless every field is a positive int."""
        bad = []
        for name, value in asdict(self).items():
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                bad.append(f"{name}={value!r}")
        if bad:
            raise ValidationError(f"Stream settings must be positive integers: {', '.join(bad)}")
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "StreamConfig":
        try:
            return cls(
                bitrate_kbps=data["bitrate_kbps"],
                width=data["width"],
                height=data["height"],
                fps=data["fps"],
            )
        except KeyError as e:
            raise ValidationError(f"Missing stream setting: {e.args[0]}") from e


@dataclass(frozen=True)
class StreamStats:
    bitrate_kbps: int
    latency_ms: int

    def to_dict(self) -> dict:
        return asdict(self)


NO_READING = StreamStats(bitrate_kbps=0, latency_ms=0)


class _Session:
    """Book-keeping for one connected session and its poll thread."""

    def __init__(self, config: StreamConfig):
        self.config = config
        self.last_stats: Optional[StreamStats] = None
        self.poll_count = 0
        self.failures = 0
        self.cancelled = threading.Event()
        self.thread: Optional[threading.Thread] = None


class StreamingController:
    """Start, stop and poll one stream session on an injected engine."""

    def __init__(
        self,
        engine: StreamingEngine,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_poll_failures: int = DEFAULT_MAX_POLL_FAILURES,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.engine = engine
        self.poll_interval = poll_interval
        self.max_poll_failures = max(1, max_poll_failures)

        self.status_changed = EventChannel("stream_status")

        self._op_lock = threading.Lock()
        self._lock = threading.Lock()
        self._status = StreamStatus.IDLE
        self._session: Optional[_Session] = None

    # ============== State ==============

    @property
    def status(self) -> StreamStatus:
        with self._lock:
            return self._status

    @property
    def config(self) -> Optional[StreamConfig]:
        with self._lock:
            return self._session.config if self._session else None

    @property
    def poll_count(self) -> int:
        with self._lock:
            return self._session.poll_count if self._session else 0

    def on_status_changed(self, callback: Callable[[StreamStatus], None]) -> Callable[[], None]:
        return self.status_changed.subscribe(callback)

    def _set_status(self, status: StreamStatus) -> bool:
        """Caller holds ``_lock``. Returns True if the status changed."""
        if self._status is status:
            return False
        logger.info(f"[STREAM] {self._status.value} -> {status.value}")
        self._status = status
        return True

    def _transition(self, status: StreamStatus) -> None:
        with self._lock:
            changed = self._set_status(status)
        if changed:
            self.status_changed.emit(status)

    # ============== Start / stop ==============

    def start_stream(self, config: StreamConfig) -> bool:
        """Start a session. Raises ValidationError, AlreadyActiveError or EngineError."""
        config.validate()

        with self._op_lock:
            with self._lock:
                if self._status in ACTIVE_STATUSES:
                    raise AlreadyActiveError()
            self._transition(StreamStatus.CONNECTING)

            try:
                started = self.engine.start(config.bitrate_kbps, config.width, config.height, config.fps)
            except Exception as e:
                self._transition(StreamStatus.IDLE)
                logger.error(f"[STREAM] Engine failed to start: {e}")
                raise EngineError(f"Engine failed to start: {e}") from e

            if not started:
                self._transition(StreamStatus.IDLE)
                logger.error("[STREAM] Engine refused to start")
                raise EngineError("Engine refused to start")

            session = _Session(config)
            self._first_reading(session)
            session.thread = threading.Thread(
                target=self._poll_loop, args=(session,), name="slump-stats-poll", daemon=True
            )
            with self._lock:
                self._session = session
            self._transition(StreamStatus.CONNECTED)
            session.thread.start()
            logger.info(
                f"[STREAM] Connected at {config.width}x{config.height}@{config.fps} "
                f"{config.bitrate_kbps} kbps"
            )
            return True

    def stop_stream(self) -> bool:
        """Stop the session. Always ends idle; returns the engine's verdict."""
        with self._op_lock:
            with self._lock:
                session = self._session
                if self._status is not StreamStatus.CONNECTED or session is None:
                    logger.info("[STREAM] stop_stream: nothing to stop")
                    return False
            self._transition(StreamStatus.STOPPING)
            self._cancel_poll(session)

            try:
                stopped = bool(self.engine.stop())
            except Exception as e:
                logger.error(f"[STREAM] Engine failed to stop: {e}")
                stopped = False
            finally:
                with self._lock:
                    if self._session is session:
                        self._session = None
                self._transition(StreamStatus.IDLE)

            if not stopped:
                logger.warning("[STREAM] Engine reported stop failure")
            return stopped

    def shutdown(self) -> None:
        """Stop any active session (process teardown)."""
        if self.status is StreamStatus.CONNECTED:
            self.stop_stream()

    def _cancel_poll(self, session: _Session) -> None:
        session.cancelled.set()
        thread = session.thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=self.poll_interval + 5)

    # ============== Stats ==============

    def get_stats(self) -> StreamStats:
        """Most recent poll result. Raises NotActiveError unless connected.

        Until the engine has produced a reading this is a zeroed StreamStats.
        """
        with self._lock:
            if self._status is not StreamStatus.CONNECTED or self._session is None:
                raise NotActiveError()
            stats = self._session.last_stats
        return stats if stats is not None else NO_READING

    def _first_reading(self, session: _Session) -> None:
        # Session is not published yet, so no lock
        try:
            session.last_stats = StreamStats(**normalize_stats(self.engine.get_stats()))
            session.poll_count = 1
        except Exception as e:
            session.failures = 1
            logger.debug(f"[STREAM] No stats right after start: {e}")

    def _poll_loop(self, session: _Session) -> None:
        while not session.cancelled.wait(self.poll_interval):
            self.poll_stats(session)

    def poll_stats(self, session: _Session = None) -> None:
        """Read stats from the engine once. Transient failures are swallowed."""
        with self._lock:
            session = session or self._session
            if session is None or self._session is not session or self._status is not StreamStatus.CONNECTED:
                return

        is_running = getattr(self.engine, "is_running", None)
        try:
            if is_running is not None and not is_running():
                self._fail(session, "engine is no longer running", stop_engine=False)
                return
            stats = StreamStats(**normalize_stats(self.engine.get_stats()))
        except Exception as e:
            with self._lock:
                session.failures += 1
                failures = session.failures
            logger.debug(f"[STREAM] Stats read failed ({failures}/{self.max_poll_failures}): {e}")
            if failures >= self.max_poll_failures:
                self._fail(session, f"{failures} consecutive stats failures", stop_engine=True)
            return

        with self._lock:
            if self._session is not session or session.cancelled.is_set():
                return
            session.failures = 0
            session.last_stats = stats
            session.poll_count += 1

    def _fail(self, session: _Session, reason: str, stop_engine: bool) -> None:
        """Error edge: connected -> idle from the poll thread."""
        with self._lock:
            if self._session is not session or self._status is not StreamStatus.CONNECTED:
                return
        session.cancelled.set()
        logger.error(f"[STREAM] Session lost: {reason}")

        if stop_engine:
            try:
                self.engine.stop()
            except Exception as e:
                logger.warning(f"[STREAM] Best-effort engine stop failed: {e}")

        with self._lock:
            # stop_stream may have taken over while the engine was stopping
            if self._session is not session:
                return
            self._session = None
            changed = self._set_status(StreamStatus.IDLE)
        if changed:
            self.status_changed.emit(StreamStatus.IDLE)
