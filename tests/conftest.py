"""
Pytest config.

Top-level modules (`config`, `bridge`, ...) and the `oauth/` and `streaming/`
directories are imported from the repo root, so the root goes on sys.path
even when pytest is started from elsewhere.
"""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is truthy or ``timeout`` passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


class FakeEngine:
    """Test double for the native streaming engine."""

    def __init__(self, start_result=True, stop_result=True, stats=None):
        self.start_result = start_result
        self.stop_result = stop_result
        self.stats = stats or {"bitrate_kbps": 11850, "latency_ms": 14}
        self.fail_stats = False
        self.running = True
        self.start_calls: list[tuple] = []
        self.stop_calls = 0
        self.stats_calls = 0
        self.start_delay = 0.0
        self._lock = threading.Lock()

    def start(self, bitrate_kbps, width, height, fps):
        self.start_calls.append((bitrate_kbps, width, height, fps))
        if self.start_delay:
            time.sleep(self.start_delay)
        if isinstance(self.start_result, Exception):
            raise self.start_result
        return self.start_result

    def stop(self):
        self.stop_calls += 1
        if isinstance(self.stop_result, Exception):
            raise self.stop_result
        return self.stop_result

    def get_stats(self):
        with self._lock:
            self.stats_calls += 1
        if self.fail_stats:
            raise RuntimeError("stats read failed")
        return dict(self.stats)

    def is_running(self):
        return self.running


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ""

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeHttp:
    """Stands in for requests.Session in the token exchange."""

    def __init__(self, response=None, error=None, delay=0.0):
        self.response = response or FakeResponse(
            200, {"access_token": "EAAB-access", "refresh_token": "r-1", "expires_in": 3600}
        )
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []
        self.closed = False

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "data": dict(data or {}), "timeout": timeout})
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


OAUTH_ENV = {
    "META_CLIENT_ID": "client-123",
    "META_CLIENT_SECRET": "s3cret",
    "META_OAUTH_AUTH_URL": "https://provider.example/oauth/authorize",
    "META_OAUTH_TOKEN_URL": "https://provider.example/oauth/token",
    "META_REDIRECT_PORT": "0",
    "OAUTH_SCOPES": "public_profile,email",
    "SLUMP_AUTH_TIMEOUT": "30",
}


@pytest.fixture
def oauth_env() -> dict:
    return dict(OAUTH_ENV)


@pytest.fixture
def oauth_config(oauth_env):
    from config import Config

    return Config(oauth_env)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def local_http():
    """requests session for talking to the loopback listener, ignoring proxy env vars."""
    import requests

    session = requests.Session()
    session.trust_env = False
    yield session
    session.close()
