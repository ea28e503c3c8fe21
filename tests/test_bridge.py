from __future__ import annotations

import time

import pytest

from conftest import FakeEngine, FakeHttp, wait_for
from bridge import Bridge
from config import Config
from errors import EngineError, TokenExchangeError
from oauth.flow import AuthOrchestrator
from oauth.stores import SessionStore, TokenSet
from streaming.controller import StreamStatus


@pytest.fixture
def bridge(oauth_env, engine):
    oauth_env["SLUMP_STATS_INTERVAL"] = "0.02"
    config = Config(oauth_env)
    store = SessionStore()
    orchestrator = AuthOrchestrator(store, config=config, open_url=lambda url: True, http=FakeHttp())
    bridge = Bridge(config, store=store, orchestrator=orchestrator, engine_factory=lambda: engine)
    yield bridge
    bridge.shutdown()


def test_auth_status_and_logout(bridge) -> None:
    assert bridge.auth_status() is False
    bridge.store.mark_authenticated(TokenSet("EAAB-access"))
    assert bridge.auth_status() is True

    assert bridge.logout() == {"success": True}
    assert bridge.auth_status() is False
    assert bridge.logout() == {"success": True}


def test_start_authorization_success(bridge) -> None:
    assert bridge.start_authorization() == {"success": True}
    assert bridge.orchestrator.pending is not None


def test_logout_cancels_pending_authorization(bridge) -> None:
    bridge.start_authorization()
    listener = bridge.orchestrator.pending.listener

    bridge.logout()

    assert bridge.orchestrator.pending is None
    assert not listener.is_running


def test_start_authorization_reports_missing_config() -> None:
    bridge = Bridge(Config({}), engine_factory=FakeEngine)
    try:
        result = bridge.start_authorization()
    finally:
        bridge.shutdown()

    assert result["success"] is False
    assert result["error"] == "configuration_error"
    assert "META_CLIENT_ID" in result["error_description"]


def test_auth_failures_arrive_as_dicts(bridge) -> None:
    results: list[dict] = []
    bridge.on_auth_failed(results.append)

    bridge.orchestrator.failed.emit(TokenExchangeError("Token endpoint returned HTTP 400"))

    assert results == [{
        "success": False,
        "error": "token_exchange_error",
        "error_description": "Token endpoint returned HTTP 400",
    }]


def test_stream_lifecycle(bridge, engine) -> None:
    statuses: list[StreamStatus] = []
    bridge.on_stream_status(statuses.append)
    assert bridge.stream_status() == "idle"

    result = bridge.start_stream({"bitrate_kbps": 8000, "fps": None})

    assert result == {
        "success": True,
        "status": "connected",
        "config": {"bitrate_kbps": 8000, "width": 1920, "height": 1080, "fps": 90},
    }
    assert engine.start_calls == [(8000, 1920, 1080, 90)]

    assert wait_for(lambda: bridge.get_stats()["success"])
    assert bridge.get_stats() == {"success": True, "bitrate_kbps": 11850, "latency_ms": 14}

    assert bridge.stop_stream() == {"success": True, "status": "idle"}
    assert statuses == [
        StreamStatus.CONNECTING,
        StreamStatus.CONNECTED,
        StreamStatus.STOPPING,
        StreamStatus.IDLE,
    ]


def test_start_stream_validation_error(bridge, engine) -> None:
    result = bridge.start_stream({"width": -1})

    assert result["success"] is False
    assert result["error"] == "validation_error"
    assert engine.start_calls == []


def test_start_stream_twice(bridge) -> None:
    bridge.start_stream()
    result = bridge.start_stream()
    assert result["error"] == "already_active"


def test_stats_and_stop_without_controller(bridge, engine) -> None:
    assert bridge.get_stats()["error"] == "not_active"
    assert bridge.stop_stream() == {"success": False, "status": "idle"}
    assert engine.start_calls == []


def test_missing_engine_is_reported(oauth_config) -> None:
    def no_engine():
        raise EngineError("Native module not loaded: slump_native")

    bridge = Bridge(oauth_config, engine_factory=no_engine)
    try:
        result = bridge.start_stream()
    finally:
        bridge.shutdown()

    assert result == {
        "success": False,
        "error": "engine_error",
        "error_description": "Native module not loaded: slump_native",
    }
    assert bridge.stream_status() == "idle"


def test_shutdown_stops_active_stream(bridge, engine) -> None:
    bridge.start_stream()
    bridge.start_authorization()

    bridge.shutdown()

    assert bridge.stream_status() == "idle"
    assert engine.stop_calls == 1
    assert bridge.orchestrator.pending is None


def test_logout_during_exchange_ends_attempt_silently(oauth_env, engine, local_http) -> None:
    from urllib.parse import parse_qs, urlparse

    config = Config(oauth_env)
    store = SessionStore()
    urls: list[str] = []
    http = FakeHttp(delay=0.3)
    orchestrator = AuthOrchestrator(store, config=config, open_url=urls.append, http=http)
    bridge = Bridge(config, store=store, orchestrator=orchestrator, engine_factory=lambda: engine)
    outcomes: list[object] = []
    bridge.on_authenticated(lambda: outcomes.append("authenticated"))
    bridge.on_auth_failed(outcomes.append)
    try:
        bridge.start_authorization()
        state = parse_qs(urlparse(urls[0]).query)["state"][0]
        port = orchestrator.pending.listener.port
        local_http.get(f"http://127.0.0.1:{port}/callback", params={"code": "abc", "state": state})
        assert wait_for(lambda: http.calls)

        assert bridge.logout() == {"success": True}

        # Let the exchange finish against the cancelled attempt
        time.sleep(0.5)
        assert bridge.auth_status() is False
        assert outcomes == []
    finally:
        bridge.shutdown()
