from __future__ import annotations

import pytest

from config import Config, load_config, parse_resolution
from errors import ConfigurationError


def test_oauth_settings_from_env(oauth_env: dict) -> None:
    oauth_env["META_REDIRECT_PORT"] = "53123"
    settings = Config(oauth_env).oauth_settings()

    assert settings.client_id == "client-123"
    assert settings.redirect_port == 53123
    assert settings.scopes == ("public_profile", "email")
    assert settings.redirect_uri() == "http://localhost:53123/callback"
    assert settings.timeout == 30.0


def test_missing_settings_are_all_reported() -> None:
    config = Config({"META_CLIENT_ID": "client-123", "OAUTH_SCOPES": " , "})

    with pytest.raises(ConfigurationError) as exc:
        config.oauth_settings()

    assert exc.value.missing == [
        "META_CLIENT_SECRET",
        "META_OAUTH_AUTH_URL",
        "META_OAUTH_TOKEN_URL",
        "META_REDIRECT_PORT",
        "OAUTH_SCOPES",
    ]
    assert exc.value.code == "configuration_error"
    assert "META_CLIENT_SECRET" in str(exc.value)


def test_blank_values_count_as_missing(oauth_env: dict) -> None:
    oauth_env["META_CLIENT_SECRET"] = "   "
    assert Config(oauth_env).missing_oauth_settings() == ["META_CLIENT_SECRET"]


@pytest.mark.parametrize("port", ["http", "-1", "70000"])
def test_bad_redirect_port(oauth_env: dict, port: str) -> None:
    oauth_env["META_REDIRECT_PORT"] = port
    with pytest.raises(ConfigurationError):
        Config(oauth_env).oauth_settings()


def test_optional_settings_defaults() -> None:
    config = Config({})
    assert config.auth_timeout == 120.0
    assert config.stats_interval == 1.0
    assert config.max_poll_failures == 5
    assert config.engine_module == "slump_native"
    assert config.api_port == 8767
    assert config.log_file is None
    assert config.allowed_origins == ["null", "http://localhost:8080", "http://127.0.0.1:8080"]


def test_allowed_origins_list() -> None:
    config = Config({"SLUMP_ALLOWED_ORIGINS": " http://localhost:3000 , ,null"})
    assert config.allowed_origins == ["http://localhost:3000", "null"]


def test_invalid_numbers_fall_back_to_defaults() -> None:
    config = Config({"SLUMP_STATS_INTERVAL": "fast", "SLUMP_API_PORT": "x"})
    assert config.stats_interval == 1.0
    assert config.api_port == 8767


def test_stream_defaults() -> None:
    assert Config({}).stream_defaults() == {
        "bitrate_kbps": 12000,
        "width": 1920,
        "height": 1080,
        "fps": 90,
    }
    custom = Config({"SLUMP_RESOLUTION": "1280x720", "SLUMP_FPS": "72"}).stream_defaults()
    assert (custom["width"], custom["height"], custom["fps"]) == (1280, 720, 72)


def test_stream_defaults_ignore_bad_resolution() -> None:
    defaults = Config({"SLUMP_RESOLUTION": "huge"}).stream_defaults()
    assert (defaults["width"], defaults["height"]) == (1920, 1080)


def test_parse_resolution() -> None:
    assert parse_resolution("2560X1440") == (2560, 1440)
    with pytest.raises(ValueError):
        parse_resolution("1080p")


def test_load_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("META_CLIENT_ID", "from-env")
    assert load_config().client_id == "from-env"
