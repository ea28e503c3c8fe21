from __future__ import annotations

import argparse

import pytest

import cli


@pytest.fixture(autouse=True)
def no_env_files(monkeypatch):
    monkeypatch.setattr(cli, "load_env", lambda: None)
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)


def test_version(capsys) -> None:
    assert cli.main(["version"]) == 0
    assert cli.VERSION in capsys.readouterr().out


def test_help(capsys) -> None:
    assert cli.main(["help"]) == 0
    assert "COMMANDS" in capsys.readouterr().out


def test_status_reports_missing_settings(monkeypatch, capsys) -> None:
    for name in ("META_CLIENT_ID", "META_CLIENT_SECRET", "META_OAUTH_AUTH_URL",
                 "META_OAUTH_TOKEN_URL", "META_REDIRECT_PORT", "OAUTH_SCOPES"):
        monkeypatch.delenv(name, raising=False)

    assert cli.main(["status"]) == 1
    out = capsys.readouterr().out
    assert "META_CLIENT_ID" in out


def test_status_when_configured(monkeypatch, oauth_env, capsys) -> None:
    for name, value in oauth_env.items():
        monkeypatch.setenv(name, value)
    monkeypatch.setenv("META_REDIRECT_PORT", "5000")

    assert cli.main(["status"]) == 0
    assert "http://localhost:5000/callback" in capsys.readouterr().out


def test_parser_defaults_to_serve() -> None:
    args = cli.build_parser().parse_args([])
    assert args.command == "serve"


def test_parser_stream_options() -> None:
    args = cli.build_parser().parse_args(["stream", "--bitrate", "8000", "--resolution", "1280x720", "--fps", "60"])
    assert (args.bitrate, args.resolution, args.fps) == (8000, (1280, 720), 60)


def test_resolution_type_rejects_garbage() -> None:
    with pytest.raises(argparse.ArgumentTypeError):
        cli.resolution("wide")


def test_stream_reports_missing_engine(monkeypatch, capsys) -> None:
    monkeypatch.setenv("SLUMP_ENGINE_MODULE", "slump_native_does_not_exist")

    assert cli.main(["stream"]) == 1
    assert "Native module not loaded" in capsys.readouterr().out
