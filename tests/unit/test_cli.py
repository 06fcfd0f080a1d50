"""Unit tests for the command-line entry point."""

from unittest.mock import patch

import pytest

from toolchat_server.__main__ import build_parser, main, settings_from_args


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("HOST", "PORT", "SERVERS_FILE", "MAX_TOOL_ROUNDS", "CONNECT_ON_STARTUP"):
        monkeypatch.delenv(f"TOOLCHAT_{name}", raising=False)


def test_defaults_come_from_settings():
    settings = settings_from_args(build_parser().parse_args([]))

    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
    assert settings.servers_file == "mcp_servers.json"
    assert settings.max_tool_rounds == 8
    assert settings.connect_on_startup is True


def test_tool_server_options_override_settings(tmp_path):
    args = build_parser().parse_args(
        [
            "--data-dir",
            str(tmp_path),
            "--servers-file",
            "tools.json",
            "--max-tool-rounds",
            "3",
            "--no-connect-on-startup",
        ]
    )

    settings = settings_from_args(args)

    assert settings.resolved_servers_file == tmp_path / "tools.json"
    assert settings.max_tool_rounds == 3
    assert settings.connect_on_startup is False


def test_environment_is_used_when_option_is_absent(monkeypatch):
    monkeypatch.setenv("TOOLCHAT_MAX_TOOL_ROUNDS", "5")
    monkeypatch.setenv("TOOLCHAT_CONNECT_ON_STARTUP", "false")

    settings = settings_from_args(build_parser().parse_args(["--port", "9001"]))

    assert settings.max_tool_rounds == 5
    assert settings.connect_on_startup is False
    assert settings.port == 9001


def test_max_tool_rounds_must_be_positive(capsys):
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--max-tool-rounds", "0"])

    assert "must be at least 1" in capsys.readouterr().err


def test_main_runs_uvicorn_with_the_app():
    with (
        patch("toolchat_server.__main__.create_app") as create_app,
        patch("toolchat_server.__main__.uvicorn.run") as run,
    ):
        main(["--host", "0.0.0.0", "--port", "9000", "--log-level", "DEBUG"])

    settings = create_app.call_args.kwargs["settings"]
    assert settings.host == "0.0.0.0"
    run.assert_called_once_with(
        create_app.return_value,
        host="0.0.0.0",
        port=9000,
        log_level="debug",
        reload=False,
    )
