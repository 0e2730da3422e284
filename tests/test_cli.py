"""Tests for CLI options using Click's testing utilities."""

import os

import pytest
from click.testing import CliRunner

from webdav_bridge.cli import cli
from webdav_bridge.service import WebDAVService

ENV_VARS = [
    "WEBDAV_UPSTREAM_URL",
    "WEBDAV_GATEWAY_PREFIX",
    "WEBDAV_DEV_PROXY_PREFIX",
    "WEBDAV_DEV_MODE",
    "WEBDAV_GATEWAY_ORIGIN",
    "WEBDAV_SERVER_URL",
    "WEBDAV_USERNAME",
    "WEBDAV_PASSWORD",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
]


@pytest.fixture
def runner():
    """Create a Click CLI runner."""
    return CliRunner()


@pytest.fixture
def clean_env(monkeypatch):
    """Clean environment variables before each test.

    Each variable is set through monkeypatch first so values written by the
    CLI itself are removed again on teardown.
    """
    for var in ENV_VARS:
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    monkeypatch.setenv("METRICS_ENABLED", "false")


@pytest.fixture
def fake_server(monkeypatch):
    """Replace uvicorn.run and capture what it would have served."""
    captured = {}

    def mock_run(**kwargs):
        captured.update(kwargs)

    monkeypatch.setattr("webdav_bridge.cli.uvicorn.run", mock_run)
    return captured


def test_help_message_displays_all_options(runner):
    result = runner.invoke(cli, ["run", "--help"])
    assert result.exit_code == 0

    for option in (
        "--host",
        "--port",
        "--log-level",
        "--upstream-url",
        "--gateway-prefix",
        "--dev / --no-dev",
    ):
        assert option in result.output


def test_cli_options_set_environment_variables(runner, clean_env, monkeypatch):
    """Test that CLI options set environment variables correctly."""
    captured_env = {}

    def mock_get_app(settings, *args, **kwargs):
        captured_env.update(
            {
                "WEBDAV_UPSTREAM_URL": os.environ.get("WEBDAV_UPSTREAM_URL"),
                "WEBDAV_GATEWAY_PREFIX": os.environ.get("WEBDAV_GATEWAY_PREFIX"),
                "WEBDAV_DEV_MODE": os.environ.get("WEBDAV_DEV_MODE"),
            }
        )
        captured_env["settings"] = settings
        # Raise an exception to stop execution before uvicorn.run
        raise SystemExit(0)

    monkeypatch.setattr("webdav_bridge.cli.get_app", mock_get_app)

    runner.invoke(
        cli,
        [
            "run",
            "--upstream-url",
            "https://dav.example.com/remote.php/webdav",
            "--gateway-prefix",
            "/files",
            "--dev",
        ],
    )

    assert captured_env["WEBDAV_UPSTREAM_URL"] == "https://dav.example.com/remote.php/webdav"
    assert captured_env["WEBDAV_GATEWAY_PREFIX"] == "/files"
    assert captured_env["WEBDAV_DEV_MODE"] == "true"
    settings = captured_env["settings"]
    assert settings.upstream_root == "/remote.php/webdav"
    assert settings.gateway_prefix == "/files"
    assert settings.dev_mode is True


def test_run_starts_uvicorn(runner, clean_env, fake_server):
    result = runner.invoke(cli, ["run", "--host", "0.0.0.0", "--port", "9000"])

    assert result.exit_code == 0, result.output
    assert fake_server["host"] == "0.0.0.0"
    assert fake_server["port"] == 9000
    assert fake_server["log_level"] == "info"
    access = fake_server["log_config"]["handlers"]["access"]
    assert access["filters"] == ["preflight_filter"]


def test_invalid_prefix_is_reported(runner, clean_env, fake_server):
    result = runner.invoke(cli, ["run", "--gateway-prefix", "files"])

    assert result.exit_code == 1
    assert "WEBDAV_GATEWAY_PREFIX must start with '/'" in result.output
    assert fake_server == {}


class TestProbe:
    @pytest.fixture
    def probe_env(self, clean_env, monkeypatch, fake_dav, mocker):
        monkeypatch.setenv("WEBDAV_SERVER_URL", "https://dav.jianguoyun.com/dav")
        monkeypatch.setenv("WEBDAV_USERNAME", "alice@example.com")
        monkeypatch.setenv("WEBDAV_PASSWORD", "app-password")
        mocker.patch(
            "webdav_bridge.cli.create_service",
            side_effect=lambda settings: WebDAVService(
                settings, transport=fake_dav.transport
            ),
        )
        return mocker.patch("webdav_bridge.cli.setup_logging")

    def test_probe_lists_directory(self, runner, probe_env, fake_dav):
        fake_dav.add_file("/fastReader/book.epub", b"x" * 2048)

        result = runner.invoke(cli, ["probe", "--list", "/fastReader"])

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0] == "Connected via direct (https://dav.jianguoyun.com/dav)"
        assert lines[1] == "-       2048 /api/webdav/fastReader/book.epub"
        probe_env.assert_called_once()

    def test_probe_reports_authentication_failure(self, runner, probe_env):
        result = runner.invoke(cli, ["probe", "--password", "wrong"])

        assert result.exit_code == 1
        assert (
            "Connection failed: Authentication failed, check username and password"
            in result.output
        )

    def test_probe_requires_credentials(self, runner, clean_env):
        result = runner.invoke(cli, ["probe"])

        assert result.exit_code == 2
        assert "--server-url" in result.output
