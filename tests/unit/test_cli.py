"""Tests for the command-line interface."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from codemie_proxy import __version__
from codemie_proxy.cli.main import app


runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Environment pointing every file the CLI touches into tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        "codemie_proxy.config.settings.CODEMIE_HOME", tmp_path / "home"
    )
    # Leave the suite's logging handlers in place
    monkeypatch.setattr(
        "codemie_proxy.cli.commands.serve.setup_logging", lambda **kwargs: None
    )
    return {
        "CODEMIE_PROXY_CREDENTIALS__PATH": str(tmp_path / "missing-sso.json"),
        "CODEMIE_PROXY_ANALYTICS__PATH": str(tmp_path / "events.jsonl"),
    }


def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_plugins_list_shows_builtin_plugins_in_order() -> None:
    result = runner.invoke(app, ["plugins", "list"])

    assert result.exit_code == 0
    sso = result.output.index("@codemie/proxy-sso-auth")
    headers = result.output.index("@codemie/proxy-headers")
    analytics = result.output.index("@codemie/proxy-analytics")
    assert sso < headers < analytics


def test_serve_without_target_url_fails(cli_env: dict[str, str]) -> None:
    result = runner.invoke(app, ["serve"], env=cli_env)

    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_serve_rejects_bad_target_scheme(cli_env: dict[str, str]) -> None:
    result = runner.invoke(app, ["serve", "--target-url", "ftp://x"], env=cli_env)

    assert result.exit_code == 2


def test_serve_rejects_bad_port(cli_env: dict[str, str]) -> None:
    result = runner.invoke(
        app,
        ["serve", "--target-url", "https://api.example.com", "--port", "70000"],
        env=cli_env,
    )

    assert result.exit_code == 2


def test_serve_with_sso_provider_and_no_credentials_fails(
    cli_env: dict[str, str],
) -> None:
    result = runner.invoke(
        app,
        [
            "serve",
            "--target-url",
            "https://api.example.com",
            "--provider",
            "ai-run-sso",
            "--log-level",
            "warning",
        ],
        env=cli_env,
    )

    assert result.exit_code == 1
    assert "Authentication error" in result.output
