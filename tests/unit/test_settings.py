"""Tests for settings resolution."""

import os
from pathlib import Path

import pytest

from codemie_proxy.config.settings import Settings, load_toml_config
from codemie_proxy.core.errors import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep real env vars and config files out of settings resolution."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        "codemie_proxy.config.settings.CODEMIE_HOME", tmp_path / "home"
    )
    for name in list(os.environ):
        if name.startswith("CODEMIE_PROXY_"):
            monkeypatch.delenv(name)


def test_defaults() -> None:
    settings = Settings.from_config()

    assert settings.server.host == "localhost"
    assert settings.server.port is None
    assert settings.http.timeout is None
    assert settings.analytics.enabled is False
    assert settings.proxy.provider == "ai-run-sso"


def test_env_vars_use_nested_delimiter(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CODEMIE_PROXY_SERVER__PORT", "4010")
    monkeypatch.setenv("CODEMIE_PROXY_PROXY__TARGET_API_URL", "https://env.example.com")

    settings = Settings.from_config()

    assert settings.server.port == 4010
    assert settings.proxy.target_api_url == "https://env.example.com"


def test_toml_file_and_overrides(tmp_path: Path) -> None:
    config_file = tmp_path / "proxy.toml"
    config_file.write_text(
        """
[server]
port = 4001

[proxy]
target_api_url = "https://toml.example.com"
model = "from-file"

[analytics]
enabled = true
""",
        encoding="utf-8",
    )

    settings = Settings.from_config(
        config_path=config_file,
        server={"port": 5000, "host": None},
        proxy={"model": "from-cli"},
    )

    assert settings.server.port == 5000
    assert settings.server.host == "localhost"
    assert settings.proxy.target_api_url == "https://toml.example.com"
    assert settings.proxy.model == "from-cli"
    assert settings.analytics.enabled is True


def test_local_toml_is_discovered(tmp_path: Path) -> None:
    (tmp_path / ".codemie-proxy.toml").write_text(
        '[proxy]\ntarget_api_url = "https://found.example.com"\n', encoding="utf-8"
    )

    settings = Settings.from_config()

    assert settings.proxy.target_api_url == "https://found.example.com"


def test_invalid_toml_raises(tmp_path: Path) -> None:
    config_file = tmp_path / "broken.toml"
    config_file.write_text("[server\nport = ", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Invalid TOML"):
        load_toml_config(config_file)


def test_invalid_values_raise_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        Settings.from_config(server={"port": 70000})


def test_to_proxy_config() -> None:
    settings = Settings.from_config(
        server={"port": 4001},
        http={"timeout": 60},
        proxy={
            "target_api_url": "https://api.example.com",
            "provider": "openai",
            "client_type": "codex",
        },
    )

    config = settings.to_proxy_config()

    assert config.target_api_url == "https://api.example.com"
    assert config.port == 4001
    assert config.timeout == 60
    assert config.client_type == "codex"
    assert not config.requires_sso


def test_to_proxy_config_requires_target_url() -> None:
    with pytest.raises(ConfigurationError, match="No target API URL"):
        Settings.from_config().to_proxy_config()


def test_to_proxy_config_rejects_bad_scheme() -> None:
    settings = Settings.from_config(proxy={"target_api_url": "ftp://example.com"})

    with pytest.raises(ConfigurationError):
        settings.to_proxy_config()


def test_unset_timeout_is_not_passed_to_proxy_config() -> None:
    settings = Settings.from_config(
        proxy={"target_api_url": "https://api.example.com"}
    )

    config = settings.to_proxy_config()

    assert config.timeout is None
