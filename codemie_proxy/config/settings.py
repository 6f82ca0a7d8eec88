"""Application settings for the CodeMie proxy.

Settings are resolved from, highest precedence first:

1. Explicit overrides (CLI options)
2. Values from a TOML configuration file
3. ``CODEMIE_PROXY_*`` environment variables (nested with ``__``)
4. Field defaults
"""

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from codemie_proxy.core.errors import ConfigurationError
from codemie_proxy.core.logging import get_logger

from .constants import DEFAULT_HOST, DEFAULT_TIMEOUT_SECONDS, SSO_PROVIDER
from .proxy import ProxyConfig


__all__ = [
    "AnalyticsSettings",
    "CredentialsSettings",
    "HTTPSettings",
    "LoggingSettings",
    "ProxySettings",
    "ServerSettings",
    "Settings",
    "find_toml_config_file",
]

logger = get_logger(__name__)

CODEMIE_HOME = Path.home() / ".codemie"


class ServerSettings(BaseModel):
    """Listener settings."""

    host: str = Field(default=DEFAULT_HOST, description="Server host address")
    port: int | None = Field(
        default=None,
        ge=0,
        le=65535,
        description="Fixed port; unset or 0 asks the OS for an ephemeral port",
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=False, description="Render logs as JSON lines instead of console"
    )
    file: str | None = Field(
        default=None, description="Optional path that also receives JSON logs"
    )


class HTTPSettings(BaseModel):
    """Upstream HTTP client settings."""

    timeout: int | None = Field(
        default=None,
        gt=0,
        description=(
            "Timeout in seconds for connecting and receiving headers; "
            f"unset uses {DEFAULT_TIMEOUT_SECONDS} and is not advertised upstream"
        ),
    )


class AnalyticsSettings(BaseModel):
    """Local usage telemetry settings."""

    enabled: bool = Field(default=False, description="Record proxy telemetry")
    path: Path = Field(
        default=CODEMIE_HOME / "analytics" / "events.jsonl",
        description="JSON lines file that receives flushed events",
    )
    batch_size: int = Field(
        default=100, ge=1, description="Buffered events that trigger a flush"
    )


class CredentialsSettings(BaseModel):
    """SSO credential store settings."""

    path: Path = Field(
        default=CODEMIE_HOME / "sso-credentials.json",
        description="JSON file holding SSO cookies",
    )


class ProxySettings(BaseModel):
    """Upstream routing settings."""

    target_api_url: str | None = Field(
        default=None, description="Base URL of the upstream LLM API"
    )
    provider: str = Field(default=SSO_PROVIDER, description="Provider identifier")
    integration_id: str | None = None
    model: str | None = None
    client_type: str | None = None
    session_id: str | None = None
    version: str | None = None


class Settings(BaseSettings):
    """Top-level settings for the CodeMie proxy."""

    model_config = SettingsConfigDict(
        env_prefix="CODEMIE_PROXY_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    credentials: CredentialsSettings = Field(default_factory=CredentialsSettings)
    proxy: ProxySettings = Field(default_factory=ProxySettings)

    @classmethod
    def from_config(
        cls, config_path: Path | None = None, **overrides: Any
    ) -> "Settings":
        """Load settings from a TOML file (if any) merged with overrides.

        Args:
            config_path: Explicit TOML file; discovered when None
            **overrides: Section dictionaries that win over file values

        Raises:
            ConfigurationError: If the file cannot be parsed or validated
        """
        config_path = config_path or find_toml_config_file()
        data: dict[str, Any] = {}

        if config_path is not None:
            data = load_toml_config(config_path)
            logger.debug("config_file_loaded", path=str(config_path))

        for section, values in overrides.items():
            if isinstance(values, dict):
                merged = dict(data.get(section) or {})
                merged.update({k: v for k, v in values.items() if v is not None})
                data[section] = merged
            elif values is not None:
                data[section] = values

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def to_proxy_config(self) -> ProxyConfig:
        """Build the immutable ProxyConfig for a server instance.

        Raises:
            ConfigurationError: If no target API URL is configured
        """
        if not self.proxy.target_api_url:
            raise ConfigurationError(
                "No target API URL configured. Pass --target-url or set "
                "CODEMIE_PROXY_PROXY__TARGET_API_URL."
            )

        try:
            return ProxyConfig(
                target_api_url=self.proxy.target_api_url,
                port=self.server.port or None,
                host=self.server.host,
                provider=self.proxy.provider,
                integration_id=self.proxy.integration_id,
                model=self.proxy.model,
                timeout=self.http.timeout,
                client_type=self.proxy.client_type,
                session_id=self.proxy.session_id,
                version=self.proxy.version,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid proxy configuration: {e}") from e


def find_toml_config_file() -> Path | None:
    """Find the first existing TOML config file.

    Checks ``.codemie-proxy.toml`` in the current directory, then
    ``~/.codemie/proxy.toml``.
    """
    candidates = [
        Path.cwd() / ".codemie-proxy.toml",
        CODEMIE_HOME / "proxy.toml",
    ]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def load_toml_config(config_path: Path) -> dict[str, Any]:
    """Read a TOML file into a dictionary.

    Raises:
        ConfigurationError: If the file is missing or not valid TOML
    """
    try:
        with config_path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {config_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e
