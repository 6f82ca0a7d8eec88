"""Immutable proxy configuration."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_HOST, SSO_PROVIDER


class ProxyConfig(BaseModel):
    """Configuration owned by one proxy server for its whole lifetime."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    target_api_url: str = Field(description="Base URL of the upstream LLM API")
    port: int | None = Field(
        default=None,
        ge=0,
        le=65535,
        description="Fixed listen port; None lets the OS pick one",
    )
    host: str = Field(default=DEFAULT_HOST, description="Listen host")
    provider: str = Field(default=SSO_PROVIDER, description="Provider identifier")
    integration_id: str | None = Field(
        default=None, description="Integration id sent for the SSO provider"
    )
    model: str | None = Field(default=None, description="Model name header value")
    timeout: int | None = Field(
        default=None,
        gt=0,
        description="Upstream timeout in seconds (connect and response headers)",
    )
    client_type: str | None = Field(
        default=None, description="Client label, e.g. the coding agent name"
    )
    session_id: str | None = Field(
        default=None, description="Session id; generated per process when unset"
    )
    version: str | None = Field(default=None, description="Client version label")

    @field_validator("target_api_url")
    @classmethod
    def validate_target_api_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("target_api_url must start with http:// or https://")
        return value

    @property
    def requires_sso(self) -> bool:
        return self.provider == SSO_PROVIDER
