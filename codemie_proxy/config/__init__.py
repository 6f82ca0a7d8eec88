"""Configuration for the CodeMie proxy."""

from .proxy import ProxyConfig
from .settings import (
    AnalyticsSettings,
    CredentialsSettings,
    HTTPSettings,
    LoggingSettings,
    ProxySettings,
    ServerSettings,
    Settings,
)


__all__ = [
    "AnalyticsSettings",
    "CredentialsSettings",
    "HTTPSettings",
    "LoggingSettings",
    "ProxyConfig",
    "ProxySettings",
    "ServerSettings",
    "Settings",
]
