"""Proxy plugin system.

Key components:
- ProxyPlugin: Protocol for registrable plugins
- ProxyInterceptor: Optional lifecycle hook slots produced by a plugin
- PluginRegistry: Priority-ordered registry of plugins
- register_core_plugins: Registers the built-in plugins
"""

from codemie_proxy.config.constants import ANALYTICS_PLUGIN_ID

from .analytics import AnalyticsPlugin
from .header_injection import HeaderInjectionPlugin
from .protocol import PluginConfig, PluginContext, ProxyInterceptor, ProxyPlugin
from .registry import PluginRegistry
from .sso_auth import SSOAuthPlugin


def register_core_plugins(registry: PluginRegistry) -> PluginRegistry:
    """Register the built-in plugins.

    Priority decides execution order, not registration order. Analytics is
    registered disabled and turned on by the server when telemetry is enabled.
    """
    registry.register(SSOAuthPlugin())
    registry.register(HeaderInjectionPlugin())
    registry.register(AnalyticsPlugin(), {"enabled": False})
    return registry


def create_default_registry() -> PluginRegistry:
    """Create a registry pre-loaded with the built-in plugins."""
    return register_core_plugins(PluginRegistry())


__all__ = [
    "ANALYTICS_PLUGIN_ID",
    "AnalyticsPlugin",
    "HeaderInjectionPlugin",
    "PluginConfig",
    "PluginContext",
    "PluginRegistry",
    "ProxyInterceptor",
    "ProxyPlugin",
    "SSOAuthPlugin",
    "create_default_registry",
    "register_core_plugins",
]
