"""Plugin registry with priority ordering and enable/disable state."""

import inspect
from typing import Any

import structlog

from codemie_proxy.core.errors import PluginNotFoundError

from .protocol import PluginConfig, PluginContext, ProxyInterceptor, ProxyPlugin


logger = structlog.get_logger(__name__)


class PluginRegistry:
    """Registry of proxy plugins.

    One instance is created per process and handed to the proxy server and
    the CLI. Plugins are kept in registration order; ``initialize`` sorts the
    enabled ones by effective priority with a stable sort, so equal priorities
    run in registration order.
    """

    def __init__(self) -> None:
        self._plugins: dict[str, ProxyPlugin] = {}
        self._configs: dict[str, PluginConfig] = {}
        self._interceptors: dict[str, ProxyInterceptor] = {}

    def register(self, plugin: ProxyPlugin, config: dict[str, Any] | None = None) -> None:
        """Register a plugin, overwriting any plugin with the same id.

        Args:
            plugin: Plugin to register
            config: Optional PluginConfig fields (enabled, priority, options)
        """
        overrides = {k: v for k, v in (config or {}).items() if k != "id"}
        self._plugins[plugin.id] = plugin
        self._configs[plugin.id] = PluginConfig(
            id=plugin.id,
            **{"enabled": True, "priority": plugin.priority, **overrides},
        )
        self._interceptors.pop(plugin.id, None)

        logger.debug(
            "plugin_registered",
            plugin_id=plugin.id,
            priority=self._configs[plugin.id].priority,
            enabled=self._configs[plugin.id].enabled,
        )

    async def initialize(self, context: PluginContext) -> list[ProxyInterceptor]:
        """Create interceptors for every enabled plugin, in priority order.

        A plugin whose factory raises is logged and left out; the remaining
        plugins still initialize.

        Args:
            context: Shared plugin context

        Returns:
            The successfully created interceptors, lowest priority first
        """
        enabled = self._get_enabled_plugins_sorted()
        enabled_ids = {plugin.id for plugin in enabled}
        interceptors: list[ProxyInterceptor] = []
        self._interceptors.clear()

        for plugin in enabled:
            missing = [dep for dep in plugin.dependencies if dep not in enabled_ids]
            if missing:
                logger.warning(
                    "plugin_dependencies_missing",
                    plugin_id=plugin.id,
                    missing=missing,
                )

            try:
                interceptor = plugin.create_interceptor(context)
                if inspect.isawaitable(interceptor):
                    interceptor = await interceptor
            except Exception as e:
                logger.error(
                    "plugin_initialization_failed",
                    plugin_id=plugin.id,
                    error=str(e),
                    exc_info=e,
                )
                continue

            self._interceptors[plugin.id] = interceptor
            interceptors.append(interceptor)
            logger.debug(
                "plugin_initialized",
                plugin_id=plugin.id,
                priority=self._effective_priority(plugin),
            )

        return interceptors

    def _effective_priority(self, plugin: ProxyPlugin) -> int:
        config = self._configs.get(plugin.id)
        if config is not None and config.priority is not None:
            return config.priority
        return plugin.priority

    def _get_enabled_plugins_sorted(self) -> list[ProxyPlugin]:
        enabled = [
            plugin
            for plugin_id, plugin in self._plugins.items()
            if self._configs[plugin_id].enabled
        ]
        # sorted() is stable, so registration order breaks ties
        return sorted(enabled, key=self._effective_priority)

    async def set_enabled(self, plugin_id: str, enabled: bool) -> None:
        """Enable or disable a plugin; the next ``initialize`` reflects it.

        Raises:
            PluginNotFoundError: If the plugin id is not registered
        """
        config = self._configs.get(plugin_id)
        if config is None:
            raise PluginNotFoundError(plugin_id)

        config.enabled = enabled
        plugin = self._plugins[plugin_id]
        hook = getattr(plugin, "on_enable" if enabled else "on_disable", None)
        if hook is not None:
            await hook()

        logger.debug("plugin_toggled", plugin_id=plugin_id, enabled=enabled)

    def get(self, plugin_id: str) -> ProxyPlugin | None:
        return self._plugins.get(plugin_id)

    def get_all(self) -> list[ProxyPlugin]:
        """Get all registered plugins in registration order."""
        return list(self._plugins.values())

    def get_config(self, plugin_id: str) -> PluginConfig | None:
        return self._configs.get(plugin_id)

    def get_interceptor(self, plugin_id: str) -> ProxyInterceptor | None:
        """Interceptor created for a plugin by the last ``initialize`` call."""
        return self._interceptors.get(plugin_id)

    def update_config(self, plugin_id: str, **updates: Any) -> None:
        """Apply partial config updates; unknown ids are ignored."""
        config = self._configs.get(plugin_id)
        if config is None:
            return
        updates.pop("id", None)
        self._configs[plugin_id] = config.model_copy(update=updates)

    def clear(self) -> None:
        self._plugins.clear()
        self._configs.clear()
        self._interceptors.clear()
