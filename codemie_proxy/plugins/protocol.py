"""Plugin and interceptor contracts for the proxy pipeline."""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from codemie_proxy.config.constants import MAX_PLUGIN_PRIORITY, MIN_PLUGIN_PRIORITY
from codemie_proxy.config.proxy import ProxyConfig
from codemie_proxy.core.context import ProxyContext, ResponseMetadata


if TYPE_CHECKING:
    from codemie_proxy.services.analytics import Analytics
    from codemie_proxy.services.credentials import SSOCredentials


RequestHook = Callable[[ProxyContext], Awaitable[None]]
ResponseHeadersHook = Callable[[ProxyContext, Mapping[str, str]], Awaitable[None]]
ResponseChunkHook = Callable[[ProxyContext, bytes], Awaitable[bytes | None]]
ResponseCompleteHook = Callable[[ProxyContext, ResponseMetadata], Awaitable[None]]
ErrorHook = Callable[[ProxyContext, BaseException], Awaitable[None]]


@dataclass
class ProxyInterceptor:
    """Per-server-start hook bundle produced by a plugin.

    Every slot is optional. The server checks each slot for ``None`` and calls
    the ones that are set, in plugin priority order.

    ``on_response_chunk`` returns the (possibly transformed) chunk, or ``None``
    to drop it; a drop skips the remaining chunk hooks for that chunk.
    """

    name: str
    on_request: RequestHook | None = None
    on_response_headers: ResponseHeadersHook | None = None
    on_response_chunk: ResponseChunkHook | None = None
    on_response_complete: ResponseCompleteHook | None = None
    on_error: ErrorHook | None = None


@dataclass
class PluginContext:
    """Shared context handed to every plugin factory."""

    config: ProxyConfig
    logger: Any
    credentials: "SSOCredentials | None" = None
    analytics: "Analytics | None" = None
    extras: dict[str, Any] = field(default_factory=dict)


class PluginConfig(BaseModel):
    """Registry-side configuration for one plugin."""

    id: str
    enabled: bool = True
    priority: int | None = Field(
        default=None,
        ge=MIN_PLUGIN_PRIORITY,
        le=MAX_PLUGIN_PRIORITY,
        description="Overrides the plugin's declared priority when set",
    )
    options: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class ProxyPlugin(Protocol):
    """Registrable descriptor that creates interceptors.

    Plugins may also define optional async ``on_enable``/``on_disable``
    methods, awaited when the registry toggles them.
    """

    @property
    def id(self) -> str:
        """Unique plugin identifier (e.g. '@codemie/proxy-analytics')."""
        ...

    @property
    def name(self) -> str:
        """Display name."""
        ...

    @property
    def version(self) -> str:
        """Plugin version."""
        ...

    @property
    def priority(self) -> int:
        """Execution priority, lower runs earlier (0-1000)."""
        ...

    @property
    def dependencies(self) -> list[str]:
        """Ids of plugins this one expects to run alongside."""
        ...

    def create_interceptor(
        self, context: PluginContext
    ) -> ProxyInterceptor | Awaitable[ProxyInterceptor]:
        """Create the interceptor for one server start."""
        ...
