"""Header injection plugin: adds request, session and routing headers."""

import structlog

from codemie_proxy.config.constants import (
    CLIENT_HEADER,
    HEADER_INJECTION_PLUGIN_ID,
    HEADER_INJECTION_PRIORITY,
    INTEGRATION_HEADER,
    MODEL_HEADER,
    REQUEST_ID_HEADER,
    SESSION_ID_HEADER,
    TIMEOUT_HEADER,
)
from codemie_proxy.config.proxy import ProxyConfig
from codemie_proxy.core.context import ProxyContext

from .protocol import PluginContext, ProxyInterceptor


logger = structlog.get_logger(__name__)


class HeaderInjectionPlugin:
    id = HEADER_INJECTION_PLUGIN_ID
    name = "Header Injection"
    version = "1.0.0"
    priority = HEADER_INJECTION_PRIORITY
    dependencies: list[str] = []

    def create_interceptor(self, context: PluginContext) -> ProxyInterceptor:
        interceptor = HeaderInjectionInterceptor(context.config)
        return ProxyInterceptor(
            name="header-injection", on_request=interceptor.on_request
        )


class HeaderInjectionInterceptor:
    def __init__(self, config: ProxyConfig) -> None:
        self._config = config

    async def on_request(self, context: ProxyContext) -> None:
        config = self._config

        context.set_header(REQUEST_ID_HEADER, context.request_id)
        context.set_header(SESSION_ID_HEADER, context.session_id)

        # Integration routing only applies to the SSO provider
        if config.requires_sso and config.integration_id:
            context.set_header(INTEGRATION_HEADER, config.integration_id)

        if config.model:
            context.set_header(MODEL_HEADER, config.model)

        if config.timeout:
            context.set_header(TIMEOUT_HEADER, str(config.timeout))

        if config.client_type:
            context.set_header(CLIENT_HEADER, config.client_type)

        logger.debug("routing_headers_injected", request_id=context.request_id)
