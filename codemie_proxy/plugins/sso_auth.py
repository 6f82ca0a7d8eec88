"""SSO authentication plugin: injects SSO session cookies."""

import structlog

from codemie_proxy.config.constants import (
    COOKIE_HEADER,
    SSO_AUTH_PLUGIN_ID,
    SSO_AUTH_PRIORITY,
)
from codemie_proxy.core.context import ProxyContext
from codemie_proxy.core.errors import AuthenticationError
from codemie_proxy.services.credentials import SSOCredentials

from .protocol import PluginContext, ProxyInterceptor


logger = structlog.get_logger(__name__)


class SSOAuthPlugin:
    """Runs first so every later plugin sees an authenticated request."""

    id = SSO_AUTH_PLUGIN_ID
    name = "SSO Authentication"
    version = "1.0.0"
    priority = SSO_AUTH_PRIORITY
    dependencies: list[str] = []

    def create_interceptor(self, context: PluginContext) -> ProxyInterceptor:
        """Bind an interceptor to the SSO credentials.

        Raises:
            AuthenticationError: If no credentials are available
        """
        if context.credentials is None:
            raise AuthenticationError("SSO credentials required for SSOAuthPlugin")

        interceptor = SSOAuthInterceptor(context.credentials)
        return ProxyInterceptor(name="sso-auth", on_request=interceptor.on_request)


class SSOAuthInterceptor:
    def __init__(self, credentials: SSOCredentials) -> None:
        self._cookie_header = credentials.cookie_header()

    async def on_request(self, context: ProxyContext) -> None:
        context.set_header(COOKIE_HEADER, self._cookie_header)
        logger.debug("sso_cookies_injected", request_id=context.request_id)
