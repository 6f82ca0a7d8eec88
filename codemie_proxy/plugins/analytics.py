"""Analytics plugin: records request, response and error telemetry.

Only metadata is recorded. Request and response bodies are never read here.
"""

import structlog

from codemie_proxy.config.constants import (
    ANALYTICS_PLUGIN_ID,
    ANALYTICS_PRIORITY,
    API_REQUEST_EVENT,
    API_RESPONSE_EVENT,
    PROXY_ERROR_EVENT,
)
from codemie_proxy.core.context import ProxyContext, ResponseMetadata
from codemie_proxy.services.analytics import Analytics

from .protocol import PluginContext, ProxyInterceptor


logger = structlog.get_logger(__name__)


class AnalyticsPlugin:
    """Runs last; disabled unless telemetry is globally enabled."""

    id = ANALYTICS_PLUGIN_ID
    name = "Analytics"
    version = "2.0.0"
    priority = ANALYTICS_PRIORITY
    dependencies: list[str] = []

    def create_interceptor(self, context: PluginContext) -> ProxyInterceptor:
        if context.analytics is None:
            raise ValueError("Analytics instance required")

        interceptor = AnalyticsInterceptor(context.analytics)
        return ProxyInterceptor(
            name="analytics",
            on_request=interceptor.on_request,
            on_response_complete=interceptor.on_response_complete,
            on_error=interceptor.on_error,
        )


class AnalyticsInterceptor:
    """Each recording call swallows sink failures after logging them."""

    def __init__(self, analytics: Analytics) -> None:
        self._analytics = analytics

    async def on_request(self, context: ProxyContext) -> None:
        if not self._analytics.is_enabled:
            return

        try:
            await self._analytics.track(
                API_REQUEST_EVENT,
                {
                    "requestId": context.request_id,
                    "method": context.method,
                    "url": context.url,
                    "targetUrl": context.target_url,
                    "bodySize": context.body_size,
                },
            )
        except Exception as e:
            logger.error(
                "analytics_track_request_failed",
                request_id=context.request_id,
                error=str(e),
                exc_info=e,
            )

    async def on_response_complete(
        self, context: ProxyContext, metadata: ResponseMetadata
    ) -> None:
        if not self._analytics.is_enabled:
            return

        try:
            await self._analytics.track(
                API_RESPONSE_EVENT,
                {
                    "requestId": context.request_id,
                    "statusCode": metadata.status_code,
                    "statusMessage": metadata.status_message,
                    "bytesSent": metadata.bytes_sent,
                },
                {"latencyMs": metadata.duration_ms},
            )
        except Exception as e:
            logger.error(
                "analytics_track_response_failed",
                request_id=context.request_id,
                error=str(e),
                exc_info=e,
            )

    async def on_error(self, context: ProxyContext, error: BaseException) -> None:
        if not self._analytics.is_enabled:
            return

        try:
            await self._analytics.track(
                PROXY_ERROR_EVENT,
                {
                    "requestId": context.request_id,
                    "errorType": type(error).__name__,
                    "errorMessage": str(error),
                    "url": context.url,
                },
            )
        except Exception as e:
            logger.error(
                "analytics_track_error_failed",
                request_id=context.request_id,
                error=str(e),
                exc_info=e,
            )
