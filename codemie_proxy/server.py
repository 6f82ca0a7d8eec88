"""The CodeMie proxy server.

Accepts plain HTTP from a local coding agent, runs each request through the
plugin interceptor pipeline and streams the upstream response back chunk by
chunk. One server owns one configuration, one plugin interceptor list and
one upstream HTTP client for its whole lifetime.
"""

import asyncio
import contextlib
import errno
import socket
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.types import Receive, Scope, Send

from codemie_proxy.api.app import create_app
from codemie_proxy.config.constants import (
    ANALYTICS_PLUGIN_ID,
    BODY_METHODS,
    DEFAULT_TIMEOUT_SECONDS,
    SSO_AUTH_PLUGIN_ID,
)
from codemie_proxy.config.proxy import ProxyConfig
from codemie_proxy.core.context import ProxyContext, ResponseMetadata
from codemie_proxy.core.errors import (
    AuthenticationError,
    is_client_abort,
    normalize_error,
)
from codemie_proxy.core.http_client import ProxyHTTPClient, UpstreamResponse
from codemie_proxy.plugins import (
    PluginContext,
    PluginRegistry,
    ProxyInterceptor,
    create_default_registry,
)
from codemie_proxy.services.analytics import Analytics
from codemie_proxy.services.credentials import CredentialStore
from codemie_proxy.utils.headers import extract_forward_headers, filter_response_headers
from codemie_proxy.utils.url import build_target_url


logger = structlog.get_logger(__name__)

# Non-standard status used when the client went away before a response
CLIENT_CLOSED_REQUEST = 499

# Seconds uvicorn waits for in-flight responses on stop
GRACEFUL_SHUTDOWN_SECONDS = 5

_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1", "::"})


@dataclass(frozen=True)
class ProxyAddress:
    """Where a started proxy is listening."""

    port: int
    url: str


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the embedding program."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class UpstreamStreamingResponse(StreamingResponse):
    """Streaming response that releases its upstream response when sent.

    The body iterator also closes the upstream response, but it never runs
    if sending the response start fails.
    """

    def __init__(
        self,
        content: AsyncIterator[bytes],
        upstream: UpstreamResponse,
        status_code: int = 200,
    ) -> None:
        super().__init__(content, status_code=status_code)
        self.upstream = upstream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.upstream.aclose()


def bind_listen_socket(host: str, port: int | None) -> socket.socket:
    """Bind a listening TCP socket, falling back to an OS-assigned port.

    When ``port`` is set but already in use, a random free port is bound
    instead. Any other bind failure is raised.
    """
    if port:
        try:
            return socket.create_server((host, port))
        except OSError as e:
            if e.errno != errno.EADDRINUSE:
                raise
            logger.warning("port_in_use_falling_back", host=host, port=port)
    return socket.create_server((host, 0))


class ProxyServer:
    """Local forwarding proxy with a plugin interceptor pipeline.

    Usage::

        server = ProxyServer(config, credential_store=CredentialStore(path))
        address = await server.start()
        ...
        await server.stop()

    The server is also an async context manager.
    """

    def __init__(
        self,
        config: ProxyConfig,
        *,
        registry: PluginRegistry | None = None,
        credential_store: CredentialStore | None = None,
        analytics: Analytics | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the server without opening any listener.

        Args:
            config: Immutable proxy configuration
            registry: Plugin registry; a registry with the built-in plugins
                is created when omitted
            credential_store: Source of SSO credentials
            analytics: Telemetry sink handed to plugins
            transport: Optional upstream transport for the HTTP client
        """
        self.config = config
        self.registry = registry if registry is not None else create_default_registry()
        self._credential_store = credential_store
        self._analytics = analytics
        self._transport = transport

        self._interceptors: list[ProxyInterceptor] = []
        self._http_client: ProxyHTTPClient | None = None
        self._app: FastAPI | None = None
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._address: ProxyAddress | None = None

    @property
    def app(self) -> FastAPI:
        if self._app is None:
            self._app = create_app(self)
        return self._app

    @property
    def interceptors(self) -> list[ProxyInterceptor]:
        """Interceptors created by the last :meth:`initialize`, in run order."""
        return list(self._interceptors)

    @property
    def address(self) -> ProxyAddress | None:
        return self._address

    @property
    def is_running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    async def initialize(self) -> None:
        """Load credentials, build interceptors and the upstream client.

        Does not open a listener; :meth:`start` calls this first.

        Raises:
            AuthenticationError: If the provider needs SSO and no valid
                credentials are stored
        """
        credentials = None
        if self.config.requires_sso:
            if self._credential_store is not None:
                credentials = await self._credential_store.retrieve_sso_credentials()
            if credentials is None:
                raise AuthenticationError(
                    "SSO credentials not found. Please run: codemie auth login"
                )
        else:
            # Cookie injection only applies to the SSO provider
            self.registry.update_config(SSO_AUTH_PLUGIN_ID, enabled=False)

        if self._analytics is not None and self._analytics.is_enabled:
            if self.registry.get(ANALYTICS_PLUGIN_ID) is not None:
                await self.registry.set_enabled(ANALYTICS_PLUGIN_ID, True)

        plugin_context = PluginContext(
            config=self.config,
            logger=structlog.get_logger("codemie_proxy.plugins"),
            credentials=credentials,
            analytics=self._analytics,
        )
        self._interceptors = await self.registry.initialize(plugin_context)
        logger.info(
            "proxy_plugins_initialized",
            interceptors=[interceptor.name for interceptor in self._interceptors],
        )

        if self._http_client is None or self._http_client.is_closed:
            self._http_client = ProxyHTTPClient(
                timeout=self.config.timeout or DEFAULT_TIMEOUT_SECONDS,
                transport=self._transport,
            )

    async def start(self) -> ProxyAddress:
        """Initialize and start listening.

        Returns:
            The bound port and the local base URL agents should use

        Raises:
            RuntimeError: If the server is already running
            AuthenticationError: If SSO credentials are missing
            OSError: If the listener cannot be bound for a reason other than
                the port being taken
        """
        if self.is_running:
            raise RuntimeError("Proxy server is already running")

        await self.initialize()

        sock = bind_listen_socket(self.config.host, self.config.port)
        port = sock.getsockname()[1]

        uvicorn_config = uvicorn.Config(
            self.app,
            log_config=None,
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_SECONDS,
        )
        self._server = _EmbeddedServer(uvicorn_config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))

        try:
            while not self._server.started:
                if self._serve_task.done():
                    self._serve_task.result()
                    raise RuntimeError("Proxy server exited during startup")
                await asyncio.sleep(0.01)
        except BaseException:
            sock.close()
            await self._close_http_client()
            self._server = None
            self._serve_task = None
            raise

        display_host = (
            "localhost" if self.config.host in _LOOPBACK_HOSTS else self.config.host
        )
        self._address = ProxyAddress(port=port, url=f"http://{display_host}:{port}")
        logger.info(
            "proxy_server_started",
            url=self._address.url,
            target=self.config.target_api_url,
            provider=self.config.provider,
            requested_port=self.config.port,
        )
        return self._address

    async def wait_closed(self) -> None:
        """Block until the listener stops."""
        if self._serve_task is not None:
            await asyncio.shield(self._serve_task)

    async def stop(self) -> None:
        """Flush telemetry, stop listening and release the upstream client.

        Safe to call more than once and on a server that never started.
        """
        if self._analytics is not None and self._analytics.is_enabled:
            try:
                await self._analytics.flush()
            except Exception as e:
                logger.warning("analytics_flush_on_stop_failed", error=str(e))

        if self._server is not None:
            self._server.should_exit = True
            if self._serve_task is not None:
                await self._serve_task
            self._server = None
            self._serve_task = None
            logger.info("proxy_server_stopped")

        await self._close_http_client()
        self._address = None

    async def __aenter__(self) -> "ProxyServer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def _close_http_client(self) -> None:
        if self._http_client is not None:
            await self._http_client.close()
            self._http_client = None

    async def handle_request(self, request: Request) -> Response:
        """Run one inbound request through the pipeline.

        Failures before the response has started are rendered as a JSON error
        body. A client disconnect is never reported as an error.
        """
        context: ProxyContext | None = None
        upstream: UpstreamResponse | None = None

        try:
            context = await self._build_context(request)

            await self._run_hooks("on_request", context)

            if self._http_client is None:
                raise RuntimeError("Proxy server is not initialized")
            upstream = await self._http_client.forward(
                context.target_url or self._target_url(context.url),
                method=context.method,
                headers=context.headers,
                body=context.request_body,
            )

            await self._run_hooks("on_response_headers", context, upstream.headers)

            response = UpstreamStreamingResponse(
                self._stream_response(context, upstream),
                upstream,
                status_code=upstream.status_code,
            )
            response.raw_headers = filter_response_headers(
                upstream.headers,
                drop_content_length=self._has_chunk_hooks,
            )
            return response

        except asyncio.CancelledError:
            if upstream is not None:
                await upstream.aclose()
            raise
        except Exception as e:
            if upstream is not None:
                await upstream.aclose()
            if is_client_abort(e):
                return Response(status_code=CLIENT_CLOSED_REQUEST)
            return await self._handle_error(e, request, context)

    @property
    def _has_chunk_hooks(self) -> bool:
        return any(i.on_response_chunk is not None for i in self._interceptors)

    def _target_url(self, request_url: str) -> str:
        return build_target_url(self.config.target_api_url, request_url)

    async def _build_context(self, request: Request) -> ProxyContext:
        method = request.method.upper()
        path = request.scope.get("raw_path") or request.url.path.encode()
        url = path.split(b"?", 1)[0].decode("latin-1")
        query = request.scope.get("query_string", b"")
        if query:
            url = f"{url}?{query.decode('latin-1')}"

        body: bytes | None = None
        if method in BODY_METHODS:
            body = await request.body() or None

        context = ProxyContext.create(
            self.config,
            method=method,
            url=url,
            headers=extract_forward_headers(request.headers.raw),
            request_body=body,
        )
        context.target_url = self._target_url(context.url)

        logger.debug(
            "proxy_request_received",
            request_id=context.request_id,
            method=context.method,
            url=context.url,
            body_size=context.body_size,
        )
        return context

    async def _run_hooks(self, stage: str, context: ProxyContext, *args: Any) -> None:
        """Call ``stage`` on every interceptor that sets it, in priority order.

        A hook that raises is logged and the remaining hooks still run.
        """
        for interceptor in self._interceptors:
            hook = getattr(interceptor, stage)
            if hook is None:
                continue
            try:
                await hook(context, *args)
            except Exception as e:
                logger.error(
                    "interceptor_hook_failed",
                    stage=stage,
                    request_id=context.request_id,
                    interceptor=interceptor.name,
                    error=str(e),
                    exc_info=e,
                )

    async def _run_chunk_hooks(
        self, context: ProxyContext, chunk: bytes
    ) -> bytes | None:
        """Pass a chunk through every chunk hook.

        Returns None when a hook drops the chunk. A hook that raises is
        logged and the chunk continues unchanged to the next hook.
        """
        current = chunk
        for interceptor in self._interceptors:
            if interceptor.on_response_chunk is None:
                continue
            try:
                result = await interceptor.on_response_chunk(context, current)
            except Exception as e:
                logger.error(
                    "response_chunk_hook_failed",
                    request_id=context.request_id,
                    interceptor=interceptor.name,
                    error=str(e),
                    exc_info=e,
                )
                continue
            if result is None:
                return None
            current = result
        return current

    async def _stream_response(
        self, context: ProxyContext, upstream: UpstreamResponse
    ) -> AsyncIterator[bytes]:
        """Relay upstream chunks downstream as they arrive.

        The upstream response is closed however the stream ends. Completion
        hooks only run after the body was fully relayed.
        """
        bytes_sent = 0
        try:
            async for chunk in upstream.aiter_chunks():
                processed = await self._run_chunk_hooks(context, chunk)
                if processed is None:
                    continue
                yield processed
                bytes_sent += len(processed)
        except Exception as e:
            if is_client_abort(e):
                return
            await self._run_hooks("on_error", context, e)
            proxy_error = normalize_error(e, {"requestId": context.request_id})
            log = logger.debug if proxy_error.is_operational else logger.error
            log(
                "proxy_stream_failed",
                request_id=context.request_id,
                kind=proxy_error.kind,
                error=proxy_error.message,
                bytes_sent=bytes_sent,
                exc_info=None if proxy_error.is_operational else e,
            )
            # Status and headers are already sent. An upstream failure ends
            # the body early; anything else drops the connection.
            if proxy_error.is_operational:
                return
            raise
        finally:
            await upstream.aclose()

        metadata = ResponseMetadata(
            status_code=upstream.status_code,
            status_message=upstream.reason_phrase,
            headers=dict(upstream.headers),
            bytes_sent=bytes_sent,
            duration_ms=context.duration_ms,
        )
        await self._run_hooks("on_response_complete", context, metadata)

        logger.debug(
            "proxy_response_completed",
            request_id=context.request_id,
            status_code=metadata.status_code,
            bytes_sent=bytes_sent,
            duration_ms=round(metadata.duration_ms, 2),
        )

    async def _handle_error(
        self,
        error: Exception,
        request: Request,
        context: ProxyContext | None,
    ) -> Response:
        """Report a pre-stream failure and render the JSON error body."""
        if context is None:
            context = ProxyContext.create(
                self.config,
                method=request.method,
                url=request.url.path or "/",
            )

        await self._run_hooks("on_error", context, error)

        proxy_error = normalize_error(
            error, {"requestId": context.request_id, "url": context.url}
        )
        log = logger.debug if proxy_error.is_operational else logger.error
        log(
            "proxy_request_failed",
            request_id=context.request_id,
            kind=proxy_error.kind,
            status_code=proxy_error.status_code,
            error=proxy_error.message,
            exc_info=None if proxy_error.is_operational else error,
        )

        return JSONResponse(
            status_code=proxy_error.status_code,
            content={
                "error": proxy_error.to_dict(),
                "requestId": context.request_id,
                "timestamp": datetime.now(UTC).isoformat(),
            },
        )
