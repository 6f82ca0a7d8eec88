"""FastAPI application factory for the CodeMie proxy."""

from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from codemie_proxy import __version__


if TYPE_CHECKING:
    from codemie_proxy.server import ProxyServer


class ProxyEndpoint:
    """ASGI endpoint that hands every request to the proxy server.

    Starlette only skips method matching for ASGI endpoints, so this is a
    callable instance rather than a request handler function.
    """

    def __init__(self, proxy: "ProxyServer") -> None:
        self.proxy = proxy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive, send)
        response = await self.proxy.handle_request(request)
        await response(scope, receive, send)


def create_app(proxy: "ProxyServer") -> FastAPI:
    """Create the ASGI app that hands every request to ``proxy``.

    A single catch-all route covers every path and every method, including
    non-standard ones. There are no local endpoints; even ``/health`` is
    forwarded upstream.
    """
    app = FastAPI(
        title="CodeMie Proxy",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.router.routes.append(
        Route("/{path:path}", ProxyEndpoint(proxy), include_in_schema=False)
    )

    app.state.proxy = proxy
    return app
