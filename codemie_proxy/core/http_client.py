"""Streaming HTTP forwarding client.

Wraps a single ``httpx.AsyncClient`` per proxy server. Responses are opened in
streaming mode and handed back unread, so the body is only ever pulled one
chunk at a time by the caller.
"""

import asyncio
import builtins
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx
import structlog

from codemie_proxy.config.constants import DEFAULT_TIMEOUT_SECONDS

from .errors import NetworkError, ProxyError, TimeoutError


logger = structlog.get_logger(__name__)


class UpstreamResponse:
    """Handle on an upstream response whose body has not been read yet."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._consumed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def reason_phrase(self) -> str:
        return self._response.reason_phrase or "OK"

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    async def aiter_chunks(self) -> AsyncIterator[bytes]:
        """Yield raw body chunks exactly as received from upstream.

        Content encodings are not decoded; the upstream ``content-encoding``
        header is forwarded with the bytes. The iterator can be consumed once.

        Raises:
            RuntimeError: If the body was already consumed
            NetworkError: If the upstream connection drops mid-body
            TimeoutError: If a body read times out
        """
        if self._consumed:
            raise RuntimeError("Upstream response body already consumed")
        self._consumed = True

        try:
            async for chunk in self._response.aiter_raw():
                if chunk:
                    yield chunk
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Upstream body read timed out: {e}") from e
        except httpx.NetworkError as e:
            raise NetworkError(f"Upstream connection lost: {e}") from e
        except httpx.HTTPError as e:
            raise ProxyError(f"Upstream protocol error: {e}") from e

    async def aclose(self) -> None:
        await self._response.aclose()


class ProxyHTTPClient:
    """Forwards requests upstream and exposes streaming responses.

    Certificate validation is disabled so self-signed upstream certificates
    work. Requests are never retried.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        verify: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the forwarding client.

        Args:
            timeout: Seconds allowed for connecting and receiving headers
            verify: Upstream certificate validation (off by default)
            transport: Optional transport, e.g. ``httpx.MockTransport`` in tests
            **kwargs: Additional httpx.AsyncClient arguments
        """
        self.timeout = timeout
        # Body reads are unbounded; forward() bounds connect and headers
        client_timeout = httpx.Timeout(
            connect=timeout,
            read=None,
            write=timeout,
            pool=timeout,
        )
        self._client = httpx.AsyncClient(
            timeout=client_timeout,
            verify=verify,
            transport=transport,
            follow_redirects=False,
            **kwargs,
        )
        logger.debug(
            "proxy_http_client_created",
            timeout=timeout,
            verify=verify,
            custom_transport=transport is not None,
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def forward(
        self,
        url: str,
        *,
        method: str,
        headers: Mapping[str, str],
        body: bytes | None = None,
    ) -> UpstreamResponse:
        """Send a request upstream and return once response headers arrive.

        Args:
            url: Absolute upstream URL
            method: HTTP method
            headers: Outbound headers
            body: Raw request body, if any

        Returns:
            UpstreamResponse with an unread body

        Raises:
            NetworkError: Connection refused, unreachable or reset
            TimeoutError: Connect or header deadline exceeded
            ProxyError: Any other protocol-level failure
        """
        request = self._client.build_request(
            method=method,
            url=url,
            headers=dict(headers),
            content=body,
        )

        try:
            async with asyncio.timeout(self.timeout):
                response = await self._client.send(request, stream=True)
        except (httpx.TimeoutException, builtins.TimeoutError) as e:
            raise TimeoutError(
                f"Upstream request to {url} timed out after {self.timeout}s"
            ) from e
        except httpx.NetworkError as e:
            raise NetworkError(f"Failed to reach upstream {url}: {e}") from e
        except httpx.HTTPError as e:
            raise ProxyError(f"Upstream protocol error for {url}: {e}") from e

        logger.debug(
            "upstream_response_headers",
            method=method,
            url=url,
            status_code=response.status_code,
        )
        return UpstreamResponse(response)

    async def close(self) -> None:
        """Release pooled connections."""
        if not self._client.is_closed:
            await self._client.aclose()
            logger.debug("proxy_http_client_closed")
