"""Test doubles shared across the suite."""

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable, Mapping

import httpx

from codemie_proxy.core.context import ProxyContext, ResponseMetadata
from codemie_proxy.plugins import PluginContext, ProxyInterceptor
from codemie_proxy.services.credentials import SSOCredentials


ChunkFn = Callable[[bytes], bytes | None]


class FakeUpstream:
    """Upstream API stand-in served through ``httpx.MockTransport``.

    Records every request it receives and answers with a streamed body made
    of ``chunks``. ``fail_after`` breaks the stream after that many chunks by
    raising ``fail_with`` (a read error by default). ``error`` is raised
    instead of answering at all. With ``gate`` set, no body bytes are
    produced until the event is set.
    """

    def __init__(
        self,
        chunks: Iterable[bytes] = (b'{"ok": true}',),
        status_code: int = 200,
        headers: dict[str, str] | list[tuple[str, str]] | None = None,
        error: BaseException | None = None,
        fail_after: int | None = None,
        fail_with: BaseException | None = None,
        delay: float = 0.0,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.chunks = list(chunks)
        self.status_code = status_code
        self.headers = headers if headers is not None else {"content-type": "application/json"}
        self.error = error
        self.fail_after = fail_after
        self.fail_with = fail_with
        self.delay = delay
        self.gate = gate
        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last_request(self) -> httpx.Request:
        assert self.requests, "upstream received no requests"
        return self.requests[-1]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(
            self.status_code,
            headers=self.headers,
            content=self._stream(),
        )

    async def _stream(self) -> AsyncIterator[bytes]:
        if self.gate is not None:
            await self.gate.wait()
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise self.fail_with or httpx.ReadError("upstream connection reset")
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk


class StubCredentialStore:
    """Credential store returning fixed credentials."""

    def __init__(self, credentials: SSOCredentials | None) -> None:
        self.credentials = credentials
        self.calls = 0

    async def retrieve_sso_credentials(self) -> SSOCredentials | None:
        self.calls += 1
        return self.credentials


class RecordingPlugin:
    """Plugin whose interceptor appends ``(plugin_id, stage)`` to a shared log.

    Stages listed in ``fail_on`` raise instead; ``"factory"`` makes
    interceptor creation itself fail. A chunk hook is only installed when
    ``chunk_fn`` is given or the chunk stage is set to fail.
    """

    version = "1.0.0"

    def __init__(
        self,
        plugin_id: str,
        priority: int,
        log: list[tuple[str, str]],
        *,
        fail_on: Iterable[str] = (),
        chunk_fn: ChunkFn | None = None,
        dependencies: Iterable[str] = (),
    ) -> None:
        self.id = plugin_id
        self.name = f"Recording {plugin_id}"
        self.priority = priority
        self.dependencies = list(dependencies)
        self.log = log
        self.fail_on = set(fail_on)
        self.chunk_fn = chunk_fn
        self.errors: list[BaseException] = []
        self.metadata: list[ResponseMetadata] = []
        self.response_headers: list[dict[str, str]] = []

    def _record(self, stage: str) -> None:
        self.log.append((self.id, stage))
        if stage in self.fail_on:
            raise RuntimeError(f"{self.id} failed in {stage}")

    def create_interceptor(self, context: PluginContext) -> ProxyInterceptor:
        if "factory" in self.fail_on:
            raise RuntimeError(f"{self.id} factory failed")

        async def on_request(ctx: ProxyContext) -> None:
            self._record("on_request")
            ctx.metadata.setdefault("seen_by", []).append(self.id)

        async def on_response_headers(
            ctx: ProxyContext, headers: Mapping[str, str]
        ) -> None:
            self.response_headers.append(dict(headers))
            self._record("on_response_headers")

        async def on_response_chunk(ctx: ProxyContext, chunk: bytes) -> bytes | None:
            self._record("on_response_chunk")
            assert self.chunk_fn is not None
            return self.chunk_fn(chunk)

        async def on_response_complete(
            ctx: ProxyContext, metadata: ResponseMetadata
        ) -> None:
            self.metadata.append(metadata)
            self._record("on_response_complete")

        async def on_error(ctx: ProxyContext, error: BaseException) -> None:
            self.errors.append(error)
            self._record("on_error")

        has_chunk_hook = self.chunk_fn is not None or "on_response_chunk" in self.fail_on
        return ProxyInterceptor(
            name=self.id,
            on_request=on_request,
            on_response_headers=on_response_headers,
            on_response_chunk=on_response_chunk if has_chunk_hook else None,
            on_response_complete=on_response_complete,
            on_error=on_error,
        )


class AsyncFactoryPlugin:
    """Plugin whose factory is a coroutine."""

    name = "Async factory"
    version = "0.1.0"
    dependencies: list[str] = []

    def __init__(self, plugin_id: str = "async-factory", priority: int = 50) -> None:
        self.id = plugin_id
        self.priority = priority
        self.toggles: list[bool] = []

    async def create_interceptor(self, context: PluginContext) -> ProxyInterceptor:
        await asyncio.sleep(0)
        return ProxyInterceptor(name=self.id)

    async def on_enable(self) -> None:
        self.toggles.append(True)

    async def on_disable(self) -> None:
        self.toggles.append(False)


def stages(log: list[tuple[str, str]], stage: str) -> list[str]:
    """Plugin ids that ran ``stage``, in call order."""
    return [plugin_id for plugin_id, logged in log if logged == stage]


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)
