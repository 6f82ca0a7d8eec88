"""Shared fixtures for codemie-proxy tests."""

from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from codemie_proxy.config.proxy import ProxyConfig
from codemie_proxy.plugins import PluginRegistry
from codemie_proxy.server import ProxyServer
from codemie_proxy.services.analytics import Analytics
from codemie_proxy.services.credentials import SSOCredentials
from tests.helpers import FakeUpstream, StubCredentialStore


TARGET_URL = "https://api.example.com/"


@pytest.fixture
def proxy_config() -> ProxyConfig:
    """Config for a provider that does not need SSO credentials."""
    return ProxyConfig(
        target_api_url=TARGET_URL,
        provider="openai",
        session_id="test-session",
    )


@pytest.fixture
def sso_config() -> ProxyConfig:
    return ProxyConfig(
        target_api_url=TARGET_URL,
        provider="ai-run-sso",
        integration_id="integration-42",
        model="claude-4",
        timeout=120,
        client_type="codemie-claude",
        session_id="test-session",
    )


@pytest.fixture
def sso_credentials() -> SSOCredentials:
    return SSOCredentials(
        cookies={"a": "1", "b": "2"},
        api_url="https://codemie.example.com",
    )


@pytest.fixture
def credential_store(sso_credentials: SSOCredentials) -> StubCredentialStore:
    return StubCredentialStore(sso_credentials)


@pytest.fixture
def analytics(tmp_path: Path) -> Analytics:
    return Analytics(tmp_path / "analytics" / "events.jsonl", batch_size=1000)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def log() -> list[tuple[str, str]]:
    """Shared call log for RecordingPlugin instances."""
    return []


ServerFactory = Callable[..., Awaitable[ProxyServer]]


@pytest.fixture
async def make_server(
    proxy_config: ProxyConfig,
) -> AsyncIterator[ServerFactory]:
    """Build initialized (not listening) servers and stop them afterwards.

    Keyword arguments are passed to ProxyServer; ``config`` defaults to the
    ``proxy_config`` fixture and ``registry`` to an empty registry.
    """
    servers: list[ProxyServer] = []

    async def factory(
        *,
        upstream: FakeUpstream | None = None,
        config: ProxyConfig | None = None,
        registry: PluginRegistry | None = None,
        **kwargs: Any,
    ) -> ProxyServer:
        if upstream is not None:
            kwargs.setdefault("transport", upstream.transport)
        server = ProxyServer(
            config or proxy_config,
            registry=registry if registry is not None else PluginRegistry(),
            **kwargs,
        )
        servers.append(server)
        await server.initialize()
        return server

    yield factory

    for server in servers:
        await server.stop()


@pytest.fixture
def asgi_client() -> Callable[[ProxyServer], httpx.AsyncClient]:
    """Client that talks to a server's ASGI app in-process."""

    def factory(server: ProxyServer) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=server.app),
            base_url="http://proxy.test",
        )

    return factory
