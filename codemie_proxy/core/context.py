"""Per-request proxy context and response metadata."""

import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from codemie_proxy.config.proxy import ProxyConfig

from .session import get_session_id


@dataclass
class ProxyContext:
    """State for exactly one inbound request.

    ``headers`` is the outbound header map. Request-stage interceptors mutate
    it in place; it is the only way they affect the forwarded request.
    """

    request_id: str
    session_id: str
    agent_name: str
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    request_body: bytes | None = None
    target_url: str | None = None
    request_start_time: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        config: ProxyConfig,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        request_body: bytes | None = None,
        request_id: str | None = None,
    ) -> "ProxyContext":
        """Create a context with a fresh request id and the process session id."""
        return cls(
            request_id=request_id or str(uuid.uuid4()),
            session_id=config.session_id or get_session_id(),
            agent_name=config.client_type or "unknown",
            method=method or "GET",
            url=url or "/",
            headers=headers if headers is not None else {},
            request_body=request_body,
        )

    @property
    def body_size(self) -> int:
        return len(self.request_body) if self.request_body else 0

    @property
    def duration_ms(self) -> float:
        return (time.time() - self.request_start_time) * 1000

    def set_header(self, name: str, value: str) -> None:
        """Set an outbound header, replacing any existing one regardless of case."""
        for existing in [k for k in self.headers if k.lower() == name.lower()]:
            del self.headers[existing]
        self.headers[name] = value


@dataclass(frozen=True)
class ResponseMetadata:
    """Response facts available once the body has been fully streamed."""

    status_code: int
    status_message: str
    headers: Mapping[str, str]
    bytes_sent: int
    duration_ms: float
