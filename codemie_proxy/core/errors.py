"""Error taxonomy and normalization for the CodeMie proxy."""

import asyncio
import builtins
from typing import Any

import httpx
from starlette.requests import ClientDisconnect


class ProxyError(Exception):
    """Base exception for proxy errors.

    Every error that reaches the client is rendered from an instance of this
    class (or a subclass) by :meth:`to_dict`.
    """

    kind = "proxy_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        if status_code is not None:
            self.status_code = status_code
        self.context: dict[str, Any] = dict(context or {})

    @property
    def is_operational(self) -> bool:
        """Whether this is an expected upstream condition rather than a bug."""
        return False

    def with_context(self, **context: Any) -> "ProxyError":
        """Merge additional context keys, keeping ones already present."""
        for key, value in context.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "statusCode": self.status_code,
            **self.context,
        }


class AuthenticationError(ProxyError):
    """Authentication error (401)."""

    kind = "authentication_error"
    status_code = 401

    def __init__(
        self,
        message: str = "Authentication failed",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)


class NetworkError(ProxyError):
    """Upstream unreachable or connection reset (502)."""

    kind = "network_error"
    status_code = 502

    def __init__(
        self,
        message: str = "Upstream unreachable",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)

    @property
    def is_operational(self) -> bool:
        return True


class TimeoutError(ProxyError):
    """Upstream deadline exceeded (504)."""

    kind = "timeout_error"
    status_code = 504

    def __init__(
        self,
        message: str = "Upstream request timed out",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)

    @property
    def is_operational(self) -> bool:
        return True


class ClientAbortedError(Exception):
    """Raised when the downstream client disconnects mid-request.

    Not an error condition: the user cancelled their session.
    """


class PluginNotFoundError(KeyError):
    """Raised when a plugin id is not registered."""

    def __init__(self, plugin_id: str) -> None:
        super().__init__(plugin_id)
        self.plugin_id = plugin_id

    def __str__(self) -> str:
        return f"Plugin not found: {self.plugin_id}"


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""


def is_client_abort(error: BaseException) -> bool:
    """Return True when ``error`` represents a downstream disconnect."""
    return isinstance(
        error, ClientAbortedError | ClientDisconnect | asyncio.CancelledError
    )


def normalize_error(
    error: BaseException, context: dict[str, Any] | None = None
) -> ProxyError:
    """Classify an arbitrary failure into a :class:`ProxyError`.

    Args:
        error: The exception to classify
        context: Optional context merged into the error (e.g. requestId, url)

    Returns:
        A ProxyError carrying kind, status code and context
    """
    context = context or {}

    if isinstance(error, ProxyError):
        return error.with_context(**context)

    if isinstance(error, httpx.TimeoutException | builtins.TimeoutError):
        normalized: ProxyError = TimeoutError(
            _describe("Upstream request timed out", error)
        )
    elif isinstance(error, httpx.NetworkError | ConnectionError):
        normalized = NetworkError(_describe("Upstream unreachable", error))
    elif isinstance(error, httpx.HTTPError):
        normalized = ProxyError(_describe("Upstream protocol error", error))
    else:
        normalized = ProxyError(str(error) or type(error).__name__)

    normalized.context["errorType"] = type(error).__name__
    normalized.__cause__ = error
    return normalized.with_context(**context)


def _describe(prefix: str, error: BaseException) -> str:
    detail = str(error)
    return f"{prefix}: {detail}" if detail else prefix
