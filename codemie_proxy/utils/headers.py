from collections.abc import Iterable

import httpx

from codemie_proxy.config.constants import (
    STRIPPED_REQUEST_HEADERS,
    STRIPPED_RESPONSE_HEADERS,
)


def extract_forward_headers(raw_headers: Iterable[tuple[bytes, bytes]]) -> dict[str, str]:
    """Build the outbound header map from raw ASGI request headers.

    ``Host`` and ``Connection`` are dropped. Repeated headers are folded into
    one value (``; `` for cookies, ``, `` otherwise).
    """
    headers: dict[str, str] = {}
    for name_bytes, value_bytes in raw_headers:
        name = name_bytes.decode("latin-1").lower()
        if name in STRIPPED_REQUEST_HEADERS:
            continue
        value = value_bytes.decode("latin-1")
        if name in headers:
            separator = "; " if name == "cookie" else ", "
            headers[name] = f"{headers[name]}{separator}{value}"
        else:
            headers[name] = value
    return headers


def filter_response_headers(
    headers: httpx.Headers, drop_content_length: bool = False
) -> list[tuple[bytes, bytes]]:
    """Upstream headers to copy downstream, as raw ASGI header pairs.

    Repeated headers such as ``set-cookie`` are kept as separate entries.
    ``content-length`` is dropped on request, for bodies that chunk hooks
    may resize.
    """
    excluded = set(STRIPPED_RESPONSE_HEADERS)
    if drop_content_length:
        excluded.add("content-length")
    return [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in headers.multi_items()
        if name.lower() not in excluded
    ]
