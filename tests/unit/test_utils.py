"""Tests for URL joining and header filtering."""

import httpx
import pytest

from codemie_proxy.utils.headers import extract_forward_headers, filter_response_headers
from codemie_proxy.utils.url import build_target_url


@pytest.mark.parametrize(
    ("base", "path"),
    [
        ("https://api.example.com", "/v1/chat"),
        ("https://api.example.com/", "/v1/chat"),
        ("https://api.example.com", "v1/chat"),
        ("https://api.example.com/", "v1/chat"),
    ],
)
def test_exactly_one_slash_between_base_and_path(base: str, path: str) -> None:
    assert build_target_url(base, path) == "https://api.example.com/v1/chat"


def test_base_path_prefix_and_query_are_kept() -> None:
    assert (
        build_target_url("https://gw.example.com/llm/", "/v1/messages?beta=true")
        == "https://gw.example.com/llm/v1/messages?beta=true"
    )


def test_root_path() -> None:
    assert build_target_url("https://api.example.com", "/") == "https://api.example.com/"


def test_forward_headers_drop_host_and_connection() -> None:
    raw = [
        (b"host", b"localhost:4001"),
        (b"connection", b"keep-alive"),
        (b"content-type", b"application/json"),
        (b"authorization", b"Bearer abc"),
    ]

    assert extract_forward_headers(raw) == {
        "content-type": "application/json",
        "authorization": "Bearer abc",
    }


def test_forward_headers_fold_repeated_values() -> None:
    raw = [
        (b"cookie", b"a=1"),
        (b"cookie", b"b=2"),
        (b"accept", b"text/plain"),
        (b"accept", b"application/json"),
    ]

    assert extract_forward_headers(raw) == {
        "cookie": "a=1; b=2",
        "accept": "text/plain, application/json",
    }


def test_response_headers_drop_hop_by_hop_and_keep_repeats() -> None:
    headers = httpx.Headers(
        [
            ("Content-Type", "text/event-stream"),
            ("Transfer-Encoding", "chunked"),
            ("Connection", "keep-alive"),
            ("Set-Cookie", "a=1"),
            ("Set-Cookie", "b=2"),
        ]
    )

    assert filter_response_headers(headers) == [
        (b"content-type", b"text/event-stream"),
        (b"set-cookie", b"a=1"),
        (b"set-cookie", b"b=2"),
    ]


def test_response_content_length_dropped_on_request() -> None:
    headers = httpx.Headers({"content-length": "12", "content-type": "text/plain"})

    assert filter_response_headers(headers) == [
        (b"content-length", b"12"),
        (b"content-type", b"text/plain"),
    ]
    assert filter_response_headers(headers, drop_content_length=True) == [
        (b"content-type", b"text/plain"),
    ]
