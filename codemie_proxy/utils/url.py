"""Upstream URL construction."""


def build_target_url(base_url: str, request_path: str) -> str:
    """Join the upstream base URL and an inbound request path.

    Exactly one ``/`` separates the two, whether or not the base ends with a
    slash or the path starts with one.

    Examples:
        >>> build_target_url("https://api.example.com/", "/v1/chat")
        'https://api.example.com/v1/chat'
        >>> build_target_url("https://api.example.com/llm", "v1/chat")
        'https://api.example.com/llm/v1/chat'
    """
    if base_url.endswith("/"):
        return base_url + request_path.removeprefix("/")
    if request_path.startswith("/"):
        return base_url + request_path
    return f"{base_url}/{request_path}"
