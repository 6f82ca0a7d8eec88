"""Configuration constants for the CodeMie proxy."""

# Provider identifiers
SSO_PROVIDER = "ai-run-sso"

# Server defaults
DEFAULT_HOST = "localhost"
DEFAULT_TIMEOUT_SECONDS = 300  # 5 minutes, upstream connect + headers

# Methods whose inbound body is read and forwarded
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

# Inbound headers never forwarded upstream
STRIPPED_REQUEST_HEADERS = frozenset({"host", "connection"})

# Upstream headers never copied onto the downstream response
STRIPPED_RESPONSE_HEADERS = frozenset({"transfer-encoding", "connection"})

# Outbound routing headers
REQUEST_ID_HEADER = "X-CodeMie-Request-ID"
SESSION_ID_HEADER = "X-CodeMie-Session-ID"
INTEGRATION_HEADER = "X-CodeMie-Integration"
MODEL_HEADER = "X-CodeMie-CLI-Model"
TIMEOUT_HEADER = "X-CodeMie-CLI-Timeout"
CLIENT_HEADER = "X-CodeMie-Client"
COOKIE_HEADER = "Cookie"

# Plugin identifiers and priorities
SSO_AUTH_PLUGIN_ID = "@codemie/proxy-sso-auth"
HEADER_INJECTION_PLUGIN_ID = "@codemie/proxy-headers"
ANALYTICS_PLUGIN_ID = "@codemie/proxy-analytics"

SSO_AUTH_PRIORITY = 10
HEADER_INJECTION_PRIORITY = 20
ANALYTICS_PRIORITY = 100

MIN_PLUGIN_PRIORITY = 0
MAX_PLUGIN_PRIORITY = 1000

# Analytics event names
API_REQUEST_EVENT = "api_request"
API_RESPONSE_EVENT = "api_response"
PROXY_ERROR_EVENT = "proxy_error"
