"""Shared pytest configuration for codemie-proxy tests."""

import pytest

from codemie_proxy.core.logging import setup_logging
from codemie_proxy.core.session import reset_session_id


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom settings."""
    config.option.asyncio_mode = "auto"

    # Same structlog pipeline as the application
    setup_logging(json_logs=False, log_level_name="DEBUG")


@pytest.fixture(autouse=True)
def fresh_session_id():
    """Give every test its own process session id."""
    reset_session_id()
    yield
    reset_session_id()
