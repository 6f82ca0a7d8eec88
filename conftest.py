"""Top-level pytest configuration for fixture registration.

Keeps ``pytest_plugins`` at the rootdir as pytest requires.
"""

# Register shared fixture modules used across the suite
pytest_plugins = [
    "tests.fixtures",
]
