"""Collaborator services used by the proxy."""

from .analytics import Analytics
from .credentials import CredentialStore, SSOCredentials


__all__ = ["Analytics", "CredentialStore", "SSOCredentials"]
