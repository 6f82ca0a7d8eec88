"""Command-line interface for the CodeMie proxy."""

from .main import app, main


__all__ = ["app", "main"]
