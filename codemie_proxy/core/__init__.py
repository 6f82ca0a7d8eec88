"""Core proxy building blocks."""
