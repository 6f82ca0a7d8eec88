"""Reusable CLI option validators."""
