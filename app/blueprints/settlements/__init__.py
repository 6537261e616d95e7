"""Installer settlements and advances (/settlements)."""

from .routes import settlements_bp  # noqa: F401
