"""
app/blueprints/montages/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose montages_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import montages_bp  # noqa: F401
