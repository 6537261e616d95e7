"""User accounts, roles and installer rates (/team)."""

from .routes import team_bp  # noqa: F401
