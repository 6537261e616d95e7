"""Login, logout and first-admin bootstrap (/auth)."""

from .routes import auth_bp  # noqa: F401
