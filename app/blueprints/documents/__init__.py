"""Read-only company document archive (/documents)."""

from .routes import documents_bp  # noqa: F401
