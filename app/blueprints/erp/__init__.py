"""Product catalog, suppliers, price history and dictionaries (/erp)."""

from .routes import erp_bp  # noqa: F401
