"""
Utility functions shared across the blueprints. This includes:
- form parsing helpers (decimal with comma, optional int, dates, checkboxes)
- safe local redirect targets (next= chain)
- template formatting (money, dates)
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from urllib.parse import urlparse

from flask import request, url_for


def parse_decimal(value: str | None) -> Decimal | None:
    """Parse decimal from user input (accepts comma or dot and spaces as thousand separators)."""
    if value is None:
        return None
    raw = str(value).strip().replace(" ", "").replace(",", ".")
    if raw == "":
        return None
    try:
        result = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def parse_optional_int(value: str | None) -> int | None:
    if value is None:
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_datetime(value: str | None) -> datetime | None:
    """HTML date / datetime-local input -> datetime (None for empty or invalid)."""
    raw = (value or "").strip()
    if not raw:
        return None
    for fmt in ("%Y-%m-%dT%H:%M", "%Y-%m-%d"):
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    return None


def form_str(name: str) -> str | None:
    """Stripped form value or None."""
    return (request.form.get(name) or "").strip() or None


def form_flag(name: str) -> bool:
    return request.form.get(name) in ("on", "1", "true", "yes")


def normalize_digits(value: str | None) -> str:
    """Keep only digits (NIP, phone filters)."""
    if not value:
        return ""
    return "".join(ch for ch in str(value) if ch.isdigit())


def safe_next_url(raw_next: str | None, fallback_endpoint: str, **fallback_kwargs) -> str:
    """
    Return a safe local next URL.

    Only relative paths starting with "/" are accepted; anything else
    falls back to the given endpoint.
    """
    fallback = url_for(fallback_endpoint, **fallback_kwargs)
    if not raw_next or not raw_next.startswith("/") or raw_next.startswith("//"):
        return fallback
    parsed = urlparse(raw_next)
    if parsed.scheme or parsed.netloc:
        return fallback
    return raw_next


def format_money(value, currency: str = "PLN") -> str:
    """1234.5 -> '1 234,50 PLN' (Polish formatting)."""
    if value is None:
        return "—"
    amount = parse_decimal(value) if not isinstance(value, Decimal) else value
    if amount is None:
        return "—"
    text = f"{amount.quantize(Decimal('0.01')):,.2f}".replace(",", " ").replace(".", ",")
    return f"{text} {currency}".strip()


def format_date(value, with_time: bool = False) -> str:
    if not value:
        return "—"
    return value.strftime("%d.%m.%Y %H:%M" if with_time else "%d.%m.%Y")
