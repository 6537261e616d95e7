"""
app/security.py

Access control helpers.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Admin: full access.
- Office: CRM and ERP work, no team management, no settlement approval.
- Installer / measurer: only montages assigned to them, own settlements,
  own advance requests.

IMPORTANT:
- Decorators preserve wrapped function metadata (functools.wraps) to avoid
  Flask endpoint collisions.
- Decorators are stacked under @login_required, so current_user is authenticated.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Tuple

from flask import render_template
from flask_login import current_user


def _forbidden() -> Tuple[str, int]:
    """Render a consistent 403 page."""
    return render_template("errors/403.html"), 403


def is_admin() -> bool:
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def has_any_role(*roles: str) -> bool:
    if not current_user.is_authenticated:
        return False
    return any(current_user.has_role(role) for role in roles)


def can_access_montage(montage: Any) -> bool:
    """
    Office staff and admins see every montage.
    Field workers see only montages where they are the installer or measurer.
    """
    if not current_user.is_authenticated:
        return False
    if not current_user.is_field_worker:
        return True
    return current_user.id in (montage.installer_id, montage.measurer_id)


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def roles_required(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator factory: any of the given roles (admin always passes).

    Usage:
        @roles_required("office")
        def create_lead(): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not (is_admin() or has_any_role(*roles)):
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def montage_access_required(get_montage_func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorator factory: VIEW permission for a montage.

    Usage:
        @montage_access_required(lambda montage_id: Montage.query.get_or_404(montage_id))
        def detail(montage_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            montage = get_montage_func(**kwargs)
            if not can_access_montage(montage):
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
