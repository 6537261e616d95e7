"""
app/audit.py

System event log helpers.

Every mutating route records WHO changed WHICH entity, with BEFORE/AFTER
column snapshots, the client IP and an optional human readable message
(shown on the montage history and settlement pages).

IMPORTANT:
- log_action() only ADDS an AuditLog row to the current session.
  The calling route owns the transaction (flush -> log -> commit).
- Entities must be flushed first so they carry an id.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog

logger = logging.getLogger(__name__)


def _snapshot_value(value: Any) -> Optional[str]:
    """Column value as JSON-safe text (Decimal/datetime keep their canonical str form)."""
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def serialize_model(instance: Any, exclude: tuple = ("password_hash",)) -> Dict[str, Optional[str]]:
    """Scalar column snapshot of a model instance (relationships are not followed)."""
    return {
        column.name: _snapshot_value(getattr(instance, column.name))
        for column in instance.__table__.columns
        if column.name not in exclude
    }


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    message: Optional[str] = None,
) -> AuditLog:
    """
    Add an AuditLog entry for `entity` to the current db session.

    action: CREATE / UPDATE / DELETE / STATUS / OVERRIDE / PAY ...
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    authenticated = has_request_context() and current_user.is_authenticated
    entry = AuditLog(
        user_id=current_user.id if authenticated else None,
        username_snapshot=current_user.username if authenticated else None,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action),
        message=message[:500] if message else None,
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    logger.debug("audit %s %s#%s", action, entry.entity_type, entity_id)
    return entry


def history_for(entity: Any, limit: int = 50) -> list:
    """Newest-first audit entries of one entity."""
    return (
        AuditLog.query.filter_by(entity_type=entity.__class__.__name__, entity_id=entity.id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
