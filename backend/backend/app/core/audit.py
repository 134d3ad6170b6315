from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from app.db.models.audit import AuditLog


def _json_default(value: Any) -> str:
    # Decimal quantities, datetimes, enums
    return str(value)


def audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    payload: dict | None = None,
    success: bool = True,
) -> AuditLog:
    """Add an append-only audit record to the caller's transaction.

    Nothing is committed here; the record becomes durable with the rest of
    the unit of work. Payload values are coerced to JSON-safe types.
    """
    safe_payload: dict[str, Any] = json.loads(json.dumps(payload or {}, default=_json_default))
    row = AuditLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        success=success,
        payload=safe_payload,
    )
    db.add(row)
    return row
