# Overview: Service-layer operations for the session audit trail.

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..models import SessionAuditEvent
from ..time_utils import utcnow
"""
Session Audit Trail Invariants (authoritative)

- Append-only: no updates, no deletes.
- No domain logic here; callers decide what to record.
- Events are written inside the same DB transaction as the change they record.
"""


EVENT_SESSION_OPENED = "session.opened"
EVENT_SESSION_CLOSED = "session.closed"
EVENT_MOVEMENT_RECORDED = "movement.recorded"
EVENT_SESSION_ANNOTATED = "session.annotated"


def append_audit_event(
    *,
    session_id: int,
    event_type: str,
    actor: Optional[str] = None,
    movement_id: Optional[int] = None,
    note: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> SessionAuditEvent:
    """
    Append one audit event and flush (no commit).

    payload is serialized to JSON with sorted keys so identical facts give
    identical documents.
    """
    ev = SessionAuditEvent(
        session_id=session_id,
        event_type=event_type,
        movement_id=movement_id,
        actor=actor,
        note=note,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_audit_events(session_id: int, event_type: Optional[str] = None) -> list[SessionAuditEvent]:
    query = db.session.query(SessionAuditEvent).filter_by(session_id=session_id)
    if event_type:
        query = query.filter_by(event_type=event_type)
    return query.order_by(SessionAuditEvent.occurred_at, SessionAuditEvent.id).all()


def count_audit_events(session_id: int) -> int:
    return db.session.query(SessionAuditEvent).filter_by(session_id=session_id).count()
