"""
Cash Session Service

Daily till lifecycle for a location: open with a starting float, close by
counting the drawer and reconciling against the ledger.

DESIGN PRINCIPLES:
- One OPEN session per location at a time, enforced by a partial unique
  index so two concurrent opens cannot both succeed.
- OPEN -> CLOSED exactly once. The transition is a conditional UPDATE on
  status = 'OPEN'; the loser of a close race sees zero rows and fails.
- There is no reopen. A new day is a new session.
- Closed sessions are immutable; annotations go to the audit trail.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashSession
from ..models.sessions import SESSION_OPEN, SESSION_CLOSED, SESSION_STATUSES
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    InvalidStateError,
    SessionNotFoundError,
    ValidationError,
    clean_text,
    parse_non_negative_cents,
    require_choice,
    require_text,
)
from . import reconciliation_service
from .audit_service import (
    append_audit_event,
    count_audit_events,
    EVENT_SESSION_OPENED,
    EVENT_SESSION_CLOSED,
    EVENT_SESSION_ANNOTATED,
)
from .concurrency import transactional
from .location_service import require_active_location
from .movement_service import count_movements
from .reconciliation_service import ReconciliationResult


logger = logging.getLogger(__name__)

_sessions = CashSession.__table__


@dataclass(frozen=True)
class ClosedSessionResult:
    session: CashSession
    reconciliation: ReconciliationResult

    @property
    def variance_cents(self) -> int:
        return self.reconciliation.variance_cents

    @property
    def is_flagged(self) -> bool:
        return self.reconciliation.is_flagged

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "reconciliation": self.reconciliation.to_dict(),
        }


# =============================================================================
# LIFECYCLE
# =============================================================================

@transactional("open_session")
def open_session(
    location_id: int,
    opening_balance_cents: int,
    notes: str | None = None,
    *,
    opened_by: str | None = None,
) -> CashSession:
    """
    Open the till of a location.

    Args:
        location_id: Location to open
        opening_balance_cents: Starting float in the drawer (minor units, >= 0)
        notes: Optional opening notes

    Raises:
        ValidationError: negative balance, unknown or inactive location
        ConflictError: location already has an OPEN session
    """
    opening_balance_cents = parse_non_negative_cents(opening_balance_cents, "opening_balance_cents")
    notes = clean_text(notes, field="notes")
    opened_by = clean_text(opened_by, max_length=128, field="opened_by")

    location = require_active_location(location_id)

    existing_open = get_active_session(location_id)
    if existing_open:
        raise ConflictError(
            f"Session already open for this location (session {existing_open.id}). Close it first."
        )

    now = utcnow()
    session = CashSession(
        location_id=location.id,
        business_date=now.date(),
        status=SESSION_OPEN,
        opening_balance_cents=opening_balance_cents,
        opened_by=opened_by,
        opened_at=now,
        opening_notes=notes,
    )
    db.session.add(session)

    try:
        db.session.flush()
    except IntegrityError:
        # Lost the race against a concurrent open on the same location
        db.session.rollback()
        logger.info("Concurrent open rejected for location %s", location_id)
        raise ConflictError("Session already open for this location. Close it first.")

    append_audit_event(
        session_id=session.id,
        event_type=EVENT_SESSION_OPENED,
        actor=opened_by,
        note=notes,
        payload={"opening_balance_cents": opening_balance_cents},
        occurred_at=now,
    )
    db.session.commit()

    logger.info(
        "Opened session %s on location %s with %s",
        session.id, location.code, opening_balance_cents,
    )
    return session


@transactional("close_session")
def close_session(
    session_id: int,
    counted_balance_cents: int,
    notes: str | None = None,
    *,
    closed_by: str | None = None,
    tolerance_cents: int | None = None,
) -> ClosedSessionResult:
    """
    Close a session and reconcile the counted drawer.

    The status flip happens first, as one conditional UPDATE. From then on no
    movement can be appended, so the statistics computed next in the same
    transaction are final.

    Variance of any size is accepted; past the tolerance it is flagged and
    logged as a warning.

    Raises:
        ValidationError: negative counted balance or tolerance
        SessionNotFoundError: no such session
        InvalidStateError: session already closed
    """
    counted_balance_cents = parse_non_negative_cents(counted_balance_cents, "counted_balance_cents")
    notes = clean_text(notes, field="notes")
    closed_by = clean_text(closed_by, max_length=128, field="closed_by")
    if tolerance_cents is None:
        tolerance_cents = reconciliation_service.configured_tolerance_cents()
    else:
        tolerance_cents = parse_non_negative_cents(tolerance_cents, "tolerance_cents")

    now = utcnow()
    result = db.session.execute(
        update(_sessions)
        .where(_sessions.c.id == session_id, _sessions.c.status == SESSION_OPEN)
        .values(
            status=SESSION_CLOSED,
            closed_at=now,
            closed_by=closed_by,
            closing_counted_cents=counted_balance_cents,
            closing_notes=notes,
            version_id=_sessions.c.version_id + 1,
        )
    )

    if result.rowcount != 1:
        db.session.rollback()
        if db.session.get(CashSession, session_id) is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        logger.info("Rejected close of session %s: already closed", session_id)
        raise InvalidStateError("Session already closed")

    session = db.session.get(CashSession, session_id, populate_existing=True)
    reconciliation = reconciliation_service.reconcile(session, counted_balance_cents, tolerance_cents)

    session.theoretical_balance_cents = reconciliation.theoretical_balance_cents
    session.variance_cents = reconciliation.variance_cents
    session.variance_flag = reconciliation.variance_flag

    append_audit_event(
        session_id=session.id,
        event_type=EVENT_SESSION_CLOSED,
        actor=closed_by,
        note=notes,
        payload={
            "counted_balance_cents": counted_balance_cents,
            "theoretical_balance_cents": reconciliation.theoretical_balance_cents,
            "variance_cents": reconciliation.variance_cents,
            "variance_flag": reconciliation.variance_flag,
            "tolerance_cents": tolerance_cents,
        },
        occurred_at=now,
    )
    db.session.commit()

    if reconciliation.is_flagged:
        logger.warning(
            "Session %s closed with variance %s beyond tolerance %s (theoretical %s, counted %s)",
            session.id,
            reconciliation.variance_cents,
            tolerance_cents,
            reconciliation.theoretical_balance_cents,
            counted_balance_cents,
        )
    else:
        logger.info(
            "Session %s closed, variance %s (%s)",
            session.id, reconciliation.variance_cents, reconciliation.variance_flag,
        )

    return ClosedSessionResult(session=session, reconciliation=reconciliation)


@transactional("annotate_session")
def annotate_session(session_id: int, note: str, *, actor: str | None = None):
    """
    Attach an audit note to a session, open or closed.

    The session row is not touched; the note is a new audit event.
    """
    note = require_text(note, "note")
    actor = clean_text(actor, max_length=128, field="actor")
    get_session(session_id)

    event = append_audit_event(
        session_id=session_id,
        event_type=EVENT_SESSION_ANNOTATED,
        actor=actor,
        note=note,
    )
    db.session.commit()
    return event


# =============================================================================
# QUERIES
# =============================================================================

def get_session(session_id: int) -> CashSession:
    session = db.session.get(CashSession, session_id)
    if not session:
        raise SessionNotFoundError(f"Session {session_id} not found")
    return session


def get_active_session(location_id: int) -> CashSession | None:
    """Get the currently open session for a location, if any."""
    return db.session.query(CashSession).filter_by(
        location_id=location_id,
        status=SESSION_OPEN,
    ).first()


def list_sessions(
    location_id: Optional[int] = None,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: Optional[int] = None,
) -> list[CashSession]:
    """Sessions newest first; date bounds are inclusive on business_date."""
    query = db.session.query(CashSession)

    if location_id is not None:
        query = query.filter(CashSession.location_id == location_id)
    if status:
        query = query.filter(CashSession.status == require_choice(status, SESSION_STATUSES, "status"))
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must be on or before date_to")
    if date_from:
        query = query.filter(CashSession.business_date >= date_from)
    if date_to:
        query = query.filter(CashSession.business_date <= date_to)

    query = query.order_by(CashSession.business_date.desc(), CashSession.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_session_summary(session_id: int) -> dict:
    """
    Session overview for the till screen.

    Returns:
        - Session details
        - Live statistics folded from the ledger
        - Movement and audit event counts
    """
    session = get_session(session_id)
    statistics = reconciliation_service.statistics_for(session)

    return {
        "session": session.to_dict(),
        "statistics": statistics.to_dict(),
        "movements_count": count_movements(session_id),
        "audit_events_count": count_audit_events(session_id),
        "is_closed": session.status == SESSION_CLOSED,
        "variance_cents": session.variance_cents,
    }
