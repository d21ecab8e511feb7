"""
Cash Movement Ledger Service

Append-only ledger of everything that changes the cash in a till during a
session: sales, manual entries, manual exits.

DESIGN PRINCIPLES:
- Rows are only ever inserted. No update, no delete.
- A movement can only be appended to an OPEN session. The status check and
  the insert are a single guarded INSERT ... SELECT statement, so a
  concurrent close can never slip between them.
- Amounts are strictly positive integers in minor units; kind gives the
  direction.
- The ledger order is the key (created_at, id). created_at is the
  application clock at append time, so two terminals appending at once may
  commit in either order; id breaks ties. The order matters for display
  and audit only. Balances are sums and do not depend on it.
"""

from __future__ import annotations

import logging
from typing import Iterator

from flask import current_app
from sqlalchemy import BigInteger, DateTime, Integer, String, insert, literal, select

from ..extensions import db
from ..models import CashMovement, CashSession
from ..models.sessions import (
    MOVEMENT_ENTRY,
    MOVEMENT_EXIT,
    MOVEMENT_KINDS,
    MOVEMENT_SALE,
    PAYMENT_METHODS,
    REFERENCE_TYPES,
    SESSION_OPEN,
)
from ..time_utils import utcnow
from ..validation import (
    InvalidStateError,
    SessionNotFoundError,
    ValidationError,
    clean_text,
    parse_positive_cents,
    require_choice,
)
from .audit_service import append_audit_event, EVENT_MOVEMENT_RECORDED
from .concurrency import lock_for_share, transactional


logger = logging.getLogger(__name__)

_movements = CashMovement.__table__
_sessions = CashSession.__table__

_INSERT_COLUMNS = (
    "session_id",
    "kind",
    "amount_cents",
    "payment_method",
    "description",
    "reference_type",
    "reference_id",
    "recorded_by",
    "created_at",
)


def _validate_movement(kind, amount_cents, payment_method, description, reference_type, reference_id):
    kind = require_choice(kind, MOVEMENT_KINDS, "kind")
    amount_cents = parse_positive_cents(amount_cents, "amount_cents")
    payment_method = require_choice(payment_method, PAYMENT_METHODS, "payment_method")
    description = clean_text(description, max_length=255, field="description")

    if kind in (MOVEMENT_ENTRY, MOVEMENT_EXIT) and not description:
        raise ValidationError(f"description is required for {kind} movements")

    if reference_type is not None:
        reference_type = require_choice(reference_type, REFERENCE_TYPES, "reference_type")
    reference_id = clean_text(reference_id, max_length=64, field="reference_id")

    return kind, amount_cents, payment_method, description, reference_type, reference_id


def _append_if_open(session_id: int, values: dict) -> int | None:
    """
    INSERT INTO cash_movements (...) SELECT <values> WHERE EXISTS (open session).

    Returns the new movement id, or None when the guard rejected the row.
    """
    guard = lock_for_share(
        select(_sessions.c.id).where(
            _sessions.c.id == session_id,
            _sessions.c.status == SESSION_OPEN,
        )
    )
    source = select(
        literal(session_id, Integer),
        literal(values["kind"], String),
        literal(values["amount_cents"], BigInteger),
        literal(values["payment_method"], String),
        literal(values["description"], String),
        literal(values["reference_type"], String),
        literal(values["reference_id"], String),
        literal(values["recorded_by"], String),
        literal(values["created_at"], DateTime),
    ).where(guard.exists())

    stmt = (
        insert(_movements)
        .from_select(list(_INSERT_COLUMNS), source)
        .returning(_movements.c.id)
    )
    return db.session.execute(stmt).scalar_one_or_none()


@transactional("record_movement")
def record_movement(
    session_id: int,
    kind: str,
    amount_cents: int,
    payment_method: str,
    description: str | None = None,
    *,
    reference_type: str | None = None,
    reference_id: str | None = None,
    recorded_by: str | None = None,
) -> CashMovement:
    """
    Append one movement to an open session.

    Raises:
        ValidationError: bad amount, kind, payment method or missing description
        InvalidStateError: session missing or not OPEN (ledger untouched)
    """
    kind, amount_cents, payment_method, description, reference_type, reference_id = _validate_movement(
        kind, amount_cents, payment_method, description, reference_type, reference_id
    )
    recorded_by = clean_text(recorded_by, max_length=128, field="recorded_by")

    movement_id = _append_if_open(session_id, {
        "kind": kind,
        "amount_cents": amount_cents,
        "payment_method": payment_method,
        "description": description,
        "reference_type": reference_type,
        "reference_id": reference_id,
        "recorded_by": recorded_by,
        "created_at": utcnow(),
    })

    if movement_id is None:
        db.session.rollback()
        if db.session.get(CashSession, session_id) is None:
            logger.info("Rejected %s movement: session %s not found", kind, session_id)
            raise SessionNotFoundError(
                f"Cannot record movement on closed or missing session (session {session_id} not found)"
            )
        logger.info("Rejected %s movement: session %s is not open", kind, session_id)
        raise InvalidStateError("Cannot record movement on closed or missing session")

    append_audit_event(
        session_id=session_id,
        event_type=EVENT_MOVEMENT_RECORDED,
        actor=recorded_by,
        movement_id=movement_id,
        payload={
            "kind": kind,
            "amount_cents": amount_cents,
            "payment_method": payment_method,
        },
    )
    db.session.commit()

    movement = db.session.get(CashMovement, movement_id)
    logger.info(
        "Recorded %s movement %s on session %s: %s (%s)",
        kind, movement_id, session_id, amount_cents, payment_method,
    )
    return movement


def record_sale(
    location_id: int,
    amount_cents: int,
    payment_method: str,
    *,
    reference_id: str | None = None,
    description: str | None = None,
    recorded_by: str | None = None,
) -> CashMovement:
    """
    Record a sale payment against whatever session is open on a location.

    Used by the sales flow: a sale cannot be cashed when the till is closed.
    """
    session_id = db.session.execute(
        select(CashSession.id).where(
            CashSession.location_id == location_id,
            CashSession.status == SESSION_OPEN,
        )
    ).scalar_one_or_none()

    if session_id is None:
        raise InvalidStateError("No open session for this location. Open the till first.")

    return record_movement(
        session_id,
        MOVEMENT_SALE,
        amount_cents,
        payment_method,
        description or (f"Sale {reference_id}" if reference_id else None),
        reference_type="sale" if reference_id else None,
        reference_id=reference_id,
        recorded_by=recorded_by,
    )


def list_movements(
    session_id: int,
    kind: str | None = None,
    payment_method: str | None = None,
) -> Iterator[CashMovement]:
    """
    Movements of a session ordered by the ledger key (created_at, id).

    Returns a lazy iterator backed by a fresh query; nothing is cached between
    calls, so calling again re-reads the ledger.
    """
    stmt = select(CashMovement).where(CashMovement.session_id == session_id)
    if kind is not None:
        stmt = stmt.where(CashMovement.kind == require_choice(kind, MOVEMENT_KINDS, "kind"))
    if payment_method is not None:
        stmt = stmt.where(
            CashMovement.payment_method == require_choice(payment_method, PAYMENT_METHODS, "payment_method")
        )
    stmt = stmt.order_by(CashMovement.created_at, CashMovement.id)

    page_size = current_app.config.get("CAISSE_MOVEMENTS_PAGE_SIZE", 500)
    return _stream(stmt, page_size)


def _stream(stmt, page_size: int) -> Iterator[CashMovement]:
    yield from db.session.scalars(stmt.execution_options(yield_per=page_size))


def count_movements(session_id: int) -> int:
    return db.session.query(CashMovement).filter_by(session_id=session_id).count()
