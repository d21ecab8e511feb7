from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, to_iso_date


SESSION_OPEN = "OPEN"
SESSION_CLOSED = "CLOSED"
SESSION_STATUSES = (SESSION_OPEN, SESSION_CLOSED)

MOVEMENT_ENTRY = "ENTRY"
MOVEMENT_EXIT = "EXIT"
MOVEMENT_SALE = "SALE"
MOVEMENT_KINDS = (MOVEMENT_ENTRY, MOVEMENT_EXIT, MOVEMENT_SALE)

PAYMENT_METHODS = ("cash", "mobile_money", "card", "check", "transfer", "other")

REFERENCE_TYPES = ("sale", "expense", "adjustment", "deposit", "withdrawal")

VARIANCE_BALANCED = "BALANCED"
VARIANCE_WITHIN_TOLERANCE = "WITHIN_TOLERANCE"
VARIANCE_EXCEEDS_TOLERANCE = "EXCEEDS_TOLERANCE"


class CashSession(db.Model):
    """
    Daily cash-register session ("caisse journaliere") for one location.

    LIFECYCLE:
    - OPEN: till is active, movements may be appended
    - CLOSED: counted, reconciled, variance persisted

    INVARIANTS:
    - At most one OPEN session per location (partial unique index below).
    - Closed sessions are immutable; later notes go to session_audit_events.
    - No balance is cached while OPEN; the theoretical balance is always
      folded from cash_movements. The figures stored at close are a snapshot
      for audit, computed inside the closing transaction.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_sessions_open_location",
            "location_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        db.Index("ix_cash_sessions_location_date", "location_id", "business_date"),
        db.CheckConstraint("opening_balance_cents >= 0", name="ck_cash_sessions_opening_non_negative"),
        db.CheckConstraint("status IN ('OPEN', 'CLOSED')", name="ck_cash_sessions_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_OPEN, index=True)  # OPEN, CLOSED

    # Cash tracking (all amounts in minor units)
    opening_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    closing_counted_cents = db.Column(db.BigInteger, nullable=True)  # Set when closing

    # Reconciliation snapshot (written once, at close)
    theoretical_balance_cents = db.Column(db.BigInteger, nullable=True)
    variance_cents = db.Column(db.BigInteger, nullable=True)  # counted - theoretical
    variance_flag = db.Column(db.String(24), nullable=True)

    # Operators are free-text identifiers supplied by the caller
    opened_by = db.Column(db.String(128), nullable=True)
    closed_by = db.Column(db.String(128), nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    opening_notes = db.Column(db.Text, nullable=True)
    closing_notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    location = db.relationship("Location", backref=db.backref("sessions", lazy=True))

    @property
    def is_open(self) -> bool:
        return self.status == SESSION_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "business_date": to_iso_date(self.business_date),
            "status": self.status,
            "opening_balance_cents": self.opening_balance_cents,
            "closing_counted_cents": self.closing_counted_cents,
            "theoretical_balance_cents": self.theoretical_balance_cents,
            "variance_cents": self.variance_cents,
            "variance_flag": self.variance_flag,
            "opened_by": self.opened_by,
            "closed_by": self.closed_by,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "opening_notes": self.opening_notes,
            "closing_notes": self.closing_notes,
            "version_id": self.version_id,
        }


class CashMovement(db.Model):
    """
    Append-only cash ledger row.

    KINDS:
    - SALE: payment received for a sale
    - ENTRY: manual cash in (deposit, float top-up)
    - EXIT: manual cash out (expense, withdrawal)

    Direction comes from kind, never from sign: amount_cents is always > 0.
    Rows are never updated or deleted; a mistake is fixed with a
    compensating movement.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_session_created", "session_id", "created_at", "id"),
        db.CheckConstraint("amount_cents > 0", name="ck_cash_movements_amount_positive"),
        db.CheckConstraint("kind IN ('ENTRY', 'EXIT', 'SALE')", name="ck_cash_movements_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    payment_method = db.Column(db.String(24), nullable=False, default="cash")

    description = db.Column(db.String(255), nullable=True)

    # Link to the originating business document (sale number, expense id...)
    reference_type = db.Column(db.String(24), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)

    recorded_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    session = db.relationship("CashSession", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "kind": self.kind,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "description": self.description,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
        }
