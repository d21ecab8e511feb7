from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z


class SessionAuditEvent(db.Model):
    """
    Append-only audit spine for cash sessions.

    Written in the same transaction as the change it records. This is also
    where annotations on a closed session live, since the session row itself
    never changes after closing.
    """
    __tablename__ = "session_audit_events"
    __table_args__ = (
        db.Index("ix_session_audit_session_occurred", "session_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    movement_id = db.Column(db.Integer, db.ForeignKey("cash_movements.id"), nullable=True)

    actor = db.Column(db.String(128), nullable=True)
    note = db.Column(db.Text, nullable=True)
    payload = db.Column(db.Text, nullable=True)  # JSON document

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    session = db.relationship("CashSession", backref=db.backref("audit_events", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "event_type": self.event_type,
            "movement_id": self.movement_id,
            "actor": self.actor,
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
