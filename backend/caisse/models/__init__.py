from .locations import Location
from .sessions import CashSession, CashMovement
from .audit import SessionAuditEvent

__all__ = [
    'Location',
    'CashSession', 'CashMovement',
    'SessionAuditEvent',
]
