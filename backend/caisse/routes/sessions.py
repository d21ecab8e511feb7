# Overview: Flask API routes for cash sessions, the movement ledger and reconciliation.

# backend/caisse/routes/sessions.py
"""
Cash Session API Routes

DESIGN:
- Session lifecycle: open (see locations routes) -> close, immutable once closed
- Movements are append-only; there is no update or delete endpoint
- Statistics are recomputed from the ledger on every request
- Annotations are the only write accepted on a closed session
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import session_service, movement_service, reconciliation_service, audit_service
from ..time_utils import parse_iso_date
from .errors import DOMAIN_ERRORS, error_response


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


@sessions_bp.get("/")
@sessions_bp.get("")
def list_sessions_route():
    """
    List sessions, newest first.

    Query params: location_id, status (OPEN|CLOSED), date_from, date_to
    (YYYY-MM-DD, inclusive), limit (default 100, max 500).
    """
    try:
        limit = request.args.get("limit", default=100, type=int)
        limit = max(1, min(limit, 500))

        try:
            date_from = parse_iso_date(request.args.get("date_from"))
            date_to = parse_iso_date(request.args.get("date_to"))
        except ValueError:
            return jsonify({"error": "date_from and date_to must be YYYY-MM-DD dates"}), 400

        sessions = session_service.list_sessions(
            location_id=request.args.get("location_id", type=int),
            status=request.args.get("status"),
            date_from=date_from,
            date_to=date_to,
            limit=limit,
        )

        return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200

    except DOMAIN_ERRORS as e:
        return error_response(e)


@sessions_bp.get("/<int:session_id>")
def get_session_route(session_id: int):
    """Session details with live statistics and counts."""
    try:
        return jsonify(session_service.get_session_summary(session_id)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@sessions_bp.post("/<int:session_id>/close")
def close_session_route(session_id: int):
    """
    Close a session and reconcile the counted drawer.

    Request body:
    {
        "counted_balance_cents": 82500,
        "notes": "Short 500",     (optional)
        "closed_by": "awa"        (optional)
    }

    Any variance is accepted; "reconciliation.is_flagged" tells the caller it
    exceeded the configured tolerance. Returns 409 if already closed.
    """
    try:
        data = request.get_json(silent=True) or {}

        result = session_service.close_session(
            session_id,
            data.get("counted_balance_cents"),
            data.get("notes"),
            closed_by=data.get("closed_by"),
        )

        return jsonify(result.to_dict()), 200

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to close session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/<int:session_id>/statistics")
def session_statistics_route(session_id: int):
    """Running statistics and theoretical balance, folded from the ledger."""
    try:
        statistics = reconciliation_service.compute_statistics(session_id)
        return jsonify({"statistics": statistics.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


# =============================================================================
# MOVEMENTS
# =============================================================================

@sessions_bp.post("/<int:session_id>/movements")
def record_movement_route(session_id: int):
    """
    Append a movement to an open session.

    Request body:
    {
        "kind": "ENTRY" | "EXIT" | "SALE",
        "amount_cents": 5000,
        "payment_method": "cash",
        "description": "Float top-up",   (required for ENTRY/EXIT)
        "reference_type": "deposit",     (optional)
        "reference_id": "...",           (optional)
        "recorded_by": "awa"             (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        movement = movement_service.record_movement(
            session_id,
            data.get("kind"),
            data.get("amount_cents"),
            data.get("payment_method") or "cash",
            data.get("description"),
            reference_type=data.get("reference_type"),
            reference_id=data.get("reference_id"),
            recorded_by=data.get("recorded_by"),
        )

        return jsonify({"movement": movement.to_dict()}), 201

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record movement")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/<int:session_id>/movements")
def list_movements_route(session_id: int):
    """Ledger of a session in (created_at, id) order. Filters: kind, payment_method."""
    try:
        session_service.get_session(session_id)
        movements = movement_service.list_movements(
            session_id,
            kind=request.args.get("kind"),
            payment_method=request.args.get("payment_method"),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


# =============================================================================
# AUDIT
# =============================================================================

@sessions_bp.post("/<int:session_id>/annotations")
def annotate_session_route(session_id: int):
    """
    Add an audit note to a session (allowed after close).

    Request body:
    {
        "note": "Shortfall explained: change given twice",
        "actor": "manager"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        event = session_service.annotate_session(session_id, data.get("note"), actor=data.get("actor"))
        return jsonify({"event": event.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to annotate session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/<int:session_id>/audit")
def session_audit_route(session_id: int):
    try:
        session_service.get_session(session_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)

    events = audit_service.list_audit_events(session_id, event_type=request.args.get("event_type"))
    return jsonify({"events": [e.to_dict() for e in events]}), 200
