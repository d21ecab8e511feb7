# Overview: Flask API routes for locations and location-scoped till operations.

# backend/caisse/routes/locations.py
"""
Location API Routes

Location registry plus the operations a till screen performs against "its"
location: open today's session, look up the active session, cash a sale.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import location_service, session_service, movement_service
from .errors import DOMAIN_ERRORS, error_response


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.post("/")
@locations_bp.post("")
def create_location_route():
    """
    Create a location.

    Request body:
    {
        "code": "BTQ-01",
        "name": "Boutique Plateau",
        "kind": "STORE",          (optional)
        "city": "Dakar",          (optional)
        "address": "...",         (optional)
        "manager_name": "..."     (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        location = location_service.create_location(
            code=data.get("code"),
            name=data.get("name"),
            kind=data.get("kind") or "STORE",
            city=data.get("city"),
            address=data.get("address"),
            manager_name=data.get("manager_name"),
        )

        return jsonify({"location": location.to_dict()}), 201

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create location")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.get("/")
@locations_bp.get("")
def list_locations_route():
    """List locations with their current session, if any."""
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")

    result = []
    for location in location_service.list_locations(include_inactive=include_inactive):
        d = location.to_dict()
        current_session = session_service.get_active_session(location.id)
        d["current_session"] = current_session.to_dict() if current_session else None
        result.append(d)

    return jsonify({"locations": result}), 200


@locations_bp.get("/<int:location_id>")
def get_location_route(location_id: int):
    try:
        location = location_service.get_location(location_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)

    result = location.to_dict()
    current_session = session_service.get_active_session(location_id)
    result["current_session"] = current_session.to_dict() if current_session else None

    return jsonify(result), 200


@locations_bp.post("/<int:location_id>/deactivate")
def deactivate_location_route(location_id: int):
    """Deactivate a location. Fails with 409 while a session is open on it."""
    try:
        location = location_service.deactivate_location(location_id)
        return jsonify({"location": location.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate location")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TILL OPERATIONS
# =============================================================================

@locations_bp.post("/<int:location_id>/sessions/open")
def open_session_route(location_id: int):
    """
    Open the till of a location.

    Request body:
    {
        "opening_balance_cents": 50000,
        "notes": "Float from safe",   (optional)
        "opened_by": "awa"            (optional)
    }

    Returns 409 if the location already has an open session.
    """
    try:
        data = request.get_json(silent=True) or {}

        session = session_service.open_session(
            location_id,
            data.get("opening_balance_cents"),
            data.get("notes"),
            opened_by=data.get("opened_by"),
        )

        return jsonify({"session": session.to_dict()}), 201

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to open session")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.get("/<int:location_id>/sessions/active")
def get_active_session_route(location_id: int):
    """Active session for a location; "session" is null when the till is closed."""
    try:
        location_service.get_location(location_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)

    session = session_service.get_active_session(location_id)
    return jsonify({"session": session.to_dict() if session else None}), 200


@locations_bp.post("/<int:location_id>/sales")
def record_sale_route(location_id: int):
    """
    Cash a sale on the open session of a location.

    Request body:
    {
        "amount_cents": 30000,
        "payment_method": "cash",
        "reference_id": "CMD-20260115-0001",   (optional)
        "description": "...",                 (optional)
        "recorded_by": "awa"                  (optional)
    }

    Returns 409 when no session is open on the location.
    """
    try:
        data = request.get_json(silent=True) or {}

        movement = movement_service.record_sale(
            location_id,
            data.get("amount_cents"),
            data.get("payment_method") or "cash",
            reference_id=data.get("reference_id"),
            description=data.get("description"),
            recorded_by=data.get("recorded_by"),
        )

        return jsonify({"movement": movement.to_dict()}), 201

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500
