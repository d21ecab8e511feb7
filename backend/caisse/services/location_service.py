"""
Location Registry Service

Boutiques and till points that cash sessions are opened against.

The cash core only needs referential existence from here: a session can be
opened only on a location that exists and is active.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Location, CashSession
from ..models.locations import LOCATION_KINDS
from ..models.sessions import SESSION_OPEN
from ..validation import (
    ValidationError,
    LocationNotFoundError,
    ConflictError,
    InvalidStateError,
    clean_text,
    require_text,
    require_choice,
)
from .concurrency import lock_for_update, transactional


logger = logging.getLogger(__name__)


@transactional("create_location")
def create_location(
    code: str,
    name: str,
    kind: str = "STORE",
    city: str | None = None,
    address: str | None = None,
    manager_name: str | None = None,
) -> Location:
    """
    Create a new location.

    Args:
        code: Unique short identifier (e.g., "BTQ-01")
        name: Display name
        kind: One of STORE, WAREHOUSE, MOBILE, OTHER
    """
    code = require_text(code, "code", max_length=32).upper()
    name = require_text(name, "name", max_length=128)
    kind = require_choice(kind or "STORE", LOCATION_KINDS, "kind")

    existing = db.session.query(Location).filter_by(code=code).first()
    if existing:
        raise ConflictError(f"Location '{code}' already exists")

    location = Location(
        code=code,
        name=name,
        kind=kind,
        city=clean_text(city, max_length=128, field="city"),
        address=clean_text(address, max_length=255, field="address"),
        manager_name=clean_text(manager_name, max_length=128, field="manager_name"),
        is_active=True,
    )
    db.session.add(location)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Location '{code}' already exists")

    logger.info("Location %s created (id=%s)", location.code, location.id)
    return location


def get_location(location_id: int) -> Location:
    location = db.session.get(Location, location_id)
    if not location:
        raise LocationNotFoundError(f"Location {location_id} not found")
    return location


def require_active_location(location_id: int) -> Location:
    """Referential check used before opening a session."""
    location = get_location(location_id)
    if not location.is_active:
        raise ValidationError(f"Location {location.code} is inactive")
    return location


def list_locations(include_inactive: bool = False) -> list[Location]:
    query = db.session.query(Location)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Location.code).all()


@transactional("deactivate_location")
def deactivate_location(location_id: int) -> Location:
    """
    Deactivate a location (soft delete).

    Inactive locations keep their history but cannot open new sessions.
    """
    location = lock_for_update(
        db.session.query(Location).filter_by(id=location_id)
    ).first()
    if not location:
        raise LocationNotFoundError(f"Location {location_id} not found")

    open_session = db.session.query(CashSession).filter_by(
        location_id=location_id,
        status=SESSION_OPEN,
    ).first()
    if open_session:
        raise InvalidStateError("Cannot deactivate location with an open session. Close it first.")

    location.is_active = False
    db.session.commit()

    logger.info("Location %s deactivated", location.code)
    return location
