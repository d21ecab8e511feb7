from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z


LOCATION_KINDS = ("STORE", "WAREHOUSE", "MOBILE", "OTHER")


class Location(db.Model):
    """
    Physical boutique or till point a cash session belongs to.

    DESIGN: Locations are reference data. They are never deleted, only
    deactivated, so historical sessions keep a valid foreign key.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_locations_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable identifier (e.g., "DKR-PLATEAU", "BOUTIQUE-01")
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    kind = db.Column(db.String(16), nullable=False, default="STORE")

    city = db.Column(db.String(128), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    manager_name = db.Column(db.String(128), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "kind": self.kind,
            "city": self.city,
            "address": self.address,
            "manager_name": self.manager_name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
