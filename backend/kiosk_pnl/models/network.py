from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


RENT_MODELS = ("FIXED", "VOLUME_TIER")
TERMINAL_STATUSES = ("ONLINE", "OFFLINE", "MAINTENANCE")


class Location(db.Model):
    """
    Physical site hosting one or more kiosks.

    WHY: Rent is negotiated per site, so profitability is rolled up here.
    Location ids come from the provider export when present, otherwise
    they are derived from city/provider during ingestion.

    DESIGN:
    - Re-ingesting the same id updates display attributes only
    - base_rent and zip are kept from the first insert
    - Financial rollups are never stored; they are recomputed on read
    """
    __tablename__ = "locations"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(128), nullable=True)
    state = db.Column(db.String(32), nullable=True, index=True)
    zip = db.Column(db.String(16), nullable=True)

    # FIXED or VOLUME_TIER
    rent_model = db.Column(db.String(16), nullable=False, default="FIXED")
    base_rent = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Location id={self.id!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "rentModel": self.rent_model,
            "baseRent": float(self.base_rent or 0),
        }


class Terminal(db.Model):
    """
    Cash/crypto kiosk (or synthesized desk terminal for OTC trades).

    WHY: Transactions reference the machine by serial number, and the
    machine is what ties a trade back to a location.

    DESIGN: Serial numbers are unique network-wide. Terminals are created
    on first sight during ingestion and mutated by later syncs
    (cash balance, last seen, status).
    """
    __tablename__ = "terminals"
    __table_args__ = (
        db.Index("ix_terminals_location_status", "location_id", "status"),
    )

    sn = db.Column(db.String(128), primary_key=True)
    atm_id = db.Column(db.String(128), nullable=False)
    location_id = db.Column(db.String(64), db.ForeignKey("locations.id"), nullable=False, index=True)

    cash_on_hand = db.Column(db.Float, nullable=False, default=0.0)
    last_online = db.Column(db.DateTime(timezone=True), nullable=True)

    # ONLINE, OFFLINE, MAINTENANCE
    status = db.Column(db.String(16), nullable=False, default="ONLINE", index=True)

    location = db.relationship("Location", backref=db.backref("terminals", lazy=True))

    def __repr__(self) -> str:
        return f"<Terminal sn={self.sn!r} location_id={self.location_id!r}>"

    def to_dict(self) -> dict:
        return {
            "sn": self.sn,
            "atmId": self.atm_id,
            "locationId": self.location_id,
            "cashOnHand": float(self.cash_on_hand or 0),
            "lastOnline": to_utc_z(self.last_online),
            "status": self.status,
        }
