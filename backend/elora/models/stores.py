from __future__ import annotations

from ..extensions import db
from elora.time_utils import to_utc_z, utcnow


class StoreStatus:
    """Lifecycle states of a store, in happy-path order."""
    UPLOADED = "UPLOADED"
    RECCE_ASSIGNED = "RECCE_ASSIGNED"
    RECCE_SUBMITTED = "RECCE_SUBMITTED"
    RECCE_APPROVED = "RECCE_APPROVED"
    RECCE_REJECTED = "RECCE_REJECTED"
    INSTALLATION_ASSIGNED = "INSTALLATION_ASSIGNED"
    INSTALLATION_SUBMITTED = "INSTALLATION_SUBMITTED"
    INSTALLATION_REJECTED = "INSTALLATION_REJECTED"
    COMPLETED = "COMPLETED"

    ALL = (
        UPLOADED,
        RECCE_ASSIGNED,
        RECCE_SUBMITTED,
        RECCE_APPROVED,
        RECCE_REJECTED,
        INSTALLATION_ASSIGNED,
        INSTALLATION_SUBMITTED,
        INSTALLATION_REJECTED,
        COMPLETED,
    )


PRIORITIES = ("HIGH", "MEDIUM", "LOW")


def generate_store_id(city: str | None, district: str | None, dealer_code: str | None) -> str | None:
    """
    Deterministic business id: CIT + DIS + DEALERCODE (upper-cased, trimmed).

    Returns None until city, district and dealer code are all known.
    """
    city = (city or "").strip()
    district = (district or "").strip()
    dealer_code = (dealer_code or "").strip()
    if not (city and district and dealer_code):
        return None
    return f"{city[:3].upper()}{district[:3].upper()}{dealer_code.upper()}"


class Store(db.Model):
    """
    A physical store tracked through the branding lifecycle.

    Descriptive columns (location, contact, commercials, cost details, specs)
    are edited through store_service.update_store. Everything under
    "workflow", "recce" and "installation" plus current_status is written only
    by workflow_service, via conditional updates on current_status.

    INVARIANTS:
    - dealer_code is unique
    - store_id is generated once and never changes afterwards
    - recce_* columns stay empty until the first recce assignment,
      installation_* until the first installation assignment
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.Index("ix_stores_status_updated", "current_status", "updated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    dealer_code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    store_id = db.Column(db.String(128), nullable=True, unique=True, index=True)

    project_id = db.Column(db.String(64), nullable=True)
    store_code = db.Column(db.String(128), nullable=True)
    store_name = db.Column(db.String(255), nullable=True)
    vendor_code = db.Column(db.String(128), nullable=True)

    # Location
    zone = db.Column(db.String(64), nullable=True)
    state = db.Column(db.String(64), nullable=True)
    district = db.Column(db.String(64), nullable=True)
    city = db.Column(db.String(64), nullable=True, index=True)
    area = db.Column(db.String(128), nullable=True)
    address = db.Column(db.Text, nullable=True)
    pincode = db.Column(db.String(16), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    # Contact
    contact_person = db.Column(db.String(120), nullable=True)
    contact_mobile = db.Column(db.String(32), nullable=True)

    # Commercials (PO & invoice)
    po_number = db.Column(db.String(64), nullable=True)
    po_month = db.Column(db.String(32), nullable=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    invoice_remarks = db.Column(db.Text, nullable=True)
    total_cost = db.Column(db.Float, nullable=True)

    # Cost breakdown
    board_rate = db.Column(db.Float, nullable=True)
    total_board_cost = db.Column(db.Float, nullable=True)
    angle_charges = db.Column(db.Float, nullable=True)
    scaffolding_charges = db.Column(db.Float, nullable=True)
    transportation = db.Column(db.Float, nullable=True)
    flanges = db.Column(db.Float, nullable=True)
    lollipop = db.Column(db.Float, nullable=True)
    one_way_vision = db.Column(db.Float, nullable=True)
    sunboard = db.Column(db.Float, nullable=True)

    # Board specs
    board_size = db.Column(db.String(64), nullable=True)
    board_type = db.Column(db.String(64), nullable=True)
    width = db.Column(db.Float, nullable=True)
    height = db.Column(db.Float, nullable=True)
    qty = db.Column(db.Integer, nullable=True)

    current_status = db.Column(db.String(32), nullable=False, default=StoreStatus.UPLOADED, index=True)

    # Workflow: plain user references, no FK (readers tolerate deleted users)
    recce_assigned_to_id = db.Column(db.Integer, nullable=True, index=True)
    installation_assigned_to_id = db.Column(db.Integer, nullable=True, index=True)
    priority = db.Column(db.String(8), nullable=False, default="MEDIUM")

    # Recce (site survey)
    recce_assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    recce_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    recce_width = db.Column(db.Float, nullable=True)
    recce_height = db.Column(db.Float, nullable=True)
    recce_photo_front = db.Column(db.String(512), nullable=True)
    recce_photo_side = db.Column(db.String(512), nullable=True)
    recce_photo_close_up = db.Column(db.String(512), nullable=True)
    recce_notes = db.Column(db.Text, nullable=True)

    # Installation
    installation_assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    installation_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    installation_photo_after1 = db.Column(db.String(512), nullable=True)
    installation_photo_after2 = db.Column(db.String(512), nullable=True)
    installation_notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    recce_assignee = db.relationship(
        "User",
        primaryjoin="foreign(Store.recce_assigned_to_id) == User.id",
        viewonly=True,
        lazy="select",
    )
    installation_assignee = db.relationship(
        "User",
        primaryjoin="foreign(Store.installation_assigned_to_id) == User.id",
        viewonly=True,
        lazy="select",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Store id={self.id} dealer_code={self.dealer_code!r} status={self.current_status}>"

    @staticmethod
    def _assignee_dict(user_id, user) -> dict | None:
        if user_id is None:
            return None
        # Dangling reference: the user was deleted after assignment
        if user is None:
            return {"id": user_id, "name": None, "email": None}
        return {"id": user.id, "name": user.name, "email": user.email}

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "dealer_code": self.dealer_code,
            "store_id": self.store_id,
            "project_id": self.project_id,
            "store_code": self.store_code,
            "store_name": self.store_name,
            "vendor_code": self.vendor_code,
            "location": {
                "zone": self.zone,
                "state": self.state,
                "district": self.district,
                "city": self.city,
                "area": self.area,
                "address": self.address,
                "pincode": self.pincode,
                "coordinates": (
                    {"lat": self.latitude, "lng": self.longitude}
                    if self.latitude is not None and self.longitude is not None
                    else None
                ),
            },
            "contact": {
                "person_name": self.contact_person,
                "mobile": self.contact_mobile,
            },
            "commercials": {
                "po_number": self.po_number,
                "po_month": self.po_month,
                "invoice_number": self.invoice_number,
                "invoice_remarks": self.invoice_remarks,
                "total_cost": self.total_cost,
            },
            "cost_details": {
                "board_rate": self.board_rate,
                "total_board_cost": self.total_board_cost,
                "angle_charges": self.angle_charges,
                "scaffolding_charges": self.scaffolding_charges,
                "transportation": self.transportation,
                "flanges": self.flanges,
                "lollipop": self.lollipop,
                "one_way_vision": self.one_way_vision,
                "sunboard": self.sunboard,
            },
            "specs": {
                "board_size": self.board_size,
                "type": self.board_type,
                "width": self.width,
                "height": self.height,
                "qty": self.qty,
            },
            "current_status": self.current_status,
            "workflow": {
                "recce_assigned_to": self._assignee_dict(self.recce_assigned_to_id, self.recce_assignee),
                "installation_assigned_to": self._assignee_dict(
                    self.installation_assigned_to_id, self.installation_assignee
                ),
                "priority": self.priority,
            },
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

        if self.recce_assigned_at is not None:
            data["recce"] = {
                "assigned_at": to_utc_z(self.recce_assigned_at),
                "submitted_at": to_utc_z(self.recce_submitted_at),
                "sizes": (
                    {"width": self.recce_width, "height": self.recce_height}
                    if self.recce_width is not None
                    else None
                ),
                "photos": {
                    "front": self.recce_photo_front,
                    "side": self.recce_photo_side,
                    "close_up": self.recce_photo_close_up,
                },
                "notes": self.recce_notes,
            }

        if self.installation_assigned_at is not None:
            data["installation"] = {
                "assigned_at": to_utc_z(self.installation_assigned_at),
                "submitted_at": to_utc_z(self.installation_submitted_at),
                "photos": {
                    "after1": self.installation_photo_after1,
                    "after2": self.installation_photo_after2,
                },
                "notes": self.installation_notes,
            }

        return data
