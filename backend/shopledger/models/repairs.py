from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from shopledger.time_utils import to_utc_z


REPAIR_STATUS_PENDING = "PENDING"
REPAIR_STATUS_DONE = "DONE"

REPAIR_STATUSES = [REPAIR_STATUS_PENDING, REPAIR_STATUS_DONE]


class Repair(db.Model):
    """
    Repair work order against exactly one inventory item.

    WHY: Repair spend is tracked per device so it can be reconciled against the
    purchase that brought the device in. Cost fields are derived from entries
    and recomputed whenever an entry changes; parts/labor stay NULL until the
    case has at least one entry.
    """
    __tablename__ = "repairs"
    __table_args__ = (
        db.Index("ix_repairs_item_active", "item_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    repaired_at = db.Column(db.DateTime(timezone=True), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=REPAIR_STATUS_PENDING, index=True)

    # All amounts in cents
    cost_total_cents = db.Column(db.Integer, nullable=False, default=0)
    parts_cost_cents = db.Column(db.Integer, nullable=True)
    labor_cost_cents = db.Column(db.Integer, nullable=True)

    technician_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    item = db.relationship("InventoryItem", backref=db.backref("repairs", lazy=True))
    technician = db.relationship("User")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "repaired_at": to_utc_z(self.repaired_at),
            "description": self.description,
            "status": self.status,
            "cost_total": format_cents(self.cost_total_cents),
            "parts_cost": format_cents(self.parts_cost_cents),
            "labor_cost": format_cents(self.labor_cost_cents),
            "technician_id": self.technician_id,
            "notes": self.notes,
            "is_active": self.is_active,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class RepairEntry(db.Model):
    """Individual billable event on a repair case."""
    __tablename__ = "repair_entries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    repair_id = db.Column(db.Integer, db.ForeignKey("repairs.id"), nullable=False, index=True)

    entry_at = db.Column(db.DateTime(timezone=True), nullable=False)
    description = db.Column(db.Text, nullable=False)

    cost_total_cents = db.Column(db.Integer, nullable=False)
    parts_cost_cents = db.Column(db.Integer, nullable=True)
    labor_cost_cents = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    repair = db.relationship("Repair", backref=db.backref("entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "repair_id": self.repair_id,
            "entry_at": to_utc_z(self.entry_at),
            "description": self.description,
            "cost_total": format_cents(self.cost_total_cents),
            "parts_cost": format_cents(self.parts_cost_cents),
            "labor_cost": format_cents(self.labor_cost_cents),
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
