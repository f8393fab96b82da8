from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from shopledger.time_utils import to_utc_z


# =============================================================================
# ITEM STATUS / CONDITION (CONSTANTS)
# =============================================================================

STATUS_IN_STOCK = "IN_STOCK"
STATUS_IN_REPAIR = "IN_REPAIR"
STATUS_READY_FOR_SALE = "READY_FOR_SALE"
STATUS_SOLD = "SOLD"
STATUS_RETURNED = "RETURNED"

ITEM_STATUSES = [
    STATUS_IN_STOCK,
    STATUS_IN_REPAIR,
    STATUS_READY_FOR_SALE,
    STATUS_SOLD,
    STATUS_RETURNED,
]

SELLABLE_STATUSES = {STATUS_IN_STOCK, STATUS_READY_FOR_SALE}

CONDITION_GOOD = "GOOD"
CONDITION_USED = "USED"
CONDITION_BROKEN = "BROKEN"

ITEM_CONDITIONS = [CONDITION_GOOD, CONDITION_USED, CONDITION_BROKEN]


class InventoryItem(db.Model):
    """
    One physical phone, identified by IMEI.

    WHY: Every purchase, sale and repair is anchored to a single device, so the
    item row carries the lifecycle state that the transaction engines guard:
    IN_STOCK -> IN_REPAIR -> READY_FOR_SALE -> SOLD (plus RETURNED).

    INVARIANTS:
    - status == SOLD iff sale_id is set (CHECK constraint)
    - at most one active item per IMEI (partial unique index)
    - never hard-deleted; is_active/deleted_at flip instead
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index(
            "uq_inventory_items_active_imei",
            "imei",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active IS TRUE"),
        ),
        db.Index("ix_inventory_items_status_active", "status", "is_active"),
        db.CheckConstraint(
            "(status = 'SOLD' AND sale_id IS NOT NULL) OR (status <> 'SOLD' AND sale_id IS NULL)",
            name="ck_inventory_items_sold_has_sale",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    imei = db.Column(db.String(40), nullable=False, index=True)
    serial_number = db.Column(db.String(50), nullable=True)
    brand = db.Column(db.String(80), nullable=False)
    model = db.Column(db.String(80), nullable=False)
    storage = db.Column(db.String(40), nullable=True)
    color = db.Column(db.String(40), nullable=True)

    condition = db.Column(db.String(16), nullable=False, default=CONDITION_GOOD)
    known_issues = db.Column(db.Text, nullable=True)
    expected_sale_price_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=STATUS_IN_STOCK)

    # Back-references to the owning documents
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    purchase = db.relationship("Purchase", foreign_keys=[purchase_id])
    sale = db.relationship("Sale", foreign_keys=[sale_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def label(self) -> str:
        return f"{self.brand} {self.model}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "imei": self.imei,
            "serial_number": self.serial_number,
            "brand": self.brand,
            "model": self.model,
            "storage": self.storage,
            "color": self.color,
            "condition": self.condition,
            "known_issues": self.known_issues,
            "expected_sale_price": format_cents(self.expected_sale_price_cents),
            "status": self.status,
            "purchase_id": self.purchase_id,
            "sale_id": self.sale_id,
            "is_active": self.is_active,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
