from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from shopledger.time_utils import to_utc_z


class Sale(db.Model):
    """
    The shop selling one or more existing inventory items.

    Mirror of Purchase: same balance invariant, but consumes sellable
    inventory instead of registering new items.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint(
            "total_price_cents = paid_now_cents + remaining_cents",
            name="ck_sales_balance",
        ),
        db.CheckConstraint("remaining_cents >= 0", name="ck_sales_remaining_nonneg"),
        db.CheckConstraint("paid_now_cents >= 0", name="ck_sales_paid_nonneg"),
        db.Index("ix_sales_active_sold_at", "is_active", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    payment_method = db.Column(db.String(16), nullable=False)  # CASH, CARD, OTHER
    payment_type = db.Column(db.String(16), nullable=False, index=True)  # PAID_NOW, PAY_LATER

    # All amounts in cents
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_now_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sold_at": to_utc_z(self.sold_at),
            "customer_id": self.customer_id,
            "payment_method": self.payment_method,
            "payment_type": self.payment_type,
            "total_price": format_cents(self.total_price_cents),
            "paid_now": format_cents(self.paid_now_cents),
            "remaining": format_cents(self.remaining_cents),
            "notes": self.notes,
            "is_active": self.is_active,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class SaleItem(db.Model):
    """Join row: one inventory item sold on a sale. At most one active row per item."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.Index(
            "uq_sale_items_active_item",
            "item_id",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active IS TRUE"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    sale_price_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("sale_items", lazy=True))
    item = db.relationship("InventoryItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_id": self.item_id,
            "sale_price": format_cents(self.sale_price_cents),
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class SaleActivity(db.Model):
    """Append-only payment history row against a sale."""
    __tablename__ = "sale_activities"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("activities", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "paid_at": to_utc_z(self.paid_at),
            "amount": format_cents(self.amount_cents),
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
