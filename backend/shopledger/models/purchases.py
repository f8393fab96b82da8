from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from shopledger.time_utils import to_utc_z


class Purchase(db.Model):
    """
    The shop buying one or more phones from a walk-in seller.

    WHY: A purchase registers new inventory and records what the shop owes
    for it. Money is denormalized (total/paid_now/remaining) and remaining is
    the authoritative running balance; activities are the audit trail.

    INVARIANTS (CHECK constraints):
    - total_price_cents = paid_now_cents + remaining_cents
    - remaining_cents >= 0, paid_now_cents >= 0
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.CheckConstraint(
            "total_price_cents = paid_now_cents + remaining_cents",
            name="ck_purchases_balance",
        ),
        db.CheckConstraint("remaining_cents >= 0", name="ck_purchases_remaining_nonneg"),
        db.CheckConstraint("paid_now_cents >= 0", name="ck_purchases_paid_nonneg"),
        db.Index("ix_purchases_active_purchased_at", "is_active", "purchased_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchased_at = db.Column(db.DateTime(timezone=True), nullable=False)
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

    customer = db.relationship("Customer", backref=db.backref("purchases", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchased_at": to_utc_z(self.purchased_at),
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


class PurchaseItem(db.Model):
    """Join row: one inventory item bought on a purchase, with its price."""
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    purchase_price_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    purchase = db.relationship("Purchase", backref=db.backref("purchase_items", lazy=True))
    item = db.relationship("InventoryItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "item_id": self.item_id,
            "purchase_price": format_cents(self.purchase_price_cents),
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseActivity(db.Model):
    """
    Append-only payment history row against a purchase.

    Also used for informational entries (repair cost on completion) that do
    not change the purchase balance.
    """
    __tablename__ = "purchase_activities"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)

    # PAYMENT rows move the balance; REPAIR_COST and REPAIR_REVERSAL rows are informational only
    activity_type = db.Column(db.String(16), nullable=False, default="PAYMENT")
    repair_id = db.Column(db.Integer, db.ForeignKey("repairs.id"), nullable=True, index=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    purchase = db.relationship("Purchase", backref=db.backref("activities", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "activity_type": self.activity_type,
            "repair_id": self.repair_id,
            "paid_at": to_utc_z(self.paid_at),
            "amount": format_cents(self.amount_cents),
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
