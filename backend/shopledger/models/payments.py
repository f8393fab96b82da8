from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import validates

from ..extensions import db
from ..money import format_cents
from shopledger.time_utils import to_utc_z


DIRECTION_CUSTOMER_PAYS_SHOP = "CUSTOMER_PAYS_SHOP"
DIRECTION_SHOP_PAYS_CUSTOMER = "SHOP_PAYS_CUSTOMER"

PAYMENT_DIRECTIONS = [DIRECTION_CUSTOMER_PAYS_SHOP, DIRECTION_SHOP_PAYS_CUSTOMER]

TARGET_SALE = "SALE"
TARGET_PURCHASE = "PURCHASE"

ALLOCATION_TARGETS = [TARGET_SALE, TARGET_PURCHASE]


class Payment(db.Model):
    """
    Customer-level settlement: one movement of money between a customer and
    the shop, split across that customer's open sales or purchases.

    DESIGN: Each allocation also appends an activity on its target, so the
    per-document ledger stays the single source of balances.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    direction = db.Column(db.String(24), nullable=False)
    method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "direction": self.direction,
            "method": self.method,
            "amount": format_cents(self.amount_cents),
            "paid_at": to_utc_z(self.paid_at),
            "notes": self.notes,
            "allocations": [a.to_dict() for a in self.allocations],
            "created_at": to_utc_z(self.created_at),
        }


class PaymentAllocation(db.Model):
    """
    Portion of a Payment applied to exactly one Sale or Purchase.

    Tagged variant: target_type names which foreign key is populated. The
    pairing is checked in Python before the row is written (check_target) and
    backed by a CHECK constraint.
    """
    __tablename__ = "payment_allocations"
    __table_args__ = (
        db.CheckConstraint(
            "(target_type = 'SALE' AND target_sale_id IS NOT NULL AND target_purchase_id IS NULL)"
            " OR (target_type = 'PURCHASE' AND target_purchase_id IS NOT NULL AND target_sale_id IS NULL)",
            name="ck_payment_allocations_single_target",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)

    target_type = db.Column(db.String(16), nullable=False)
    target_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    target_purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    payment = db.relationship("Payment", backref=db.backref("allocations", lazy=True))

    @validates("target_type")
    def _validate_target_type(self, key, value):
        if value not in ALLOCATION_TARGETS:
            raise ValueError(f"target_type must be one of {ALLOCATION_TARGETS}")
        return value

    def check_target(self) -> None:
        """Exactly one target FK set, and it must match target_type."""
        has_sale = self.target_sale_id is not None
        has_purchase = self.target_purchase_id is not None
        if has_sale == has_purchase:
            raise ValueError("Allocation must reference exactly one of sale or purchase")
        if self.target_type == TARGET_SALE and not has_sale:
            raise ValueError("SALE allocation must reference a sale")
        if self.target_type == TARGET_PURCHASE and not has_purchase:
            raise ValueError("PURCHASE allocation must reference a purchase")

    @property
    def target_id(self) -> int:
        return self.target_sale_id if self.target_type == TARGET_SALE else self.target_purchase_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "amount": format_cents(self.amount_cents),
        }


@event.listens_for(PaymentAllocation, "before_insert")
@event.listens_for(PaymentAllocation, "before_update")
def _check_allocation_target(mapper, connection, target):
    target.check_target()
