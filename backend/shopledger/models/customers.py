from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z


class Customer(db.Model):
    """
    Counterparty for purchases (shop buys from them) and sales (shop sells to them).

    WHY: Balances left open on a purchase or sale must be owed by or to
    someone. Customers are keyed by phone number and upserted, never
    duplicated; a soft-deleted customer is reactivated on the next match.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("phone_number", name="uq_customers_phone_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    full_name = db.Column(db.String(120), nullable=False)
    phone_number = db.Column(db.String(30), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    passport_id = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "address": self.address,
            "passport_id": self.passport_id,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
