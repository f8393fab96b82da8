from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z


ROLE_OWNER_ADMIN = "OWNER_ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_CASHIER = "CASHIER"
ROLE_TECHNICIAN = "TECHNICIAN"

USER_ROLES = [ROLE_OWNER_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_TECHNICIAN]


class User(db.Model):
    """
    Staff member record.

    Only the identity fields the ledger needs live here (repairs reference a
    technician). Credentials and sessions are handled outside this service.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(120), nullable=False)
    phone_number = db.Column(db.String(30), nullable=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_CASHIER)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
