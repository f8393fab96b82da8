# Overview: Service-layer operations for staff lookups used by the repair engine.

from __future__ import annotations

from ..extensions import db
from ..models import User
from ..models.auth import USER_ROLES
from ..validation import ConflictError, NotFoundError, ValidationError


def get_active_user(user_id: int) -> User:
    """Technician reference check: the user must exist and be active."""
    user = db.session.query(User).filter_by(id=user_id, is_active=True).first()
    if not user:
        raise NotFoundError("Technician not found")
    return user


def create_user(username: str, full_name: str, role: str, phone_number: str | None = None) -> User:
    """Create a staff record in the caller's transaction."""
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of {', '.join(USER_ROLES)}")
    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError(f"User {username} already exists")

    user = User(
        username=username,
        full_name=(full_name or username).strip(),
        role=role,
        phone_number=phone_number,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()
    return user
