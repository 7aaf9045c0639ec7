from __future__ import annotations

import uuid6

from ..extensions import db
from poskasir.time_utils import to_utc_z, utcnow

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_CASHIER = "cashier"
USER_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)


class User(db.Model):
    """
    Staff accounts.

    Ids are UUIDv7 so they sort by creation time. Users are never hard-deleted:
    deleted_at hides them from every lookup, is_active blocks login.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("role IN ('admin', 'manager', 'cashier')", name="ck_users_role"),
        db.Index("ix_users_role_active", "role", "is_active"),
    )

    id = db.Column(db.Uuid, primary_key=True, default=uuid6.uuid7)
    username = db.Column(db.String(32), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=False, unique=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_CASHIER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Object-storage key, resolved to a link on read
    avatar = db.Column(db.String(255), nullable=True)

    # Latest issued refresh token; replaced on every login/refresh, cleared on logout
    refresh_token = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self, avatar_url: str | None = None) -> dict:
        """Profile view. The password hash and refresh token never leave the model."""
        return {
            "id": str(self.id),
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "avatar": avatar_url if avatar_url is not None else self.avatar,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
