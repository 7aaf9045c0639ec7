from __future__ import annotations

from ..extensions import db
from poskasir.time_utils import to_utc_z, utcnow

ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_DELETE = "DELETE"
ACTION_CANCEL = "CANCEL"
ACTION_APPLY_PROMOTION = "APPLY_PROMOTION"
ACTION_PROCESS_PAYMENT = "PROCESS_PAYMENT"
ACTION_REGISTER = "REGISTER"
ACTION_UPDATE_PASSWORD = "UPDATE_PASSWORD"
ACTION_UPDATE_AVATAR = "UPDATE_AVATAR"
ACTION_LOGIN_SUCCESS = "LOGIN_SUCCESS"
ACTION_LOGIN_FAILED = "LOGIN_FAILED"
ACTION_TYPES = (
    ACTION_CREATE,
    ACTION_UPDATE,
    ACTION_DELETE,
    ACTION_CANCEL,
    ACTION_APPLY_PROMOTION,
    ACTION_PROCESS_PAYMENT,
    ACTION_REGISTER,
    ACTION_UPDATE_PASSWORD,
    ACTION_UPDATE_AVATAR,
    ACTION_LOGIN_SUCCESS,
    ACTION_LOGIN_FAILED,
)

ENTITY_PRODUCT = "PRODUCT"
ENTITY_CATEGORY = "CATEGORY"
ENTITY_PROMOTION = "PROMOTION"
ENTITY_ORDER = "ORDER"
ENTITY_USER = "USER"
ENTITY_SETTINGS = "SETTINGS"
ENTITY_TYPES = (ENTITY_PRODUCT, ENTITY_CATEGORY, ENTITY_PROMOTION, ENTITY_ORDER, ENTITY_USER, ENTITY_SETTINGS)


class ActivityLog(db.Model):
    """
    Append-only audit trail of mutating actions.

    The application only ever inserts rows here.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_created", "created_at"),
        db.Index("ix_activity_logs_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Uuid, db.ForeignKey("users.id"), nullable=True, index=True)
    action_type = db.Column(db.String(32), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": str(self.user_id) if self.user_id else None,
            "username": self.user.username if self.user else None,
            "action_type": self.action_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }
