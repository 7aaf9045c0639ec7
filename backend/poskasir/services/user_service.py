# Overview: Service-layer operations for user management.

from __future__ import annotations

import uuid

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ForbiddenError, ValidationError
from ..extensions import db
from ..models import User
from ..models.activity import ACTION_DELETE, ACTION_UPDATE, ENTITY_USER
from ..models.auth import ROLE_CASHIER
from ..time_utils import utcnow
from .activity_service import log_activity
from .auth_service import add_user, get_live_user, get_role_hierarchy, profile_of
from .concurrency import fetch_all
from .pagination import build_pagination, page_offset

USER_SORT_FIELDS = {
    "created_at": User.created_at,
    "username": User.username,
    "email": User.email,
}


def _filtered_users(search: str | None, role: str | None, is_active: bool | None):
    query = db.session.query(User).filter(User.deleted_at.is_(None))
    if search:
        like = f"%{search}%"
        query = query.filter(or_(User.username.ilike(like), User.email.ilike(like)))
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    return query


def list_users(
    *,
    page: int,
    limit: int,
    search: str | None = None,
    role: str | None = None,
    is_active: bool | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    if sort_by not in USER_SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of: {', '.join(USER_SORT_FIELDS)}")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be asc or desc")

    column = USER_SORT_FIELDS[sort_by]
    ordering = column.asc() if sort_order == "asc" else column.desc()

    def _rows():
        rows = (
            _filtered_users(search, role, is_active)
            .order_by(ordering, User.id.asc())
            .offset(page_offset(page, limit))
            .limit(limit)
            .all()
        )
        return [profile_of(user) for user in rows]

    def _count():
        return _filtered_users(search, role, is_active).count()

    users, total = fetch_all(_rows, _count)
    return {"users": users, "pagination": build_pagination(page, total, limit)}


def create_user(actor: User, *, username: str, email: str, password: str, role: str | None) -> dict:
    return add_user(actor, username, email, password, role or ROLE_CASHIER)


def get_user(user_id: uuid.UUID) -> dict:
    return profile_of(get_live_user(user_id))


def _guard_target(actor: User, target: User) -> None:
    """Actors manage themselves and lower-ranked users only."""
    if actor.id == target.id:
        return
    roles = get_role_hierarchy()
    if not roles.can_assign(actor.role, target.role):
        raise ForbiddenError("Cannot modify a user with an equal or higher role")


def update_user(actor: User, user_id: uuid.UUID, patch: dict) -> dict:
    """
    Partial update of username, email, role and is_active.

    Username/email must stay unique among other users; a role change is
    subject to the same rank rule as user creation.
    """
    user = get_live_user(user_id)
    _guard_target(actor, user)

    username = patch.get("username")
    if username is not None and username != user.username:
        clash = db.session.query(User.id).filter(User.username == username, User.id != user.id).first()
        if clash:
            raise ConflictError("Username already exists")
        user.username = username

    email = patch.get("email")
    if email is not None and email != user.email:
        clash = db.session.query(User.id).filter(User.email == email, User.id != user.id).first()
        if clash:
            raise ConflictError("Email already exists")
        user.email = email

    role = patch.get("role")
    if role is not None and role != user.role:
        roles = get_role_hierarchy()
        if not roles.is_known(role):
            raise ValidationError(f"role must be one of: {', '.join(roles.roles)}")
        if actor.id == user.id or not roles.can_assign(actor.role, role):
            raise ForbiddenError("Cannot assign a role equal to or higher than your own")
        user.role = role

    if "is_active" in patch and patch["is_active"] is not None:
        if actor.id == user.id and not patch["is_active"]:
            raise ValidationError("You cannot deactivate your own account")
        user.is_active = patch["is_active"]

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username or email already exists")

    log_activity(actor.id, ACTION_UPDATE, ENTITY_USER, user.id, {
        k: v for k, v in patch.items() if k in {"username", "email", "role", "is_active"}
    })
    return profile_of(user)


def toggle_user_status(actor: User, user_id: uuid.UUID) -> dict:
    user = get_live_user(user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot change your own status")
    _guard_target(actor, user)

    user.is_active = not user.is_active
    if not user.is_active:
        # Deactivated accounts cannot refresh their session
        user.refresh_token = None
    db.session.commit()

    log_activity(actor.id, ACTION_UPDATE, ENTITY_USER, user.id, {"is_active": user.is_active})
    return profile_of(user)


def delete_user(actor: User, user_id: uuid.UUID) -> None:
    user = get_live_user(user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot delete your own account")
    _guard_target(actor, user)

    user.deleted_at = utcnow()
    user.is_active = False
    user.refresh_token = None
    db.session.commit()

    log_activity(actor.id, ACTION_DELETE, ENTITY_USER, user.id, {"username": user.username})
