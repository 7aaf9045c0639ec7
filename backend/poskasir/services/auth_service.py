# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Uses bcrypt for password hashing and signed, time-limited tokens for
sessions. The access token and the refresh token are both handed to the
client as HTTP-only cookies; only the latest refresh token per user is
accepted (stored on the user row, rotated on every refresh).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12 by default)
- Password length 8-32 characters (validated at the route)
- Profiles never include the password hash
"""

from __future__ import annotations

import uuid

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import (
    ConflictError,
    ForbiddenError,
    InvalidCredentialsError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from ..extensions import db
from ..models import User
from ..models.activity import (
    ACTION_CREATE,
    ACTION_LOGIN_FAILED,
    ACTION_LOGIN_SUCCESS,
    ACTION_REGISTER,
    ACTION_UPDATE_AVATAR,
    ACTION_UPDATE_PASSWORD,
    ENTITY_USER,
)
from ..models.auth import ROLE_CASHIER
from ..storage import get_storage
from ..tokens import TOKEN_TYPE_REFRESH, get_token_manager
from .activity_service import log_activity
from .concurrency import fetch_all, run_in_transaction
from .image_service import normalize_avatar, resolve_link


def hash_password(password: str) -> str:
    """Hash password using bcrypt. Cost comes from BCRYPT_ROUNDS (default 12)."""
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Returns True if password matches hash, False otherwise."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def get_role_hierarchy():
    return current_app.extensions["roles"]


def _email_exists(email: str) -> bool:
    return db.session.query(User.id).filter(User.email == email).first() is not None


def _username_exists(username: str) -> bool:
    return db.session.query(User.id).filter(User.username == username).first() is not None


def ensure_identity_available(email: str, username: str) -> None:
    """
    Check email and username concurrently and decide only after both finish.

    A lookup failure wins over a duplicate (first by declared order: email,
    then username); otherwise either duplicate raises ConflictError.
    """
    email_taken, username_taken = fetch_all(
        lambda: _email_exists(email),
        lambda: _username_exists(username),
    )
    if email_taken:
        raise ConflictError("Email already exists")
    if username_taken:
        raise ConflictError("Username already exists")


def _create_user(username: str, email: str, password: str, role: str) -> User:
    ensure_identity_available(email, username)
    password_hash = hash_password(password)

    def _insert(session):
        user = User(username=username, email=email, password_hash=password_hash, role=role)
        session.add(user)
        session.flush()
        return user

    try:
        return run_in_transaction(_insert)
    except IntegrityError:
        # Lost a race with a concurrent registration of the same identity
        raise ConflictError("User already exists")


def profile_of(user: User, *, fallback_to_key: bool = True) -> dict:
    return user.to_dict(avatar_url=resolve_link(user.avatar, fallback_to_key=fallback_to_key))


def register(username: str, email: str, password: str) -> dict:
    """Public self-registration. New accounts are always cashiers."""
    user = _create_user(username, email, password, ROLE_CASHIER)
    log_activity(user.id, ACTION_REGISTER, ENTITY_USER, user.id, {
        "created_username": user.username,
        "created_email": user.email,
        "created_role": user.role,
    })
    return profile_of(user)


def add_user(actor: User, username: str, email: str, password: str, role: str) -> dict:
    """
    Create an account on behalf of a signed-in user.

    The actor can only grant roles ranked strictly below their own.
    """
    roles = get_role_hierarchy()
    if not roles.is_known(role):
        raise ValidationError(f"role must be one of: {', '.join(roles.roles)}")
    if not roles.can_assign(actor.role, role):
        raise ForbiddenError("Cannot assign a role equal to or higher than your own")

    user = _create_user(username, email, password, role)
    log_activity(actor.id, ACTION_CREATE, ENTITY_USER, user.id, {
        "created_username": user.username,
        "created_email": user.email,
        "created_role": user.role,
    })
    return profile_of(user)


def _issue_session(user: User) -> dict:
    tokens = get_token_manager()
    access_token, expires_at = tokens.generate_access_token(user)
    refresh_token, refresh_expires_at = tokens.generate_refresh_token(user)

    user.refresh_token = refresh_token
    db.session.commit()

    return {
        "token": access_token,
        "expired_at": expires_at,
        "refresh_token": refresh_token,
        "refresh_expired_at": refresh_expires_at,
        "profile": profile_of(user),
    }


def login(email: str, password: str) -> dict:
    """
    Email + password login.

    Raises:
        NotFoundError: no live account with this email
        InvalidCredentialsError: wrong password (LOGIN_FAILED is recorded)
        ForbiddenError: account deactivated
    """
    user = db.session.query(User).filter(User.email == email, User.deleted_at.is_(None)).first()
    if user is None:
        current_app.logger.info("Login attempt for unknown email %s", email)
        raise NotFoundError("User not found")

    details = {"login_username": user.username, "login_email": user.email, "login_role": user.role}

    if not verify_password(password, user.password_hash):
        log_activity(user.id, ACTION_LOGIN_FAILED, ENTITY_USER, user.id, details)
        raise InvalidCredentialsError("Invalid email or password")

    if not user.is_active:
        raise ForbiddenError("Account is inactive")

    session = _issue_session(user)
    log_activity(user.id, ACTION_LOGIN_SUCCESS, ENTITY_USER, user.id, details)
    return session


def refresh_session(refresh_token: str) -> dict:
    """Rotate both tokens. Only the most recently issued refresh token is accepted."""
    claims = get_token_manager().verify(refresh_token, TOKEN_TYPE_REFRESH)
    try:
        user_id = uuid.UUID(claims["user_id"])
    except (KeyError, ValueError):
        raise UnauthorizedError("Invalid token")

    user = db.session.get(User, user_id)
    if user is None or user.deleted_at is not None or not user.is_active:
        raise UnauthorizedError("Invalid or expired session")
    if not user.refresh_token or user.refresh_token != refresh_token:
        current_app.logger.warning("Refresh token mismatch or revoked for user %s", user_id)
        raise UnauthorizedError("Invalid or expired session")

    return _issue_session(user)


def logout(user_id: uuid.UUID) -> None:
    user = db.session.get(User, user_id)
    if user is not None and user.refresh_token is not None:
        user.refresh_token = None
        db.session.commit()


def get_live_user(user_id: uuid.UUID) -> User:
    user = db.session.get(User, user_id)
    if user is None or user.deleted_at is not None:
        raise NotFoundError("User not found")
    return user


def get_profile(user_id: uuid.UUID) -> dict:
    """Every failure here reads as not-found to the caller."""
    try:
        user = get_live_user(user_id)
        return profile_of(user, fallback_to_key=False)
    except NotFoundError:
        raise
    except (SQLAlchemyError, StorageError):
        current_app.logger.exception("Failed to load profile %s", user_id)
        raise NotFoundError("User not found")


def update_password(user_id: uuid.UUID, old_password: str, new_password: str) -> None:
    user = get_live_user(user_id)
    if not verify_password(old_password, user.password_hash):
        raise InvalidCredentialsError("Old password is incorrect")

    user.password_hash = hash_password(new_password)
    db.session.commit()
    log_activity(user.id, ACTION_UPDATE_PASSWORD, ENTITY_USER, user.id, {"username": user.username})


def upload_avatar(user_id: uuid.UUID, data: bytes) -> dict:
    """Store a square avatar as avatars/{id}.jpg and return the updated profile."""
    max_bytes = current_app.config["AVATAR_MAX_BYTES"]
    if len(data) > max_bytes:
        raise ValidationError(f"Avatar must be at most {max_bytes // (1024 * 1024)}MB")

    user = get_live_user(user_id)
    jpeg = normalize_avatar(data)

    key = f"avatars/{user.id}.jpg"
    url = get_storage().upload_file(key, jpeg, "image/jpeg")

    user.avatar = key
    db.session.commit()
    log_activity(user.id, ACTION_UPDATE_AVATAR, ENTITY_USER, user.id, {"avatar": key})
    return user.to_dict(avatar_url=url)
