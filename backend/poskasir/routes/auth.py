# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/poskasir/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Session carried in HTTP-only cookies (access_token, refresh_token)
- Secure cookies in production; SameSite=None + Secure when the web
  frontend lives on another origin, SameSite=Lax otherwise
- Refresh tokens rotate on every use; logout revokes the stored one
"""

from datetime import datetime

from flask import Blueprint, current_app, g, request

from ..decorators import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, require_auth, require_role
from ..errors import UnauthorizedError, ValidationError
from ..models.auth import ROLE_MANAGER
from ..responses import DOMAIN_ERRORS, domain_error, failure, internal_error, success
from ..services import auth_service
from ..time_utils import to_utc_z
from ..validation import json_body, require_choice, require_email, require_password, require_str

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _cookie_options() -> dict:
    config = current_app.config
    cross_origin = bool(config.get("WEB_FRONTEND_CROSS_ORIGIN"))
    secure = cross_origin or config.get("APP_ENV") == "production"
    return {
        "httponly": True,
        "secure": secure,
        "samesite": "None" if cross_origin else "Lax",
        "domain": config.get("COOKIE_DOMAIN"),
        "path": "/",
    }


def _set_session_cookies(response, session: dict):
    options = _cookie_options()
    response.set_cookie(ACCESS_TOKEN_COOKIE, session["token"], expires=session["expired_at"], **options)
    response.set_cookie(
        REFRESH_TOKEN_COOKIE, session["refresh_token"], expires=session["refresh_expired_at"], **options
    )
    return response


def _clear_session_cookies(response):
    options = _cookie_options()
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            name,
            path=options["path"],
            domain=options["domain"],
            secure=options["secure"],
            httponly=True,
            samesite=options["samesite"],
        )
    return response


def _session_response(message: str, session: dict):
    expired: datetime = session["expired_at"]
    response, status = success(message, {"expired": to_utc_z(expired), "profile": session["profile"]})
    _set_session_cookies(response, session)
    return response, status


def _user_fields(payload: dict) -> tuple[str, str, str]:
    username = require_str(payload, "username", min_len=3, max_len=32)
    email = require_email(payload)
    password = require_password(payload)
    return username, email, password


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email + password.

    Sets both session cookies and returns {expired, profile}.
    """
    try:
        payload = json_body()
        email = require_email(payload)
        password = payload.get("password")
        if not isinstance(password, str) or not password:
            raise ValidationError("password is required")
        session = auth_service.login(email, password)
        return _session_response("Login successful", session)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return internal_error()


@auth_bp.post("/register")
def register_route():
    """Public self-registration. New accounts are cashiers."""
    try:
        username, email, password = _user_fields(json_body())
        profile = auth_service.register(username, email, password)
        return success("User registered successfully", profile, 201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return internal_error()


@auth_bp.post("/add")
@require_auth
@require_role(ROLE_MANAGER)
def add_user_route():
    """Create an account with an explicit role ranked below the caller's."""
    try:
        payload = json_body()
        username, email, password = _user_fields(payload)
        roles = current_app.extensions["roles"]
        role = require_choice(payload, "role", roles.roles)
        profile = auth_service.add_user(g.current_user, username, email, password, role)
        return success("User created successfully", profile, 201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to add user")
        return internal_error()


@auth_bp.get("/me")
@require_auth
def me_route():
    try:
        profile = auth_service.get_profile(g.current_user.id)
        return success("Profile retrieved successfully", profile)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to get profile")
        return internal_error()


@auth_bp.put("/me/avatar")
@require_auth
def update_avatar_route():
    """Multipart upload, field name `avatar`; square images up to 3MB."""
    try:
        upload = request.files.get("avatar")
        if upload is None or not upload.filename:
            raise ValidationError("avatar file is required")
        data = upload.read()
        profile = auth_service.upload_avatar(g.current_user.id, data)
        return success("Avatar updated successfully", profile)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update avatar")
        return internal_error()


@auth_bp.put("/me/password")
@require_auth
def update_password_route():
    try:
        payload = json_body()
        old_password = require_password(payload, "old_password")
        new_password = require_password(payload, "new_password")
        auth_service.update_password(g.current_user.id, old_password, new_password)
        return success("Password updated successfully")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update password")
        return internal_error()


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        auth_service.logout(g.current_user.id)
        response, status = success("Logout successful")
        _clear_session_cookies(response)
        return response, status
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return internal_error()


@auth_bp.post("/refresh")
def refresh_route():
    """Rotate both tokens using the refresh_token cookie."""
    try:
        token = request.cookies.get(REFRESH_TOKEN_COOKIE)
        if not token:
            raise UnauthorizedError("Refresh token missing")
        session = auth_service.refresh_session(token)
        return _session_response("Token refreshed successfully", session)
    except UnauthorizedError as e:
        response, status = failure("Unauthorized", 401, str(e))
        _clear_session_cookies(response)
        return response, status
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to refresh session")
        return internal_error()
