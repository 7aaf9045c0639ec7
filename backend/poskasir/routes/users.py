# Overview: Flask API routes for user management; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, success
from ..services import user_service
from ..validation import (
    ValidationError,
    json_body,
    parse_bool_arg,
    parse_pagination,
    path_uuid,
    require_choice,
    require_email,
    require_password,
    require_str,
)

users_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")


@users_bp.get("")
@require_auth
def list_users_route():
    """
    Query params:
    - page, limit (default 10, max 100)
    - search: matches username or email
    - role, is_active
    - sort_by: created_at | username | email
    - sort_order: asc | desc
    """
    try:
        page, limit = parse_pagination(request.args)
        role = request.args.get("role") or None
        roles = current_app.extensions["roles"]
        if role is not None and not roles.is_known(role):
            raise ValidationError(f"role must be one of: {', '.join(roles.roles)}")
        result = user_service.list_users(
            page=page,
            limit=limit,
            search=(request.args.get("search") or "").strip() or None,
            role=role,
            is_active=parse_bool_arg(request.args.get("is_active"), "is_active"),
            sort_by=request.args.get("sort_by") or "created_at",
            sort_order=(request.args.get("sort_order") or "desc").lower(),
        )
        return success("Users retrieved successfully", result)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to list users")
        return internal_error()


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    try:
        payload = json_body()
        roles = current_app.extensions["roles"]
        profile = user_service.create_user(
            g.current_user,
            username=require_str(payload, "username", min_len=3, max_len=32),
            email=require_email(payload),
            password=require_password(payload),
            role=require_choice(payload, "role", roles.roles, default="cashier"),
        )
        return success("User created successfully", profile, 201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return internal_error()


@users_bp.get("/<user_id>")
@require_auth
@require_role(ROLE_MANAGER)
def get_user_route(user_id: str):
    try:
        profile = user_service.get_user(path_uuid(user_id, "User"))
        return success("User retrieved successfully", profile)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to get user")
        return internal_error()


@users_bp.put("/<user_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_user_route(user_id: str):
    """Partial update of username, email, role, is_active."""
    try:
        target_id = path_uuid(user_id, "User")
        payload = json_body()
        patch = {}
        if "username" in payload:
            patch["username"] = require_str(payload, "username", min_len=3, max_len=32)
        if "email" in payload:
            patch["email"] = require_email(payload)
        if "role" in payload:
            patch["role"] = require_choice(payload, "role", current_app.extensions["roles"].roles)
        if "is_active" in payload:
            if not isinstance(payload["is_active"], bool):
                raise ValidationError("is_active must be a boolean")
            patch["is_active"] = payload["is_active"]

        profile = user_service.update_user(g.current_user, target_id, patch)
        return success("User updated successfully", profile)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return internal_error()


@users_bp.post("/<user_id>/toggle-status")
@require_auth
@require_role(ROLE_ADMIN)
def toggle_user_status_route(user_id: str):
    try:
        profile = user_service.toggle_user_status(g.current_user, path_uuid(user_id, "User"))
        return success("User status updated successfully", profile)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to toggle user status")
        return internal_error()


@users_bp.delete("/<user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user_route(user_id: str):
    try:
        user_service.delete_user(g.current_user, path_uuid(user_id, "User"))
        return success("User deleted successfully")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return internal_error()
