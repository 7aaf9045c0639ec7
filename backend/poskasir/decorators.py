# Overview: Authentication and role decorators for API routes.

import uuid
from functools import wraps

from flask import current_app, g, request

from .errors import UnauthorizedError
from .extensions import db
from .models import User
from .responses import failure
from .tokens import TOKEN_TYPE_ACCESS, get_token_manager

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"


def _load_user_from_cookie() -> User:
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        raise UnauthorizedError("Authentication required")

    claims = get_token_manager().verify(token, TOKEN_TYPE_ACCESS)
    user = db.session.get(User, _claim_uuid(claims))
    if user is None or user.deleted_at is not None:
        raise UnauthorizedError("Invalid or expired token")
    if not user.is_active:
        raise UnauthorizedError("Account is inactive")
    return user


def _claim_uuid(claims: dict) -> uuid.UUID:
    try:
        return uuid.UUID(str(claims.get("user_id")))
    except ValueError:
        raise UnauthorizedError("Invalid token")


def require_auth(f):
    """
    Require a valid access_token cookie.

    Sets g.current_user (a live, active User).
    Returns 401 if:
    - No access_token cookie
    - Bad signature, wrong type or expired token
    - User deleted or deactivated since the token was issued
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            user = _load_user_from_cookie()
        except UnauthorizedError as e:
            return failure("Unauthorized", 401, str(e))

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(minimum: str):
    """
    Require the authenticated user to rank at or above `minimum`.

    Must be stacked under @require_auth. The ranking comes from the role
    hierarchy built at startup (app.extensions["roles"]).
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return failure("Unauthorized", 401, "Authentication required")

            roles = current_app.extensions["roles"]
            if not roles.meets(user.role, minimum):
                current_app.logger.info(
                    "Role check failed for %s on %s %s (has %s, needs %s)",
                    user.username, request.method, request.path, user.role, minimum,
                )
                return failure("Forbidden", 403, f"Requires {minimum} role or higher")

            return f(*args, **kwargs)

        return decorated_function
    return decorator
