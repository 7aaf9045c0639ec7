# Overview: Flask API routes for the activity log.

from flask import Blueprint, current_app, request

from ..decorators import require_auth, require_role
from ..models.activity import ACTION_TYPES, ENTITY_TYPES
from ..models.auth import ROLE_ADMIN
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, success
from ..services import activity_service
from ..validation import ValidationError, parse_date_range, parse_optional_uuid, parse_pagination

activity_logs_bp = Blueprint("activity_logs", __name__, url_prefix="/api/v1/activity-logs")


def _optional_choice(args, field: str, choices) -> str | None:
    value = (args.get(field) or "").strip().upper() or None
    if value is not None and value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value


@activity_logs_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_activity_logs_route():
    """
    Query params:
    - page, limit (default 10, max 100)
    - search: entity id or username
    - start_date, end_date (YYYY-MM-DD, inclusive)
    - user_id, entity_type, action_type
    """
    try:
        page, limit = parse_pagination(request.args)
        start, end = parse_date_range(request.args, required=False)
        data = activity_service.list_activity_logs(
            page=page,
            limit=limit,
            search=(request.args.get("search") or "").strip() or None,
            start=start,
            end=end,
            user_id=parse_optional_uuid(request.args.get("user_id"), "user_id"),
            entity_type=_optional_choice(request.args, "entity_type", ENTITY_TYPES),
            action_type=_optional_choice(request.args, "action_type", ACTION_TYPES),
        )
        return success("Activity logs retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to list activity logs")
        return internal_error()
