# Overview: Flask API routes for branding and printer settings; parses input and returns JSON responses.

"""
Settings routes.

SECURITY:
- Branding is public so the login screen can show the shop name and logo
- Printer settings can be read by any signed-in user
- Every write requires admin
"""
import re

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, success
from ..services import settings_service
from ..validation import ValidationError, json_body, require_choice, require_str

settings_bp = Blueprint("settings", __name__, url_prefix="/api/v1/settings")

HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def _optional_str(payload: dict, field: str, *, max_len: int) -> str:
    value = payload.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters")
    return value


def _hex_color(payload: dict, field: str) -> str:
    value = require_str(payload, field, max_len=7)
    if not HEX_COLOR_RE.match(value):
        raise ValidationError(f"{field} must be a hex color such as #1a2b3c")
    return value


def _branding_values(payload: dict) -> dict:
    return {
        "app_name": require_str(payload, "app_name", min_len=3, max_len=100),
        "app_logo": _optional_str(payload, "app_logo", max_len=500),
        "footer_text": _optional_str(payload, "footer_text", max_len=200),
        "theme_color": _hex_color(payload, "theme_color"),
        "theme_color_dark": _hex_color(payload, "theme_color_dark"),
    }


def _printer_values(payload: dict) -> dict:
    auto_print = payload.get("auto_print")
    if not isinstance(auto_print, bool):
        raise ValidationError("auto_print must be true or false")
    return {
        "connection": require_str(payload, "connection", max_len=255),
        "paper_width": require_choice(payload, "paper_width", settings_service.PAPER_WIDTHS),
        "auto_print": auto_print,
        "print_method": require_choice(payload, "print_method", settings_service.PRINT_METHODS),
    }


@settings_bp.get("/branding")
def get_branding_route():
    try:
        return success("Branding settings fetched successfully", settings_service.get_branding())
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch branding settings")
        return internal_error()


@settings_bp.put("/branding")
@require_auth
@require_role(ROLE_ADMIN)
def update_branding_route():
    try:
        values = _branding_values(json_body())
        data = settings_service.update_branding(g.current_user, values)
        return success("Branding settings updated successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update branding settings")
        return internal_error()


@settings_bp.post("/branding/logo")
@require_auth
@require_role(ROLE_ADMIN)
def upload_logo_route():
    """Multipart upload, field name `logo`; any decodable image up to 5MB, stored as PNG."""
    try:
        upload = request.files.get("logo")
        if upload is None or not upload.filename:
            raise ValidationError("logo file is required")
        data = settings_service.upload_logo(g.current_user, upload.read())
        return success("Logo updated successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update logo")
        return internal_error()


@settings_bp.get("/printer")
@require_auth
def get_printer_settings_route():
    try:
        return success("Printer settings fetched successfully", settings_service.get_printer_settings())
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch printer settings")
        return internal_error()


@settings_bp.put("/printer")
@require_auth
@require_role(ROLE_ADMIN)
def update_printer_settings_route():
    try:
        values = _printer_values(json_body())
        data = settings_service.update_printer_settings(g.current_user, values)
        return success("Printer settings updated successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update printer settings")
        return internal_error()
