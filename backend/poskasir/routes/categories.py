# Overview: Flask API routes for categories; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_MANAGER
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, success
from ..services import category_service
from ..validation import MAX_PAGE_LIMIT, MAX_ROW_OFFSET, NotFoundError, ValidationError, json_body, require_str, to_int

categories_bp = Blueprint("categories", __name__, url_prefix="/api/v1/categories")

DEFAULT_CATEGORY_LIMIT = 50


def _limit_offset(args) -> tuple[int, int]:
    limit = to_int("limit", args.get("limit", DEFAULT_CATEGORY_LIMIT))
    offset = to_int("offset", args.get("offset", 0))
    if limit < 1 or limit > MAX_PAGE_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
    if offset < 0 or offset > MAX_ROW_OFFSET:
        raise ValidationError(f"offset must be between 0 and {MAX_ROW_OFFSET}")
    return limit, offset


def _category_id(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise NotFoundError("Category not found")


def _category_name(payload: dict) -> str:
    return require_str(payload, "name", min_len=3, max_len=100)


@categories_bp.get("")
@require_auth
def list_categories_route():
    try:
        limit, offset = _limit_offset(request.args)
        data = category_service.list_categories(limit=limit, offset=offset)
        return success("Categories retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to list categories")
        return internal_error()


@categories_bp.get("/count")
@require_auth
def list_categories_with_count_route():
    """Categories with the number of live products in each."""
    try:
        limit, offset = _limit_offset(request.args)
        data = category_service.list_categories_with_product_count(limit=limit, offset=offset)
        return success("Categories retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to list categories with product count")
        return internal_error()


@categories_bp.post("")
@require_auth
@require_role(ROLE_MANAGER)
def create_category_route():
    try:
        name = _category_name(json_body())
        data = category_service.create_category(g.current_user, name)
        return success("Category created successfully", data, 201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return internal_error()


@categories_bp.get("/<category_id>")
@require_auth
@require_role(ROLE_MANAGER)
def get_category_route(category_id: str):
    try:
        data = category_service.get_category(_category_id(category_id))
        return success("Category retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to get category")
        return internal_error()


@categories_bp.put("/<category_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_category_route(category_id: str):
    try:
        target = _category_id(category_id)
        name = _category_name(json_body())
        data = category_service.update_category(g.current_user, target, name)
        return success("Category updated successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return internal_error()


@categories_bp.delete("/<category_id>")
@require_auth
@require_role(ROLE_MANAGER)
def delete_category_route(category_id: str):
    try:
        category_service.delete_category(g.current_user, _category_id(category_id))
        return success("Category deleted successfully")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return internal_error()
