# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/poskasir/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations require cashier or higher
- Write operations require manager or higher
- Delete and the trash view require admin
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models import Product, ProductOption
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, success
from ..services import products_service, stock_service
from ..validation import (
    MAX_PRICE,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    json_body,
    parse_pagination,
    parse_uuid,
    path_uuid,
    to_int,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category_id", "price", "cost_price", "stock"},
    required_on_create={"name", "price", "stock"},
    min_lengths={"name": 3},
)

OPTION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "additional_price"},
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/v1/products")


def _option_patch(payload, *, partial: bool) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Each option must be an object")
    patch = validate_payload(model=ProductOption, payload=payload, policy=OPTION_POLICY, partial=partial)
    price = patch.get("additional_price")
    if price is not None and (price < 0 or price > MAX_PRICE):
        raise ValidationError(f"additional_price must be between 0 and {MAX_PRICE}")
    return patch


def _list_filters(args) -> dict:
    page, limit = parse_pagination(args)
    category_id = args.get("category_id")
    return {
        "page": page,
        "limit": limit,
        "category_id": to_int("category_id", category_id) if category_id not in (None, "") else None,
        "search": (args.get("search") or "").strip() or None,
    }


def _read_image(field: str = "image") -> bytes:
    """Read a multipart image and enforce the product image ceiling up front."""
    upload = request.files.get(field)
    if upload is None or not upload.filename:
        raise ValidationError(f"{field} file is required")
    data = upload.read()
    max_bytes = current_app.config["PRODUCT_IMAGE_MAX_BYTES"]
    if len(data) > max_bytes:
        raise ValidationError(f"Image must be at most {max_bytes // (1024 * 1024)}MB")
    return data


@products_bp.post("")
@require_auth
@require_role(ROLE_MANAGER)
def create_product_route():
    """
    Create a product with its options.

    Body: {name, category_id?, price, cost_price?, stock,
           options: [{name, additional_price}]}
    """
    try:
        payload = json_body()
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)

        raw_options = payload.get("options") or []
        if not isinstance(raw_options, list):
            raise ValidationError("options must be a list")
        options = [_option_patch(o, partial=False) for o in raw_options]

        data = products_service.create_product(g.current_user, patch, options)
        return success("Product created successfully", data, 201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return internal_error()


@products_bp.get("")
@require_auth
@require_role(ROLE_CASHIER)
def list_products_route():
    """
    Query params:
    - page (default 1), limit (default 10, max 100)
    - category_id, search (name contains)
    """
    try:
        data = products_service.list_products(**_list_filters(request.args))
        return success("Products retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return internal_error()


@products_bp.get("/<product_id>")
@require_auth
@require_role(ROLE_CASHIER)
def get_product_route(product_id: str):
    try:
        data = products_service.get_product(path_uuid(product_id, "Product"))
        return success("Product retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to get product")
        return internal_error()


@products_bp.patch("/<product_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_product_route(product_id: str):
    """
    Partial update. A stock change is recorded in the stock history using
    change_type (sale|restock|correction|return|damage) and note when given.
    """
    try:
        target = path_uuid(product_id, "Product")
        payload = json_body()
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        if "name" in patch and not patch["name"]:
            raise ValidationError("name cannot be blank")

        change_type = stock_service.validate_change_type(payload.get("change_type") or None)
        note = payload.get("note")
        if note is not None and (not isinstance(note, str) or len(note) > 255):
            raise ValidationError("note must be a string of at most 255 characters")

        data = products_service.update_product(
            g.current_user, target, patch, change_type=change_type, note=note,
        )
        return success("Product updated successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return internal_error()


@products_bp.delete("/<product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: str):
    try:
        products_service.delete_product(g.current_user, path_uuid(product_id, "Product"))
        return success("Product deleted successfully")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return internal_error()


@products_bp.post("/<product_id>/image")
@require_auth
@require_role(ROLE_MANAGER)
def upload_product_image_route(product_id: str):
    """Multipart field `image`, at most 2MB."""
    try:
        target = path_uuid(product_id, "Product")
        data = _read_image()
        result = products_service.upload_product_image(g.current_user, target, data)
        return success("Product image uploaded successfully", result)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to upload product image")
        return internal_error()


@products_bp.get("/<product_id>/stock-history")
@require_auth
@require_role(ROLE_CASHIER)
def stock_history_route(product_id: str):
    try:
        target = path_uuid(product_id, "Product")
        page, limit = parse_pagination(request.args)
        data = stock_service.list_stock_history(target, page=page, limit=limit)
        return success("Stock history retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to get stock history")
        return internal_error()


# --- Options -----------------------------------------------------------------


@products_bp.post("/<product_id>/options")
@require_auth
@require_role(ROLE_MANAGER)
def create_option_route(product_id: str):
    try:
        target = path_uuid(product_id, "Product")
        patch = _option_patch(json_body(), partial=False)
        data = products_service.create_option(g.current_user, target, patch)
        return success("Product option created successfully", data, 201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create product option")
        return internal_error()


@products_bp.patch("/<product_id>/options/<option_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_option_route(product_id: str, option_id: str):
    try:
        target = path_uuid(product_id, "Product")
        option = path_uuid(option_id, "Product option")
        patch = _option_patch(json_body(), partial=True)
        data = products_service.update_option(g.current_user, target, option, patch)
        return success("Product option updated successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update product option")
        return internal_error()


@products_bp.delete("/<product_id>/options/<option_id>")
@require_auth
@require_role(ROLE_MANAGER)
def delete_option_route(product_id: str, option_id: str):
    try:
        products_service.delete_option(
            g.current_user,
            path_uuid(product_id, "Product"),
            path_uuid(option_id, "Product option"),
        )
        return success("Product option deleted successfully")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete product option")
        return internal_error()


@products_bp.post("/<product_id>/options/<option_id>/image")
@require_auth
@require_role(ROLE_MANAGER)
def upload_option_image_route(product_id: str, option_id: str):
    try:
        target = path_uuid(product_id, "Product")
        option = path_uuid(option_id, "Product option")
        data = _read_image()
        result = products_service.upload_option_image(g.current_user, target, option, data)
        return success("Product option image uploaded successfully", result)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to upload product option image")
        return internal_error()


# --- Trash -------------------------------------------------------------------


@products_bp.get("/trash")
@require_auth
@require_role(ROLE_ADMIN)
def list_trash_route():
    try:
        data = products_service.list_deleted_products(**_list_filters(request.args))
        return success("Deleted products retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to list deleted products")
        return internal_error()


@products_bp.get("/trash/<product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_trash_route(product_id: str):
    try:
        data = products_service.get_deleted_product(path_uuid(product_id, "Product"))
        return success("Deleted product retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to get deleted product")
        return internal_error()


@products_bp.post("/trash/<product_id>/restore")
@require_auth
@require_role(ROLE_ADMIN)
def restore_product_route(product_id: str):
    try:
        data = products_service.restore_product(g.current_user, path_uuid(product_id, "Product"))
        return success("Product restored successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to restore product")
        return internal_error()


@products_bp.post("/trash/restore-bulk")
@require_auth
@require_role(ROLE_ADMIN)
def restore_bulk_route():
    """Body: {product_ids: [uuid, ...]}; all must be in the trash."""
    try:
        raw_ids = json_body().get("product_ids")
        if not isinstance(raw_ids, list) or not raw_ids:
            raise ValidationError("product_ids must be a non-empty list")
        ids = [parse_uuid(value, "product_ids") for value in raw_ids]
        restored = products_service.restore_products_bulk(g.current_user, ids)
        return success("Products restored successfully", {"restored": restored})
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to restore products")
        return internal_error()
