# Overview: Flask API routes for orders and payments; parses input and returns JSON responses.

# backend/poskasir/routes/orders.py
"""
Order routes.

SECURITY: every route requires cashier or higher, except the Midtrans
notification webhook, which is unauthenticated and trusted only through its
signature_key.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_CASHIER
from ..models.orders import ORDER_STATUSES, ORDER_TYPES
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, success
from ..services import order_service, receipt_service
from ..validation import (
    ValidationError,
    json_body,
    parse_optional_uuid,
    parse_pagination,
    parse_uuid,
    path_uuid,
    require_choice,
    require_positive_int,
    to_decimal,
)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/v1/orders")

MAX_CANCELLATION_NOTES = 255


def _order_lines(payload: dict) -> list[dict]:
    """
    items: [{product_id, quantity > 0, options: [{product_option_id}]}], at
    least one.
    """
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        raw_options = raw.get("options") or []
        if not isinstance(raw_options, list):
            raise ValidationError(f"items[{index}].options must be a list")

        options = []
        for option in raw_options:
            if not isinstance(option, dict):
                raise ValidationError(f"items[{index}].options entries must be objects")
            options.append(parse_uuid(option.get("product_option_id"), "product_option_id"))

        lines.append({
            "product_id": parse_uuid(raw.get("product_id"), "product_id"),
            "quantity": require_positive_int(raw, "quantity"),
            "options": options,
        })
    return lines


@orders_bp.post("")
@require_auth
@require_role(ROLE_CASHIER)
def create_order_route():
    """Body: {type: dine_in|takeaway, items: [...]}"""
    try:
        payload = json_body()
        order_type = require_choice(payload, "type", ORDER_TYPES)
        lines = _order_lines(payload)
        data = order_service.create_order(g.current_user, order_type, lines)
        return success("Order created successfully", data, 201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return internal_error()


@orders_bp.get("")
@require_auth
@require_role(ROLE_CASHIER)
def list_orders_route():
    """Query params: page, limit, status, user_id."""
    try:
        page, limit = parse_pagination(request.args)
        status = request.args.get("status") or None
        if status is not None and status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
        data = order_service.list_orders(
            page=page,
            limit=limit,
            status=status,
            user_id=parse_optional_uuid(request.args.get("user_id"), "user_id"),
        )
        return success("Orders retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return internal_error()


@orders_bp.get("/<order_id>")
@require_auth
@require_role(ROLE_CASHIER)
def get_order_route(order_id: str):
    try:
        data = order_service.get_order(path_uuid(order_id, "Order"))
        return success("Order retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return internal_error()


@orders_bp.get("/<order_id>/print-data")
@require_auth
@require_role(ROLE_CASHIER)
def invoice_data_route(order_id: str):
    """Receipt lines for the configured paper width plus branding and printer preferences."""
    try:
        data = receipt_service.build_invoice(path_uuid(order_id, "Order"))
        return success("Invoice data retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to build invoice data")
        return internal_error()


@orders_bp.put("/<order_id>/items")
@require_auth
@require_role(ROLE_CASHIER)
def update_order_items_route(order_id: str):
    """Replace all lines of an open or in-progress order."""
    try:
        target = path_uuid(order_id, "Order")
        lines = _order_lines(json_body())
        data = order_service.update_order_items(g.current_user, target, lines)
        return success("Order items updated successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update order items")
        return internal_error()


@orders_bp.post("/<order_id>/update-status")
@require_auth
@require_role(ROLE_CASHIER)
def update_status_route(order_id: str):
    """Body: {status}. Only open -> in_progress -> served is accepted."""
    try:
        target = path_uuid(order_id, "Order")
        status = require_choice(json_body(), "status", ORDER_STATUSES)
        data = order_service.update_operational_status(g.current_user, target, status)
        return success("Order status updated successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return internal_error()


@orders_bp.post("/<order_id>/cancel")
@require_auth
@require_role(ROLE_CASHIER)
def cancel_order_route(order_id: str):
    """Body: {cancellation_reason_id, cancellation_notes?}"""
    try:
        target = path_uuid(order_id, "Order")
        payload = json_body()
        reason_id = require_positive_int(payload, "cancellation_reason_id")
        notes = payload.get("cancellation_notes")
        if notes is not None:
            if not isinstance(notes, str):
                raise ValidationError("cancellation_notes must be a string")
            if len(notes) > MAX_CANCELLATION_NOTES:
                raise ValidationError(f"cancellation_notes must be at most {MAX_CANCELLATION_NOTES} characters")
            notes = notes.strip() or None
        data = order_service.cancel_order(g.current_user, target, reason_id, notes)
        return success("Order cancelled successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return internal_error()


@orders_bp.post("/<order_id>/pay/manual")
@require_auth
@require_role(ROLE_CASHIER)
def pay_manual_route(order_id: str):
    """Body: {payment_method_id, cash_received?}"""
    try:
        target = path_uuid(order_id, "Order")
        payload = json_body()
        method_id = require_positive_int(payload, "payment_method_id")
        cash_received = None
        if payload.get("cash_received") is not None:
            cash_received = to_decimal("cash_received", payload["cash_received"])
            if cash_received < 0:
                raise ValidationError("cash_received must be >= 0")
        data = order_service.pay_manual(g.current_user, target, method_id, cash_received)
        return success("Payment processed successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to process manual payment")
        return internal_error()


@orders_bp.post("/<order_id>/pay/midtrans")
@require_auth
@require_role(ROLE_CASHIER)
def pay_midtrans_route(order_id: str):
    """Request (or re-read) the QRIS charge for an order."""
    try:
        data = order_service.pay_midtrans(g.current_user, path_uuid(order_id, "Order"))
        return success("QRIS payment created successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create QRIS payment")
        return internal_error()


@orders_bp.post("/webhook/midtrans")
def midtrans_webhook_route():
    """
    Midtrans payment notification.

    Returns:
    - 200: applied or ignored (final order, untracked status)
    - 403: signature mismatch
    - 404: unknown order
    """
    try:
        payload = json_body()
        data = order_service.handle_midtrans_notification(payload)
        return success("Notification processed", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to process Midtrans notification")
        return internal_error()
