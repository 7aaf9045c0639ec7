# Overview: Flask API routes for payment methods and cancellation reasons.

from flask import Blueprint, current_app

from ..decorators import require_auth
from ..responses import internal_error, success
from ..services import reference_service

references_bp = Blueprint("references", __name__, url_prefix="/api/v1")


@references_bp.get("/payment-methods")
@require_auth
def list_payment_methods_route():
    try:
        data = reference_service.list_payment_methods()
        return success("Payment methods retrieved successfully", data)
    except Exception:
        current_app.logger.exception("Failed to list payment methods")
        return internal_error()


@references_bp.get("/cancellation-reasons")
@require_auth
def list_cancellation_reasons_route():
    try:
        data = reference_service.list_cancellation_reasons()
        return success("Cancellation reasons retrieved successfully", data)
    except Exception:
        current_app.logger.exception("Failed to list cancellation reasons")
        return internal_error()
