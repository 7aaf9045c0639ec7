# Overview: Flask API routes for reporting; parses input and returns JSON responses.

# backend/poskasir/routes/reports.py
"""
Reporting routes (manager or higher).

Query params: start_date, end_date as YYYY-MM-DD, inclusive. Required on
every report except the dashboard summary, which covers all time when they
are omitted.
"""
from flask import Blueprint, current_app, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_MANAGER
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, success
from ..services import reporting_service
from ..validation import parse_date_range

reports_bp = Blueprint("reports", __name__, url_prefix="/api/v1/reports")


def _ranged_report(fn, label: str):
    try:
        start, end = parse_date_range(request.args)
        data = fn(start, end)
        return success(f"{label} retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to get %s", label.lower())
        return internal_error()


@reports_bp.get("/dashboard-summary")
@require_auth
@require_role(ROLE_MANAGER)
def dashboard_summary_route():
    try:
        start, end = parse_date_range(request.args, required=False)
        data = reporting_service.dashboard_summary(start, end)
        return success("Dashboard summary retrieved successfully", data)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to get dashboard summary")
        return internal_error()


@reports_bp.get("/sales")
@require_auth
@require_role(ROLE_MANAGER)
def sales_report_route():
    return _ranged_report(reporting_service.sales_report, "Sales report")


@reports_bp.get("/products")
@require_auth
@require_role(ROLE_MANAGER)
def product_performance_route():
    return _ranged_report(reporting_service.product_performance, "Product performance")


@reports_bp.get("/payment-methods")
@require_auth
@require_role(ROLE_MANAGER)
def payment_method_performance_route():
    return _ranged_report(reporting_service.payment_method_performance, "Payment method performance")


@reports_bp.get("/cashier-performance")
@require_auth
@require_role(ROLE_MANAGER)
def cashier_performance_route():
    return _ranged_report(reporting_service.cashier_performance, "Cashier performance")


@reports_bp.get("/cancellations")
@require_auth
@require_role(ROLE_MANAGER)
def cancellation_report_route():
    return _ranged_report(reporting_service.cancellation_report, "Cancellation report")


@reports_bp.get("/profit-summary")
@require_auth
@require_role(ROLE_MANAGER)
def profit_summary_route():
    return _ranged_report(reporting_service.profit_summary, "Profit summary")


@reports_bp.get("/profit-products")
@require_auth
@require_role(ROLE_MANAGER)
def product_profit_route():
    return _ranged_report(reporting_service.product_profit, "Product profit report")
