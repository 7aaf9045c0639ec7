# Overview: Receipt layout for an order, rendered as fixed-width text lines.

"""
Builds the data a receipt printer or the browser print dialog needs:
branding, printer preferences, and the receipt body laid out for the
configured paper width. Talking to printer hardware is left to the client.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from ..errors import NotFoundError
from ..extensions import db
from ..models import Order, ProductOption
from ..models.catalog import money
from ..models.orders import ORDER_STATUS_PAID
from ..time_utils import to_utc_z
from .settings_service import get_branding, get_printer_settings

# Characters per line for the Font A on common thermal printers
LINE_WIDTHS = {"58mm": 32, "80mm": 48}

UNKNOWN = "Unknown"


def format_currency(amount) -> str:
    """Whole rupiah with dot thousands separators, e.g. Rp 40.000."""
    whole = int(Decimal(amount or 0))
    return "Rp " + f"{whole:,}".replace(",", ".")


def _columns(left: str, right: str, width: int) -> str:
    padding = max(width - len(left) - len(right), 1)
    return left + " " * padding + right


def _option_names(order: Order) -> dict[uuid.UUID, str]:
    ids = {option.product_option_id for item in order.items for option in item.options}
    if not ids:
        return {}
    rows = db.session.query(ProductOption.id, ProductOption.name).filter(ProductOption.id.in_(ids)).all()
    return {option_id: name for option_id, name in rows}


def _body(order: Order, branding: dict, cashier: str, payment_method: str | None, width: int) -> list[str]:
    rule = "-" * width
    lines = [
        branding["app_name"].center(width).rstrip(),
        order.created_at.strftime("%d %b %Y %H:%M").center(width).rstrip(),
        f"Order #{str(order.id)[-4:]}",
        f"Cashier: {cashier}",
        rule,
    ]

    names = _option_names(order)
    for item in order.items:
        lines.append(item.product.name if item.product else UNKNOWN)
        lines.append(_columns(
            f"{item.quantity}x {format_currency(item.price_at_sale)}",
            format_currency(item.subtotal),
            width,
        ))
        for option in item.options:
            name = names.get(option.product_option_id)
            if name:
                lines.append(f"   + {name}")

    lines.append(rule)
    lines.append(_columns("Subtotal", format_currency(order.gross_total), width))
    if order.discount_amount and Decimal(order.discount_amount) > 0:
        lines.append(_columns("Discount", "-" + format_currency(order.discount_amount), width))
    lines.append(_columns("TOTAL", format_currency(order.net_total), width))
    lines.append(rule)

    if payment_method is not None:
        lines.append(f"Payment: {payment_method}")
        if order.cash_received is not None and Decimal(order.cash_received) > 0:
            lines.append(_columns("Cash", format_currency(order.cash_received), width))
            if order.change_due is not None:
                lines.append(_columns("Change", format_currency(order.change_due), width))
    else:
        lines.append("UNPAID")

    lines.append("")
    if branding["footer_text"]:
        lines.append(branding["footer_text"].center(width).rstrip())
    return lines


def build_invoice(order_id: uuid.UUID) -> dict:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")

    branding = get_branding()
    printer = get_printer_settings()
    width = LINE_WIDTHS.get(printer["paper_width"], LINE_WIDTHS["58mm"])

    cashier = order.user.username if order.user else UNKNOWN
    payment_method = None
    if order.payment_method_id is not None:
        payment_method = order.payment_method.name if order.payment_method else UNKNOWN

    return {
        "order_id": str(order.id),
        "status": order.status,
        "paid": order.status == ORDER_STATUS_PAID,
        "created_at": to_utc_z(order.created_at),
        "cashier": cashier,
        "payment_method": payment_method,
        "net_total": money(order.net_total),
        "branding": {
            "app_name": branding["app_name"],
            "app_logo": branding["app_logo"],
            "footer_text": branding["footer_text"],
        },
        "printer": printer,
        "line_width": width,
        "lines": _body(order, branding, cashier, payment_method, width),
        "filename": f"invoice_{order.id}.txt",
    }
