"""
Orders Service

Order lifecycle:
- open -> in_progress -> served (operational status, forward only)
- any non-final status -> paid (manual payment or gateway settlement)
- any non-final status -> cancelled (stock returned)

Every stock movement goes through apply_stock_delta inside the same unit of
work as the order write, so the ledger and the order commit together.
Item prices are snapshots: price_at_sale, cost_price_at_sale and each
option's price are copied from the catalog when the line is written.
"""

from __future__ import annotations

import json
import uuid
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ConflictError,
    ForbiddenError,
    InvalidStatusTransitionError,
    NotFoundError,
    OrderNotCancellableError,
    OrderNotModifiableError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    CancellationReason,
    Order,
    OrderItem,
    OrderItemOption,
    PaymentMethod,
    Product,
    ProductOption,
    User,
)
from ..models.activity import ACTION_CANCEL, ACTION_CREATE, ACTION_PROCESS_PAYMENT, ACTION_UPDATE, ENTITY_ORDER
from ..models.catalog import STOCK_CHANGE_RETURN, STOCK_CHANGE_SALE, money
from ..models.orders import (
    FINAL_ORDER_STATUSES,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_IN_PROGRESS,
    ORDER_STATUS_OPEN,
    ORDER_STATUS_PAID,
    ORDER_STATUS_SERVED,
)
from .activity_service import log_activity
from .concurrency import fetch_all, lock_for_update, run_in_transaction
from .pagination import build_pagination, page_offset
from .payment_gateway import get_gateway, verify_signature
from .stock_service import apply_stock_delta

# Operational transitions; payment and cancellation have their own endpoints
STATUS_TRANSITIONS = {
    ORDER_STATUS_OPEN: ORDER_STATUS_IN_PROGRESS,
    ORDER_STATUS_IN_PROGRESS: ORDER_STATUS_SERVED,
}

# Statuses whose items may still be replaced
EDITABLE_STATUSES = (ORDER_STATUS_OPEN, ORDER_STATUS_IN_PROGRESS)

# Payment method recorded for gateway-settled orders, when it exists
GATEWAY_PAYMENT_METHOD_NAME = "QRIS Dinamis"

GATEWAY_PAID_STATUSES = {"settlement"}
GATEWAY_CANCELLED_STATUSES = {"deny", "cancel", "expire"}


def _get_order(session, order_id: uuid.UUID, *, lock: bool = False) -> Order:
    query = session.query(Order).filter(Order.id == order_id)
    if lock:
        # Locked reads must see the stored row, not a cached instance
        query = lock_for_update(query).populate_existing()
    order = query.first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def _load_products(session, product_ids, *, live_only: bool) -> dict[uuid.UUID, Product]:
    if not product_ids:
        return {}
    query = session.query(Product).filter(Product.id.in_(list(product_ids)))
    if live_only:
        query = query.filter(Product.deleted_at.is_(None))
    return {p.id: p for p in lock_for_update(query).all()}


def _quantities(items) -> dict[uuid.UUID, int]:
    totals: dict[uuid.UUID, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def _build_lines(session, requested: list[dict]) -> tuple[list[OrderItem], dict[uuid.UUID, Product]]:
    """
    Turn validated request lines into OrderItem rows with price snapshots.

    requested: [{"product_id": UUID, "quantity": int, "options": [UUID, ...]}]
    """
    product_ids = {line["product_id"] for line in requested}
    products = _load_products(session, product_ids, live_only=True)
    missing = product_ids - set(products)
    if missing:
        raise NotFoundError(f"Product not found: {sorted(str(m) for m in missing)[0]}")

    lines: list[OrderItem] = []
    for position, line in enumerate(requested):
        product = products[line["product_id"]]
        option_ids = list(dict.fromkeys(line.get("options") or []))

        options: list[ProductOption] = []
        if option_ids:
            options = (
                session.query(ProductOption)
                .filter(
                    ProductOption.id.in_(option_ids),
                    ProductOption.product_id == product.id,
                    ProductOption.deleted_at.is_(None),
                )
                .all()
            )
            if len(options) != len(option_ids):
                raise ValidationError(f"Invalid option for product {product.name}")

        unit_price = Decimal(product.price) + sum((Decimal(o.additional_price) for o in options), Decimal("0"))
        subtotal = unit_price * line["quantity"]

        item = OrderItem(
            product_id=product.id,
            position=position,
            quantity=line["quantity"],
            price_at_sale=product.price,
            cost_price_at_sale=product.cost_price or 0,
            subtotal=subtotal,
            discount_amount=0,
            net_subtotal=subtotal,
        )
        item.options = [
            OrderItemOption(product_option_id=o.id, price_at_sale=o.additional_price)
            for o in options
        ]
        lines.append(item)
    return lines, products


def _recompute_totals(order: Order) -> None:
    gross = sum((Decimal(item.subtotal) for item in order.items), Decimal("0"))
    discount = sum((Decimal(item.discount_amount or 0) for item in order.items), Decimal("0"))
    order.gross_total = gross
    order.discount_amount = discount
    order.net_total = gross - discount


def _restock(session, order: Order, actor_id: uuid.UUID | None, note: str) -> None:
    """Return every item's quantity to stock with 'return' ledger rows."""
    quantities = _quantities(order.items)
    products = _load_products(session, quantities.keys(), live_only=False)
    for product_id, qty in quantities.items():
        product = products.get(product_id)
        if product is None:
            continue
        apply_stock_delta(
            session, product, qty, STOCK_CHANGE_RETURN,
            reference_id=order.id, note=note, created_by=actor_id,
        )


def create_order(actor: User, order_type: str, requested: list[dict]) -> dict:
    """
    Create an order, its lines and the matching stock movements atomically.

    Raises:
        NotFoundError: a product does not exist (or is trashed)
        ValidationError: an option does not belong to its product
        InsufficientStockError: not enough stock for a product
    """
    def _create(session):
        order = Order(user_id=actor.id, type=order_type, status=ORDER_STATUS_OPEN)
        session.add(order)
        session.flush()

        lines, products = _build_lines(session, requested)
        order.items = lines
        for product_id, qty in _quantities(lines).items():
            apply_stock_delta(
                session, products[product_id], -qty, STOCK_CHANGE_SALE,
                reference_id=order.id, note="Order Created", created_by=actor.id,
            )
        _recompute_totals(order)
        session.flush()
        return order

    order = run_in_transaction(_create)
    data = order.to_dict()

    log_activity(actor.id, ACTION_CREATE, ENTITY_ORDER, order.id, {
        "type": order.type,
        "items_count": len(data["items"]),
        "net_total": data["net_total"],
    })
    return data


def list_orders(
    *,
    page: int,
    limit: int,
    status: str | None = None,
    user_id: uuid.UUID | None = None,
) -> dict:
    def _base():
        query = db.session.query(Order)
        if status:
            query = query.filter(Order.status == status)
        if user_id:
            query = query.filter(Order.user_id == user_id)
        return query

    def _rows():
        rows = (
            _base()
            .order_by(Order.created_at.desc(), Order.id.asc())
            .offset(page_offset(page, limit))
            .limit(limit)
            .all()
        )
        return [order.to_summary_dict() for order in rows]

    def _count():
        return _base().count()

    orders, total = fetch_all(_rows, _count)
    return {"orders": orders, "pagination": build_pagination(page, total, limit)}


def get_order(order_id: uuid.UUID) -> dict:
    return _get_order(db.session, order_id).to_dict()


def update_order_items(actor: User, order_id: uuid.UUID, requested: list[dict]) -> dict:
    """
    Replace the lines of an open or in-progress order.

    Stock moves by the per-product difference between the old and new lines:
    more sold -> 'sale' rows, fewer -> 'return' rows.
    """
    def _replace(session):
        order = _get_order(session, order_id, lock=True)
        if order.status not in EDITABLE_STATUSES:
            raise OrderNotModifiableError(f"Cannot modify items of a {order.status} order")

        old_quantities = _quantities(order.items)
        lines, _ = _build_lines(session, requested)
        new_quantities = _quantities(lines)

        order.items.clear()
        session.flush()
        order.items = lines

        affected = set(old_quantities) | set(new_quantities)
        products = _load_products(session, affected, live_only=False)
        for product_id in sorted(affected, key=str):
            delta = new_quantities.get(product_id, 0) - old_quantities.get(product_id, 0)
            if delta == 0:
                continue
            product = products.get(product_id)
            if product is None:
                continue
            apply_stock_delta(
                session, product, -delta,
                STOCK_CHANGE_SALE if delta > 0 else STOCK_CHANGE_RETURN,
                reference_id=order.id, note="Order Updated", created_by=actor.id,
            )

        _recompute_totals(order)
        session.flush()
        return order

    order = run_in_transaction(_replace)
    data = order.to_dict()
    log_activity(actor.id, ACTION_UPDATE, ENTITY_ORDER, order.id, {
        "items_count": len(data["items"]),
        "net_total": data["net_total"],
    })
    return data


def update_operational_status(actor: User, order_id: uuid.UUID, status: str) -> dict:
    def _advance(session):
        order = _get_order(session, order_id, lock=True)
        if STATUS_TRANSITIONS.get(order.status) != status:
            raise InvalidStatusTransitionError(f"Cannot change order status from {order.status} to {status}")
        previous = order.status
        order.status = status
        return order, previous

    order, previous = run_in_transaction(_advance)
    log_activity(actor.id, ACTION_UPDATE, ENTITY_ORDER, order.id, {"old_status": previous, "new_status": status})
    return order.to_dict()


def cancel_order(actor: User, order_id: uuid.UUID, reason_id: int, notes: str | None) -> dict:
    """
    Raises:
        NotFoundError: order does not exist
        OrderNotCancellableError: order already paid or cancelled
        ValidationError: unknown cancellation reason
    """
    def _cancel(session):
        order = _get_order(session, order_id, lock=True)
        if order.status in FINAL_ORDER_STATUSES:
            raise OrderNotCancellableError(f"Cannot cancel a {order.status} order")

        reason = session.get(CancellationReason, reason_id)
        if reason is None:
            raise ValidationError("Cancellation reason not found")

        _restock(session, order, actor.id, "Order Cancelled")
        order.status = ORDER_STATUS_CANCELLED
        order.cancellation_reason_id = reason.id
        order.cancellation_notes = notes
        return order, reason.reason

    order, reason_text = run_in_transaction(_cancel)
    log_activity(actor.id, ACTION_CANCEL, ENTITY_ORDER, order.id, {
        "reason": reason_text,
        "notes": notes,
    })
    return order.to_dict()


def pay_manual(actor: User, order_id: uuid.UUID, payment_method_id: int, cash_received: Decimal | None) -> dict:
    """
    Settle an order at the counter.

    change_due = cash_received - net_total when cash is given.
    """
    def _pay(session):
        order = _get_order(session, order_id, lock=True)
        if order.status in FINAL_ORDER_STATUSES:
            raise OrderNotModifiableError(f"Order is already {order.status}")

        method = session.get(PaymentMethod, payment_method_id)
        if method is None:
            raise ValidationError("Payment method not found")

        net_total = Decimal(order.net_total)
        if cash_received is not None:
            if cash_received < net_total:
                raise ValidationError("cash_received is less than the order total")
            order.cash_received = cash_received
            order.change_due = cash_received - net_total

        order.payment_method_id = method.id
        order.status = ORDER_STATUS_PAID
        return order, method.name

    order, method_name = run_in_transaction(_pay)
    data = order.to_dict()
    log_activity(actor.id, ACTION_PROCESS_PAYMENT, ENTITY_ORDER, order.id, {
        "payment_method": method_name,
        "net_total": data["net_total"],
        "cash_received": data["cash_received"],
        "change_due": data["change_due"],
    })
    return data


def _qris_response(order: Order) -> dict:
    payload = order.gateway_payload
    return {
        "order_id": str(order.id),
        "transaction_id": order.payment_gateway_reference,
        "gross_amount": payload.get("gross_amount"),
        "qr_string": payload.get("qr_string"),
        "expiry_time": payload.get("expiry_time"),
        "actions": payload.get("actions", []),
    }


def pay_midtrans(actor: User, order_id: uuid.UUID) -> dict:
    """
    Request a QRIS charge for an order.

    Repeat calls return the stored charge instead of creating a new one.
    The order is re-read under a row lock after the gateway call; if it
    was paid or cancelled meanwhile, the charge is not recorded.
    """
    order = _get_order(db.session, order_id)
    if order.status in FINAL_ORDER_STATUSES:
        raise OrderNotModifiableError(f"Order is already {order.status}")
    if order.payment_gateway_reference:
        return _qris_response(order)

    # Midtrans takes whole rupiah
    gross_amount = int(Decimal(order.net_total))
    if gross_amount <= 0:
        raise ValidationError("Order total must be greater than zero")

    charge = get_gateway().charge_qris(str(order.id), gross_amount)

    def _record(session):
        locked = _get_order(session, order_id, lock=True)
        if locked.status in FINAL_ORDER_STATUSES:
            current_app.logger.warning(
                "Order %s became %s during QRIS charge %s",
                locked.id, locked.status, charge.get("transaction_id"),
            )
            raise OrderNotModifiableError(f"Order is already {locked.status}")
        if locked.payment_gateway_reference:
            return locked, False

        locked.payment_gateway_reference = charge.get("transaction_id")
        locked.payment_url = json.dumps({
            "gross_amount": charge.get("gross_amount"),
            "qr_string": charge.get("qr_string"),
            "expiry_time": charge.get("expiry_time"),
            "actions": charge.get("actions") or [],
        })
        return locked, True

    try:
        order, recorded = run_in_transaction(_record)
    except IntegrityError:
        raise ConflictError("Payment already requested for this order")

    if recorded:
        log_activity(actor.id, ACTION_PROCESS_PAYMENT, ENTITY_ORDER, order.id, {
            "gateway": "midtrans",
            "transaction_id": order.payment_gateway_reference,
            "gross_amount": gross_amount,
        })
    return _qris_response(order)


def handle_midtrans_notification(payload: dict) -> dict:
    """
    Reconcile an order with a Midtrans notification.

    Returns {"order_id", "status", "result"} where result is one of
    paid | cancelled | ignored.

    Raises:
        ForbiddenError: signature does not match
        NotFoundError: order id is not one of ours
    """
    server_key = current_app.config.get("MIDTRANS_SERVER_KEY") or ""
    if not verify_signature(payload, server_key):
        current_app.logger.warning("Rejected Midtrans notification with bad signature for %s", payload.get("order_id"))
        raise ForbiddenError("Invalid signature")

    try:
        order_id = uuid.UUID(str(payload.get("order_id")))
    except ValueError:
        raise NotFoundError("Order not found")

    transaction_status = str(payload.get("transaction_status") or "").lower()
    fraud_status = str(payload.get("fraud_status") or "").lower()

    if transaction_status in GATEWAY_PAID_STATUSES or (
        transaction_status == "capture" and fraud_status == "accept"
    ):
        target = ORDER_STATUS_PAID
    elif transaction_status in GATEWAY_CANCELLED_STATUSES:
        target = ORDER_STATUS_CANCELLED
    else:
        target = None

    def _reconcile(session):
        order = _get_order(session, order_id, lock=True)
        if order.status in FINAL_ORDER_STATUSES or target is None:
            return order, None

        if target == ORDER_STATUS_PAID:
            if not order.payment_gateway_reference and payload.get("transaction_id"):
                order.payment_gateway_reference = payload["transaction_id"]
            if order.payment_method_id is None:
                method = session.query(PaymentMethod).filter(PaymentMethod.name == GATEWAY_PAYMENT_METHOD_NAME).first()
                if method is not None:
                    order.payment_method_id = method.id
            order.status = ORDER_STATUS_PAID
        else:
            _restock(session, order, None, "Order Cancelled")
            order.status = ORDER_STATUS_CANCELLED
            order.cancellation_notes = f"Midtrans transaction {transaction_status}"
        return order, target

    order, applied = run_in_transaction(_reconcile)

    if applied is None:
        current_app.logger.info(
            "Ignored Midtrans notification %s for order %s (status %s)",
            transaction_status, order.id, order.status,
        )
        return {"order_id": str(order.id), "status": order.status, "result": "ignored"}

    action = ACTION_PROCESS_PAYMENT if applied == ORDER_STATUS_PAID else ACTION_CANCEL
    log_activity(None, action, ENTITY_ORDER, order.id, {
        "gateway": "midtrans",
        "transaction_id": payload.get("transaction_id"),
        "transaction_status": transaction_status,
        "gross_amount": payload.get("gross_amount"),
        "net_total": money(order.net_total),
    })
    return {"order_id": str(order.id), "status": order.status, "result": applied}
