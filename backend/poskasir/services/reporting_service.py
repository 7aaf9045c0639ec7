# Overview: Service-layer operations for reporting; aggregation queries over orders.

"""
Every report recomputes from source rows on each call (no caching, no
pagination). Date ranges are inclusive calendar days. Money comes back as
float. Only paid orders count as sales; the cancellation report looks at
cancelled orders.
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ReportError
from ..extensions import db
from ..models import CancellationReason, Order, OrderItem, PaymentMethod, Product, User
from ..models.catalog import money
from ..models.orders import ORDER_STATUS_CANCELLED, ORDER_STATUS_PAID
from ..time_utils import day_bounds
from .concurrency import fetch_all


def _run(name: str, fn):
    try:
        return fn()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to get %s", name)
        raise ReportError(f"Failed to get {name}") from exc


def _in_range(query, column, start: date | None, end: date | None):
    if start and end:
        start_dt, end_dt = day_bounds(start, end)
        return query.filter(column >= start_dt, column < end_dt)
    return query


def _day_label(value) -> str | None:
    # SQLite gives 'YYYY-MM-DD' text, PostgreSQL a date
    return str(value) if value is not None else None


def _paid_orders(query, start: date | None, end: date | None):
    return _in_range(query.filter(Order.status == ORDER_STATUS_PAID), Order.created_at, start, end)


def dashboard_summary(start: date | None = None, end: date | None = None) -> dict:
    """
    Headline numbers. Without a range, covers all time.

    The four aggregates are independent and fetched concurrently.
    """
    def _total_sales():
        return _paid_orders(db.session.query(func.coalesce(func.sum(Order.net_total), 0)), start, end).scalar()

    def _total_orders():
        return _paid_orders(db.session.query(func.count(Order.id)), start, end).scalar()

    def _unique_cashiers():
        return _paid_orders(db.session.query(func.count(func.distinct(Order.user_id))), start, end).scalar()

    def _total_products():
        return db.session.query(func.count(Product.id)).filter(Product.deleted_at.is_(None)).scalar()

    def _fetch():
        return fetch_all(_total_sales, _total_orders, _unique_cashiers, _total_products)

    total_sales, total_orders, unique_cashier, total_products = _run("dashboard summary", _fetch)
    return {
        "total_sales": money(total_sales),
        "total_orders": int(total_orders or 0),
        "unique_cashier": int(unique_cashier or 0),
        "total_products": int(total_products or 0),
    }


def sales_report(start: date, end: date) -> list[dict]:
    day = func.date(Order.created_at)

    def _fetch():
        return (
            _paid_orders(
                db.session.query(
                    day.label("date"),
                    func.count(Order.id).label("order_count"),
                    func.coalesce(func.sum(Order.net_total), 0).label("total_sales"),
                ),
                start, end,
            )
            .group_by(day)
            .order_by(day)
            .all()
        )

    rows = _run("sales reports", _fetch)
    return [
        {
            "date": _day_label(row.date),
            "order_count": int(row.order_count or 0),
            "total_sales": money(row.total_sales),
        }
        for row in rows
    ]


def product_performance(start: date, end: date) -> list[dict]:
    revenue = func.coalesce(func.sum(OrderItem.net_subtotal), 0)

    def _fetch():
        return (
            _paid_orders(
                db.session.query(
                    Product.id.label("product_id"),
                    Product.name.label("product_name"),
                    func.coalesce(func.sum(OrderItem.quantity), 0).label("total_quantity"),
                    revenue.label("total_revenue"),
                )
                .select_from(OrderItem)
                .join(Order, Order.id == OrderItem.order_id)
                .join(Product, Product.id == OrderItem.product_id),
                start, end,
            )
            .group_by(Product.id, Product.name)
            .order_by(revenue.desc(), Product.name.asc())
            .all()
        )

    rows = _run("product performance", _fetch)
    return [
        {
            "product_id": str(row.product_id),
            "product_name": row.product_name,
            "total_quantity": int(row.total_quantity or 0),
            "total_revenue": money(row.total_revenue),
        }
        for row in rows
    ]


def payment_method_performance(start: date, end: date) -> list[dict]:
    total = func.coalesce(func.sum(Order.net_total), 0)

    def _fetch():
        return (
            _paid_orders(
                db.session.query(
                    PaymentMethod.id.label("payment_method_id"),
                    PaymentMethod.name.label("payment_method_name"),
                    func.count(Order.id).label("order_count"),
                    total.label("total_sales"),
                ).join(PaymentMethod, PaymentMethod.id == Order.payment_method_id),
                start, end,
            )
            .group_by(PaymentMethod.id, PaymentMethod.name)
            .order_by(total.desc(), PaymentMethod.id.asc())
            .all()
        )

    rows = _run("payment method performance", _fetch)
    return [
        {
            "payment_method_id": row.payment_method_id,
            "payment_method_name": row.payment_method_name,
            "order_count": int(row.order_count or 0),
            "total_sales": money(row.total_sales),
        }
        for row in rows
    ]


def cashier_performance(start: date, end: date) -> list[dict]:
    total = func.coalesce(func.sum(Order.net_total), 0)

    def _fetch():
        return (
            _paid_orders(
                db.session.query(
                    User.id.label("user_id"),
                    User.username.label("username"),
                    func.count(Order.id).label("order_count"),
                    total.label("total_sales"),
                ).join(User, User.id == Order.user_id),
                start, end,
            )
            .group_by(User.id, User.username)
            .order_by(total.desc(), User.username.asc())
            .all()
        )

    rows = _run("cashier performance", _fetch)
    return [
        {
            "user_id": str(row.user_id),
            "username": row.username,
            "order_count": int(row.order_count or 0),
            "total_sales": money(row.total_sales),
        }
        for row in rows
    ]


def cancellation_report(start: date, end: date) -> list[dict]:
    cancelled = func.count(Order.id)

    def _fetch():
        return (
            _in_range(
                db.session.query(
                    CancellationReason.id.label("reason_id"),
                    CancellationReason.reason.label("reason"),
                    cancelled.label("cancelled_orders"),
                )
                .join(CancellationReason, CancellationReason.id == Order.cancellation_reason_id)
                .filter(Order.status == ORDER_STATUS_CANCELLED),
                Order.created_at, start, end,
            )
            .group_by(CancellationReason.id, CancellationReason.reason)
            .order_by(cancelled.desc(), CancellationReason.id.asc())
            .all()
        )

    rows = _run("cancellation reports", _fetch)
    return [
        {
            "reason_id": row.reason_id,
            "reason": row.reason,
            "cancelled_orders": int(row.cancelled_orders or 0),
        }
        for row in rows
    ]


def profit_summary(start: date, end: date) -> list[dict]:
    day = func.date(Order.created_at)

    def _fetch():
        return (
            _paid_orders(
                db.session.query(
                    day.label("date"),
                    func.coalesce(func.sum(OrderItem.net_subtotal), 0).label("total_revenue"),
                    func.coalesce(func.sum(OrderItem.cost_price_at_sale * OrderItem.quantity), 0).label("total_cogs"),
                )
                .select_from(OrderItem)
                .join(Order, Order.id == OrderItem.order_id),
                start, end,
            )
            .group_by(day)
            .order_by(day)
            .all()
        )

    rows = _run("profit summary", _fetch)
    out = []
    for row in rows:
        revenue = money(row.total_revenue)
        cogs = money(row.total_cogs)
        out.append({
            "date": _day_label(row.date),
            "total_revenue": revenue,
            "total_cogs": cogs,
            "gross_profit": round(revenue - cogs, 2),
        })
    return out


def product_profit(start: date, end: date) -> list[dict]:
    revenue = func.coalesce(func.sum(OrderItem.net_subtotal), 0)
    cogs = func.coalesce(func.sum(OrderItem.cost_price_at_sale * OrderItem.quantity), 0)

    def _fetch():
        return (
            _paid_orders(
                db.session.query(
                    Product.id.label("product_id"),
                    Product.name.label("product_name"),
                    func.coalesce(func.sum(OrderItem.quantity), 0).label("total_sold"),
                    revenue.label("total_revenue"),
                    cogs.label("total_cogs"),
                )
                .select_from(OrderItem)
                .join(Order, Order.id == OrderItem.order_id)
                .join(Product, Product.id == OrderItem.product_id),
                start, end,
            )
            .group_by(Product.id, Product.name)
            .order_by((revenue - cogs).desc(), Product.name.asc())
            .all()
        )

    rows = _run("product profit reports", _fetch)
    out = []
    for row in rows:
        total_revenue = money(row.total_revenue)
        total_cogs = money(row.total_cogs)
        out.append({
            "product_id": str(row.product_id),
            "product_name": row.product_name,
            "total_sold": int(row.total_sold or 0),
            "total_revenue": total_revenue,
            "total_cogs": total_cogs,
            "gross_profit": round(total_revenue - total_cogs, 2),
        })
    return out
