# Overview: Service-layer operations for the stock ledger.

from __future__ import annotations

import uuid

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockHistory
from ..models.catalog import STOCK_CHANGE_TYPES
from .concurrency import fetch_all
from .pagination import build_pagination, page_offset


def validate_change_type(change_type: str | None) -> str | None:
    if change_type is not None and change_type not in STOCK_CHANGE_TYPES:
        raise ValidationError(f"change_type must be one of: {', '.join(STOCK_CHANGE_TYPES)}")
    return change_type


def history_entry(
    product_id: uuid.UUID,
    previous_stock: int,
    current_stock: int,
    change_type: str,
    *,
    reference_id: uuid.UUID | None = None,
    note: str | None = None,
    created_by: uuid.UUID | None = None,
) -> StockHistory:
    return StockHistory(
        product_id=product_id,
        change_amount=current_stock - previous_stock,
        previous_stock=previous_stock,
        current_stock=current_stock,
        change_type=change_type,
        reference_id=reference_id,
        note=note,
        created_by=created_by,
    )


def apply_stock_delta(
    session,
    product: Product,
    delta: int,
    change_type: str,
    *,
    reference_id: uuid.UUID | None = None,
    note: str | None = None,
    created_by: uuid.UUID | None = None,
) -> StockHistory:
    """
    Move product.stock by delta and append the matching ledger row.

    Must run inside the caller's unit of work so the stock read and the
    ledger append commit (or roll back) together.
    """
    previous = product.stock
    current = previous + delta
    if current < 0:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}: available {previous}, requested {-delta}"
        )
    product.stock = current
    entry = history_entry(
        product.id, previous, current, change_type,
        reference_id=reference_id, note=note, created_by=created_by,
    )
    session.add(entry)
    return entry


def list_stock_history(product_id: uuid.UUID, *, page: int, limit: int) -> dict:
    exists = (
        db.session.query(Product.id)
        .filter(Product.id == product_id, Product.deleted_at.is_(None))
        .first()
    )
    if not exists:
        raise NotFoundError("Product not found")

    def _rows():
        rows = (
            db.session.query(StockHistory)
            .filter(StockHistory.product_id == product_id)
            .order_by(StockHistory.created_at.desc(), StockHistory.id.desc())
            .offset(page_offset(page, limit))
            .limit(limit)
            .all()
        )
        return [row.to_dict() for row in rows]

    def _count():
        return db.session.query(StockHistory).filter(StockHistory.product_id == product_id).count()

    history, total = fetch_all(_rows, _count)
    return {"history": history, "pagination": build_pagination(page, total, limit)}
