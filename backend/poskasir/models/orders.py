from __future__ import annotations

import json
import uuid

from ..extensions import db
from poskasir.time_utils import to_utc_z, utcnow
from .catalog import money

ORDER_TYPE_DINE_IN = "dine_in"
ORDER_TYPE_TAKEAWAY = "takeaway"
ORDER_TYPES = (ORDER_TYPE_DINE_IN, ORDER_TYPE_TAKEAWAY)

ORDER_STATUS_OPEN = "open"
ORDER_STATUS_IN_PROGRESS = "in_progress"
ORDER_STATUS_SERVED = "served"
ORDER_STATUS_PAID = "paid"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = (
    ORDER_STATUS_OPEN,
    ORDER_STATUS_IN_PROGRESS,
    ORDER_STATUS_SERVED,
    ORDER_STATUS_PAID,
    ORDER_STATUS_CANCELLED,
)
FINAL_ORDER_STATUSES = (ORDER_STATUS_PAID, ORDER_STATUS_CANCELLED)


class PaymentMethod(db.Model):
    __tablename__ = "payment_methods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CancellationReason(db.Model):
    __tablename__ = "cancellation_reasons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    reason = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reason": self.reason,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Order(db.Model):
    """
    Customer order.

    Lifecycle: open -> in_progress -> served, then paid (manual or gateway)
    or cancelled from any non-final state. Totals are recomputed from the
    items whenever items change and are frozen once the order is final.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
    )

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    user_id = db.Column(db.Uuid, db.ForeignKey("users.id"), nullable=True)
    type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_OPEN)

    gross_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)
    payment_gateway_reference = db.Column(db.String(100), nullable=True, unique=True)
    # JSON-encoded gateway charge details (actions, qr_string, expiry_time) for repeat payment requests
    payment_url = db.Column(db.Text, nullable=True)
    cash_received = db.Column(db.Numeric(12, 2), nullable=True)
    change_due = db.Column(db.Numeric(12, 2), nullable=True)

    cancellation_reason_id = db.Column(db.Integer, db.ForeignKey("cancellation_reasons.id"), nullable=True)
    cancellation_notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User")
    payment_method = db.relationship("PaymentMethod")
    cancellation_reason = db.relationship("CancellationReason")
    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} net_total={self.net_total}>"

    @property
    def gateway_payload(self) -> dict:
        if not self.payment_url:
            return {}
        return json.loads(self.payment_url)

    def to_summary_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id) if self.user_id else None,
            "type": self.type,
            "status": self.status,
            "net_total": money(self.net_total),
            "created_at": to_utc_z(self.created_at),
        }

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id) if self.user_id else None,
            "type": self.type,
            "status": self.status,
            "gross_total": money(self.gross_total),
            "discount_amount": money(self.discount_amount),
            "net_total": money(self.net_total),
            "payment_method_id": self.payment_method_id,
            "payment_gateway_reference": self.payment_gateway_reference,
            "cash_received": money(self.cash_received) if self.cash_received is not None else None,
            "change_due": money(self.change_due) if self.change_due is not None else None,
            "cancellation_reason_id": self.cancellation_reason_id,
            "cancellation_notes": self.cancellation_notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class OrderItem(db.Model):
    """
    One order line. Prices are snapshots taken when the line was written,
    so later catalog price changes never alter an existing order.
    """
    __tablename__ = "order_items"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    order_id = db.Column(db.Uuid, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Uuid, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False)

    price_at_sale = db.Column(db.Numeric(12, 2), nullable=False)
    cost_price_at_sale = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    product = db.relationship("Product")
    options = db.relationship("OrderItemOption", backref="order_item", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price_at_sale": money(self.price_at_sale),
            "subtotal": money(self.subtotal),
            "options": [option.to_dict() for option in self.options],
        }


class OrderItemOption(db.Model):
    __tablename__ = "order_item_options"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    order_item_id = db.Column(db.Uuid, db.ForeignKey("order_items.id"), nullable=False, index=True)
    product_option_id = db.Column(db.Uuid, db.ForeignKey("product_options.id"), nullable=False)
    price_at_sale = db.Column(db.Numeric(12, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_option_id": str(self.product_option_id),
            "price_at_sale": money(self.price_at_sale),
        }
