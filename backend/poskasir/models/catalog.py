from __future__ import annotations

import uuid

from ..extensions import db
from poskasir.time_utils import to_utc_z, utcnow

STOCK_CHANGE_SALE = "sale"
STOCK_CHANGE_RESTOCK = "restock"
STOCK_CHANGE_CORRECTION = "correction"
STOCK_CHANGE_RETURN = "return"
STOCK_CHANGE_DAMAGE = "damage"
STOCK_CHANGE_TYPES = (
    STOCK_CHANGE_SALE,
    STOCK_CHANGE_RESTOCK,
    STOCK_CHANGE_CORRECTION,
    STOCK_CHANGE_RETURN,
    STOCK_CHANGE_DAMAGE,
)


def money(value) -> float:
    """Numeric columns are serialized as floats."""
    return float(value) if value is not None else 0.0


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Sellable product.

    Soft delete: deleted_at set means the product only shows up in the trash
    view. Restoring clears it. image_url holds the storage key, not a link.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_category_deleted", "category_id", "deleted_at"),
    )

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    name = db.Column(db.String(255), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    image_url = db.Column(db.String(255), nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    options = db.relationship(
        "ProductOption",
        primaryjoin="and_(ProductOption.product_id == Product.id, ProductOption.deleted_at.is_(None))",
        order_by="ProductOption.created_at",
        viewonly=True,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self, image_url: str | None = None) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "image_url": image_url if image_url is not None else self.image_url,
            "price": money(self.price),
            "cost_price": money(self.cost_price),
            "stock": self.stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class ProductOption(db.Model):
    """Variant of a product (e.g. Large) that adds to its price."""
    __tablename__ = "product_options"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    product_id = db.Column(db.Uuid, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    additional_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    image_url = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self, image_url: str | None = None) -> dict:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "name": self.name,
            "additional_price": money(self.additional_price),
            "image_url": image_url if image_url is not None else self.image_url,
        }


class StockHistory(db.Model):
    """
    Append-only stock ledger, one row per stock-changing event.

    Rows for a product chain: each row's previous_stock equals the prior row's
    current_stock, because writers read the product's stock inside the same
    transaction that appends the row.
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.CheckConstraint(
            "current_stock = previous_stock + change_amount",
            name="ck_stock_history_balance",
        ),
        db.Index("ix_stock_history_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Uuid, db.ForeignKey("products.id"), nullable=False)
    change_amount = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    current_stock = db.Column(db.Integer, nullable=False)
    change_type = db.Column(db.String(16), nullable=False)

    # Order id for sale/return rows
    reference_id = db.Column(db.Uuid, nullable=True)
    note = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.Uuid, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": str(self.product_id),
            "change_amount": self.change_amount,
            "previous_stock": self.previous_stock,
            "current_stock": self.current_stock,
            "change_type": self.change_type,
            "reference_id": str(self.reference_id) if self.reference_id else None,
            "note": self.note,
            "created_by": str(self.created_by) if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }
