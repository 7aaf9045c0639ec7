# backend/poskasir/services/products_service.py
"""
Products Service

- Create writes the product and its options in one unit of work and builds
  the response from the inserted rows.
- Reads resolve image keys to links; single-product reads resolve every
  image concurrently, list reads fall back to the raw key on failure.
- Deletes are soft (deleted_at); the trash view lists, shows and restores.
"""
from __future__ import annotations

import uuid
from functools import partial

from flask import current_app
from sqlalchemy import update

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product, ProductOption, User
from ..models.activity import ACTION_CREATE, ACTION_DELETE, ACTION_UPDATE, ENTITY_PRODUCT
from ..models.catalog import STOCK_CHANGE_CORRECTION, STOCK_CHANGE_RESTOCK, money
from ..storage import get_storage
from ..time_utils import utcnow
from .activity_service import log_activity
from .concurrency import fetch_all, lock_for_update, run_in_transaction
from .image_service import resolve_link
from .pagination import build_pagination, page_offset
from .stock_service import apply_stock_delta

PRODUCT_MUTABLE_FIELDS = {"name", "category_id", "price", "cost_price", "stock"}
OPTION_MUTABLE_FIELDS = {"name", "additional_price"}


def apply_patch(obj, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(obj, k, v)


def _require_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if db.session.get(Category, category_id) is None:
        raise ValidationError("category not found")


def _live_products():
    return db.session.query(Product).filter(Product.deleted_at.is_(None))


def _get_live_product(product_id: uuid.UUID) -> Product:
    product = _live_products().filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _get_deleted_product(product_id: uuid.UUID) -> Product:
    product = (
        db.session.query(Product)
        .filter(Product.id == product_id, Product.deleted_at.isnot(None))
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found in trash")
    return product


def _get_live_option(product_id: uuid.UUID, option_id: uuid.UUID) -> ProductOption:
    option = (
        db.session.query(ProductOption)
        .filter(
            ProductOption.id == option_id,
            ProductOption.product_id == product_id,
            ProductOption.deleted_at.is_(None),
        )
        .first()
    )
    if option is None:
        raise NotFoundError("Product option not found")
    return option


def _detail(product: Product) -> dict:
    """
    Product + options with every image resolved concurrently.

    Only non-empty keys reach the storage adapter. A failed resolution fails
    the whole read.
    """
    options = list(product.options)
    keys = [product.image_url] + [option.image_url for option in options]
    pending = [(i, key) for i, key in enumerate(keys) if key]

    links: list[str | None] = [None] * len(keys)
    if pending:
        resolved = fetch_all(*(partial(resolve_link, key, fallback_to_key=False) for _, key in pending))
        for (i, _), link in zip(pending, resolved):
            links[i] = link

    data = product.to_dict(image_url=links[0])
    data["options"] = [option.to_dict(image_url=links[i + 1]) for i, option in enumerate(options)]
    return data


def create_product(actor: User, patch: dict, options: list[dict]) -> dict:
    """
    Create a product and its options atomically.

    Raises:
        ValidationError: category does not exist
    """
    _require_category(patch.get("category_id"))

    def _insert(session):
        product = Product(**{k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS})
        session.add(product)
        session.flush()

        created = []
        for raw in options:
            option = ProductOption(
                product_id=product.id,
                name=raw["name"],
                additional_price=raw.get("additional_price", 0),
            )
            session.add(option)
            created.append(option)
        session.flush()

        # Built before commit so the response comes from the inserted rows
        data = product.to_dict()
        data["options"] = [option.to_dict() for option in created]
        return data

    data = run_in_transaction(_insert)

    log_activity(actor.id, ACTION_CREATE, ENTITY_PRODUCT, data["id"], {
        "product_name": data["name"],
        "price": data["price"],
        "stock": data["stock"],
        "options_count": len(data["options"]),
    })
    return data


def get_product(product_id: uuid.UUID) -> dict:
    return _detail(_get_live_product(product_id))


def _filtered_products(base, category_id: int | None, search: str | None):
    query = base
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        query = query.filter(Product.name.ilike(f"%{search}%"))
    return query


def _list_page(deleted: bool, *, page: int, limit: int, category_id: int | None, search: str | None) -> dict:
    def _base():
        if deleted:
            return db.session.query(Product).filter(Product.deleted_at.isnot(None))
        return _live_products()

    def _rows():
        order = Product.deleted_at.desc() if deleted else Product.created_at.desc()
        rows = (
            _filtered_products(_base(), category_id, search)
            .order_by(order, Product.name.asc())
            .offset(page_offset(page, limit))
            .limit(limit)
            .all()
        )
        return [p.to_dict(image_url=resolve_link(p.image_url)) for p in rows]

    def _count():
        return _filtered_products(_base(), category_id, search).count()

    products, total = fetch_all(_rows, _count)
    return {"products": products, "pagination": build_pagination(page, total, limit)}


def list_products(*, page: int, limit: int, category_id: int | None = None, search: str | None = None) -> dict:
    return _list_page(False, page=page, limit=limit, category_id=category_id, search=search)


def update_product(
    actor: User,
    product_id: uuid.UUID,
    patch: dict,
    *,
    change_type: str | None = None,
    note: str | None = None,
) -> dict:
    """
    Partial update.

    A stock change appends a ledger row in the same unit of work. The
    product is re-read under a row lock inside the transaction, so the row
    chains from the stock actually stored (change = new - current). The type
    is taken from the request, else restock for increases and correction
    for decreases.
    """
    _get_live_product(product_id)
    if "category_id" in patch:
        _require_category(patch["category_id"])

    fields = {k: v for k, v in patch.items() if k != "stock"}

    def _apply(session):
        query = session.query(Product).filter(Product.id == product_id, Product.deleted_at.is_(None))
        product = lock_for_update(query).populate_existing().first()
        if product is None:
            raise NotFoundError("Product not found")

        apply_patch(product, fields, PRODUCT_MUTABLE_FIELDS)
        if "stock" in patch and patch["stock"] != product.stock:
            delta = patch["stock"] - product.stock
            kind = change_type or (STOCK_CHANGE_RESTOCK if delta > 0 else STOCK_CHANGE_CORRECTION)
            apply_stock_delta(session, product, delta, kind, note=note, created_by=actor.id)
        session.flush()
        return product

    product = run_in_transaction(_apply)

    details = {k: (money(v) if k in {"price", "cost_price"} else v) for k, v in patch.items()}
    log_activity(actor.id, ACTION_UPDATE, ENTITY_PRODUCT, product.id, details)
    return get_product(product.id)


def delete_product(actor: User, product_id: uuid.UUID) -> None:
    product = _get_live_product(product_id)
    product.deleted_at = utcnow()
    db.session.commit()
    log_activity(actor.id, ACTION_DELETE, ENTITY_PRODUCT, product.id, {"product_name": product.name})


def _check_image_size(data: bytes) -> None:
    max_bytes = current_app.config["PRODUCT_IMAGE_MAX_BYTES"]
    if len(data) > max_bytes:
        raise ValidationError(f"Image must be at most {max_bytes // (1024 * 1024)}MB")


def upload_product_image(actor: User, product_id: uuid.UUID, data: bytes) -> dict:
    """Store as products/{id}.jpg; the key is saved, the link is returned."""
    _check_image_size(data)
    product = _get_live_product(product_id)

    key = f"products/{product.id}.jpg"
    url = get_storage().upload_file(key, data, "image/jpeg")

    product.image_url = key
    db.session.commit()
    log_activity(actor.id, ACTION_UPDATE, ENTITY_PRODUCT, product.id, {"image_url": key})

    data = product.to_dict(image_url=url)
    data["options"] = [option.to_dict(image_url=resolve_link(option.image_url)) for option in product.options]
    return data


# --- Options -----------------------------------------------------------------


def create_option(actor: User, product_id: uuid.UUID, patch: dict) -> dict:
    product = _get_live_product(product_id)
    option = ProductOption(
        product_id=product.id,
        name=patch["name"],
        additional_price=patch.get("additional_price", 0),
    )
    db.session.add(option)
    db.session.commit()
    log_activity(actor.id, ACTION_UPDATE, ENTITY_PRODUCT, product.id, {
        "option_created": option.name,
        "option_id": str(option.id),
    })
    return option.to_dict()


def update_option(actor: User, product_id: uuid.UUID, option_id: uuid.UUID, patch: dict) -> dict:
    _get_live_product(product_id)
    option = _get_live_option(product_id, option_id)
    apply_patch(option, patch, OPTION_MUTABLE_FIELDS)
    db.session.commit()
    log_activity(actor.id, ACTION_UPDATE, ENTITY_PRODUCT, product_id, {
        "option_updated": str(option.id),
        **{k: (money(v) if k == "additional_price" else v) for k, v in patch.items()},
    })
    return option.to_dict(image_url=resolve_link(option.image_url))


def delete_option(actor: User, product_id: uuid.UUID, option_id: uuid.UUID) -> None:
    _get_live_product(product_id)
    option = _get_live_option(product_id, option_id)
    option.deleted_at = utcnow()
    db.session.commit()
    log_activity(actor.id, ACTION_UPDATE, ENTITY_PRODUCT, product_id, {"option_deleted": str(option.id)})


def upload_option_image(actor: User, product_id: uuid.UUID, option_id: uuid.UUID, data: bytes) -> dict:
    _check_image_size(data)
    _get_live_product(product_id)
    option = _get_live_option(product_id, option_id)

    key = f"product_options/{option.id}.jpg"
    url = get_storage().upload_file(key, data, "image/jpeg")

    option.image_url = key
    db.session.commit()
    log_activity(actor.id, ACTION_UPDATE, ENTITY_PRODUCT, product_id, {
        "option_id": str(option.id),
        "image_url": key,
    })
    return option.to_dict(image_url=url)


# --- Trash -------------------------------------------------------------------


def list_deleted_products(*, page: int, limit: int, category_id: int | None = None, search: str | None = None) -> dict:
    return _list_page(True, page=page, limit=limit, category_id=category_id, search=search)


def get_deleted_product(product_id: uuid.UUID) -> dict:
    return _detail(_get_deleted_product(product_id))


def restore_product(actor: User, product_id: uuid.UUID) -> dict:
    product = _get_deleted_product(product_id)
    product.deleted_at = None
    db.session.commit()
    log_activity(actor.id, ACTION_UPDATE, ENTITY_PRODUCT, product.id, {"restored": True})
    return get_product(product.id)


def restore_products_bulk(actor: User, product_ids: list[uuid.UUID]) -> int:
    """
    Restore many trashed products with a single UPDATE.

    Every id must currently be in the trash, otherwise nothing is restored.
    """
    ids = list(dict.fromkeys(product_ids))
    if not ids:
        raise ValidationError("product_ids must not be empty")

    def _restore(session):
        in_trash = (
            session.query(Product.id)
            .filter(Product.id.in_(ids), Product.deleted_at.isnot(None))
            .count()
        )
        if in_trash != len(ids):
            raise ValidationError("One or more products are not in the trash")
        result = session.execute(
            update(Product)
            .where(Product.id.in_(ids), Product.deleted_at.isnot(None))
            .values(deleted_at=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    restored = run_in_transaction(_restore)
    for product_id in ids:
        log_activity(actor.id, ACTION_UPDATE, ENTITY_PRODUCT, product_id, {"restored": True, "bulk": True})
    return restored
