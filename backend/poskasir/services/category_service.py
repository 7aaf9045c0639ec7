# Overview: Service-layer operations for categories.

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import CategoryInUseError, ConflictError, NotFoundError
from ..extensions import db
from ..models import Category, Product, User
from ..models.activity import ACTION_CREATE, ACTION_DELETE, ACTION_UPDATE, ENTITY_CATEGORY
from .activity_service import log_activity


def list_categories(*, limit: int, offset: int) -> list[dict]:
    rows = (
        db.session.query(Category)
        .order_by(Category.name.asc(), Category.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [c.to_dict() for c in rows]


def list_categories_with_product_count(*, limit: int, offset: int) -> list[dict]:
    """Categories with the number of live (not soft-deleted) products in each."""
    product_count = func.count(Product.id).label("product_count")
    rows = (
        db.session.query(Category, product_count)
        .outerjoin(Product, (Product.category_id == Category.id) & Product.deleted_at.is_(None))
        .group_by(Category.id)
        .order_by(Category.name.asc(), Category.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [{**category.to_dict(), "product_count": int(count or 0)} for category, count in rows]


def _get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def get_category(category_id: int) -> dict:
    return _get_category(category_id).to_dict()


def _ensure_name_free(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Category.id).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError("Category name already exists")


def create_category(actor: User, name: str) -> dict:
    _ensure_name_free(name)
    category = Category(name=name)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category name already exists")

    log_activity(actor.id, ACTION_CREATE, ENTITY_CATEGORY, category.id, {"name": name})
    return category.to_dict()


def update_category(actor: User, category_id: int, name: str) -> dict:
    category = _get_category(category_id)
    old_name = category.name
    _ensure_name_free(name, exclude_id=category.id)
    category.name = name
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category name already exists")

    log_activity(actor.id, ACTION_UPDATE, ENTITY_CATEGORY, category.id, {"old_name": old_name, "new_name": name})
    return category.to_dict()


def delete_category(actor: User, category_id: int) -> None:
    """Hard delete; refused while live products still reference the category."""
    category = _get_category(category_id)
    in_use = (
        db.session.query(Product.id)
        .filter(Product.category_id == category.id, Product.deleted_at.is_(None))
        .first()
    )
    if in_use:
        raise CategoryInUseError("Category is in use by one or more products")

    # Trashed products keep pointing nowhere rather than blocking the delete
    db.session.query(Product).filter(Product.category_id == category.id).update(
        {Product.category_id: None}, synchronize_session=False
    )
    name = category.name
    db.session.delete(category)
    db.session.commit()

    log_activity(actor.id, ACTION_DELETE, ENTITY_CATEGORY, category_id, {"name": name})
