# Overview: Service-layer operations for the product catalog.

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderItem, Product
from . import notification_service
from .concurrency import lock_for_update, run_with_retry
from .errors import ConflictError, ProductNotFound, ValidationError

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "price_cents", "cost_cents", "stock_quantity", "category", "barcode",
}
_INT_FIELDS = {"price_cents", "cost_cents", "stock_quantity"}


def _clean_patch(patch: dict) -> dict:
    cleaned = {}
    for key, value in patch.items():
        if key not in PRODUCT_MUTABLE_FIELDS:
            continue
        if key in _INT_FIELDS and value is not None:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{key} must be an integer")
            if value < 0:
                raise ValidationError(f"{key} cannot be negative")
        elif isinstance(value, str):
            value = value.strip() or None
        cleaned[key] = value

    if "name" in cleaned and not cleaned["name"]:
        raise ValidationError("Product name is required")
    if "price_cents" in cleaned and cleaned["price_cents"] is None:
        raise ValidationError("price_cents is required")
    if "stock_quantity" in cleaned and cleaned["stock_quantity"] is None:
        cleaned["stock_quantity"] = 0
    return cleaned


def _check_low_stock(store_id: int, product: Product) -> None:
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    if product.stock_quantity <= threshold:
        notification_service.notify(
            store_id, notification_service.low_stock(product.name, product.stock_quantity)
        )


def get_product(store_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, store_id=store_id).first()
    if not product:
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def list_products(
    store_id: int,
    search: str | None = None,
    *,
    category: str | None = None,
    low_stock_only: bool = False,
) -> list[Product]:
    query = db.session.query(Product).filter_by(store_id=store_id)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(term),
            Product.category.ilike(term),
            Product.barcode.ilike(term),
        ))
    if category:
        query = query.filter_by(category=category)
    if low_stock_only:
        query = query.filter(Product.stock_quantity <= current_app.config.get("LOW_STOCK_THRESHOLD", 5))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def list_categories(store_id: int) -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.store_id == store_id, Product.category.isnot(None))
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [row[0] for row in rows]


def create_product(store_id: int, patch: dict) -> Product:
    cleaned = _clean_patch(patch)
    if not cleaned.get("name"):
        raise ValidationError("Product name is required")
    if cleaned.get("price_cents") is None:
        raise ValidationError("price_cents is required")

    def _op() -> Product:
        product = Product(store_id=store_id, **cleaned)
        db.session.add(product)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError(f"Barcode {cleaned.get('barcode')} is already in use") from exc
        return product

    product = run_with_retry(_op)
    logger.info("Created product %s (store=%s)", product.id, store_id)
    notification_service.notify(store_id, notification_service.product_added(product.name))
    _check_low_stock(store_id, product)
    return product


def update_product(store_id: int, product_id: int, patch: dict) -> Product:
    cleaned = _clean_patch(patch)

    def _op() -> tuple[Product, int]:
        product = lock_for_update(
            db.session.query(Product).filter_by(id=product_id, store_id=store_id)
        ).first()
        if not product:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        previous_stock = product.stock_quantity
        for key, value in cleaned.items():
            setattr(product, key, value)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError(f"Barcode {cleaned.get('barcode')} is already in use") from exc
        return product, previous_stock

    product, previous_stock = run_with_retry(_op)
    if "stock_quantity" in cleaned and product.stock_quantity < previous_stock:
        _check_low_stock(store_id, product)
    return product


def delete_product(store_id: int, product_id: int) -> None:
    """Order items keep their product_name snapshot; their product link is cleared."""
    def _op() -> None:
        product = lock_for_update(
            db.session.query(Product).filter_by(id=product_id, store_id=store_id)
        ).first()
        if not product:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        db.session.query(OrderItem).filter_by(product_id=product_id).update(
            {"product_id": None}, synchronize_session=False
        )
        db.session.delete(product)
        db.session.commit()

    run_with_retry(_op)
