from __future__ import annotations

import logging

from ..extensions import db
from ..models import Store
from .concurrency import lock_for_update, run_with_retry
from .errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def create_store(name: str, email: str, logo_url: str | None = None) -> Store:
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name:
        raise ValidationError("Store name is required")
    if not email or "@" not in email:
        raise ValidationError("A valid store email is required")

    def _op():
        if db.session.query(Store.id).filter_by(email=email).first():
            raise ConflictError(f"A store with email {email} already exists")

        store = Store(name=name, email=email, logo_url=logo_url)
        db.session.add(store)
        db.session.commit()
        return store

    store = run_with_retry(_op)
    logger.info("Created store %s (%s)", store.id, store.name)
    return store


def update_store(store_id: int, *, name: str | None = None, logo_url: str | None = None) -> Store:
    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise NotFoundError(f"Store {store_id} not found", details={"store_id": store_id})

        if name is not None:
            if not name.strip():
                raise ValidationError("Store name cannot be blank")
            store.name = name.strip()
        if logo_url is not None:
            store.logo_url = logo_url or None

        db.session.commit()
        return store

    return run_with_retry(_op)


def get_store(store_id: int) -> Store:
    store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        raise NotFoundError(f"Store {store_id} not found", details={"store_id": store_id})
    return store


def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.name.asc(), Store.id.asc()).all()
