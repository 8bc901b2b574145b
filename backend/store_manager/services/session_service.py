# Overview: Service-layer operations for store sessions; issues and validates bearer tokens.

"""
Store Session Token Service

Sessions bind a bearer token to exactly one store. The store_id captured on
the session is the tenant context for every authenticated request; routes
never take a store id from the client.

- Tokens are 32 random bytes, sent to the client once as hex
- Only the SHA-256 hash is stored
- Optional absolute expiry; revocable at any time
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, Store
from ..time_utils import utcnow
from .errors import NotFoundError


@dataclass
class SessionContext:
    store: Store
    session: SessionToken
    store_id: int


def generate_token() -> str:
    """64-character hex token (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 hex digest of the token.

    WHY SHA-256 not bcrypt: tokens are already high-entropy.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    store_id: int,
    label: str | None = None,
    expires_in: timedelta | None = None,
) -> tuple[SessionToken, str]:
    """
    Issue a new token for the store.

    Returns (session_record, plaintext_token).
    """
    store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        raise NotFoundError(f"Store {store_id} not found", details={"store_id": store_id})

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        store_id=store_id,
        token_hash=hash_token(plaintext_token),
        label=label,
        created_at=now,
        expires_at=now + expires_in if expires_in else None,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its store.

    Returns None if the token is unknown, revoked or expired. Updates
    last_used_at on success.
    """
    if not token:
        return None

    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return None

    if session.expires_at is not None and session.expires_at < now:
        return None

    store = session.store
    if not store:
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(store=store, session=session, store_id=session.store_id)


def revoke_session(token: str) -> bool:
    """Returns True if an active session was revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True


def revoke_store_sessions(store_id: int) -> int:
    """Revoke every active session of a store; returns the count."""
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(store_id=store_id, is_revoked=False).all()
    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
    db.session.commit()
    return len(sessions)
