# Overview: Pytest coverage for store-scoped session tokens.

from datetime import timedelta

import pytest

from store_manager.models import SessionToken
from store_manager.services import session_service, store_service
from store_manager.services.errors import ConflictError, NotFoundError, ValidationError


def test_token_is_stored_hashed(db_session, store_a):
    session, token = session_service.create_session(store_a.id)

    assert len(token) == 64
    assert session.token_hash == session_service.hash_token(token)
    assert db_session.query(SessionToken).filter_by(token_hash=token).count() == 0


def test_validate_resolves_store(db_session, store_a):
    _, token = session_service.create_session(store_a.id)

    context = session_service.validate_session(token)
    assert context.store_id == store_a.id
    assert context.session.last_used_at is not None


def test_unknown_revoked_and_expired_tokens(db_session, store_a):
    assert session_service.validate_session("nope") is None

    _, token = session_service.create_session(store_a.id)
    assert session_service.revoke_session(token) is True
    assert session_service.validate_session(token) is None
    assert session_service.revoke_session(token) is False

    _, expired = session_service.create_session(store_a.id, expires_in=timedelta(seconds=-1))
    assert session_service.validate_session(expired) is None


def test_revoke_store_sessions(db_session, store_a, store_b):
    session_service.create_session(store_a.id)
    session_service.create_session(store_a.id)
    _, keep = session_service.create_session(store_b.id)

    assert session_service.revoke_store_sessions(store_a.id) == 2
    assert session_service.validate_session(keep) is not None


def test_session_for_missing_store(db_session):
    with pytest.raises(NotFoundError):
        session_service.create_session(4242)


def test_create_store_validation(db_session, store_a):
    with pytest.raises(ValidationError):
        store_service.create_store("", "x@example.com")
    with pytest.raises(ValidationError):
        store_service.create_store("Shop", "not-an-email")
    with pytest.raises(ConflictError):
        store_service.create_store("Again", store_a.email.upper())
