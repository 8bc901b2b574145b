# Overview: Translate service errors into JSON responses.

from __future__ import annotations

from flask import current_app, jsonify, request

from .services.errors import (
    ConflictError,
    NotFoundError,
    PartialCheckoutFailure,
    PersistenceFailure,
    StoreManagerError,
    ValidationError,
)


def error_response(exc: StoreManagerError):
    """
    Map a service error to (json, status).

    ValidationError -> 400, NotFoundError -> 404, ConflictError -> 409,
    PersistenceFailure -> 503, PartialCheckoutFailure -> 500 with the
    reconciliation details.
    """
    body = exc.to_dict()
    if isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, ConflictError):
        status = 409
    elif isinstance(exc, PersistenceFailure):
        current_app.logger.warning("Persistence failure on %s %s: %s", request.method, request.path, exc)
        status = 503
    elif isinstance(exc, PartialCheckoutFailure):
        current_app.logger.error("Partial checkout on %s: %s", request.path, exc.details)
        body["reconciliation"] = body.pop("details", {})
        status = 500
    else:
        status = 400
    return jsonify(body), status


def json_body() -> dict:
    """Request JSON as a dict; an empty dict when the body is missing."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def int_arg(name: str, default: int | None = None) -> int | None:
    return request.args.get(name, default, type=int)


def bool_arg(name: str) -> bool:
    return request.args.get(name, "").strip().lower() in {"1", "true", "yes"}
