# Overview: Exception taxonomy shared by the ledger, checkout and CRUD services.

"""
Service Errors

Routes translate these to HTTP responses:
- ValidationError, InvalidAmount, EmptyOrder -> 400 (rejected before any write)
- *NotFound -> 404
- ConflictError, EntryAlreadyReversed -> 409
- PersistenceFailure -> 503 (retryable; caller must not assume anything changed)
- PartialCheckoutFailure -> 500 with reconciliation details
"""

from __future__ import annotations


class StoreManagerError(Exception):
    """Base class for service errors."""
    code = "ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": str(self), "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StoreManagerError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"


class ConflictError(StoreManagerError):
    """409-level business rule conflict."""
    code = "CONFLICT"


class NotFoundError(StoreManagerError):
    code = "NOT_FOUND"


# =============================================================================
# LEDGER
# =============================================================================

class InvalidAmount(ValidationError):
    """Amount is non-positive or not a whole number of cents."""
    code = "INVALID_AMOUNT"


class CustomerNotFound(NotFoundError):
    code = "CUSTOMER_NOT_FOUND"


class PaymentNotFound(NotFoundError):
    code = "PAYMENT_NOT_FOUND"


class InvoiceNotFound(NotFoundError):
    code = "INVOICE_NOT_FOUND"


class EntryAlreadyReversed(ConflictError):
    code = "ENTRY_ALREADY_REVERSED"


# =============================================================================
# CHECKOUT
# =============================================================================

class EmptyOrder(ValidationError):
    code = "EMPTY_ORDER"


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"


class PartialCheckoutFailure(StoreManagerError):
    """
    Order header was written but a later checkout step failed and its
    compensation did not complete. details carries what needs reconciling.
    """
    code = "PARTIAL_CHECKOUT"


# =============================================================================
# PERSISTENCE
# =============================================================================

class PersistenceFailure(StoreManagerError):
    """Database write failed; the operation was rolled back and may be retried."""
    code = "PERSISTENCE_FAILURE"
    retryable = True

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryable"] = self.retryable
        return body
