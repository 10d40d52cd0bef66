# Overview: Error taxonomy shared by the ledger, state machines and evidence store.

"""
PackTrack error kinds.

Every service raises one of these; the request layer maps `status_code`
straight onto the HTTP response. Ledger and state-machine errors always
abort the enclosing transaction (see services.concurrency.run_with_retry).
IntegrityViolation is the exception: evidence checks run outside any
ledger transaction and the validity downgrade they perform is kept.
"""

from __future__ import annotations


class FulfillmentError(Exception):
    """Base class for every domain error."""

    status_code = 400
    code = "FULFILLMENT_ERROR"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFound(FulfillmentError):
    """Order, return, product or video absent (or outside the workspace)."""

    status_code = 404
    code = "NOT_FOUND"


class InvalidTransition(FulfillmentError):
    """Status change not permitted from the current state."""

    status_code = 409
    code = "INVALID_TRANSITION"


class InsufficientStock(FulfillmentError):
    """A deduction would drive on-hand quantity below zero."""

    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, *, product_id: int, available: int, requested: int, product_name: str | None = None):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        self.shortfall = requested - available
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, "
            f"Required: {requested}, Short by: {self.shortfall}",
            product_id=product_id,
            available=available,
            requested=requested,
            shortfall=self.shortfall,
        )


class IntegrityViolation(FulfillmentError):
    """Evidence artifact missing or its digest no longer matches."""

    status_code = 422
    code = "INTEGRITY_VIOLATION"


class ValidationError(FulfillmentError):
    """Malformed input (bad reconciliation entry, missing reason, ...)."""

    status_code = 400
    code = "VALIDATION_ERROR"
