# Overview: Domain error taxonomy shared by the commerce services.

"""
Commerce errors.

Services raise these; routes translate them into JSON responses using
`status_code` and `code`. Capacity and quota errors are recoverable (shown to
the shopper as "sold out" / "limit reached"); state-transition errors point at
a caller bug; reconciliation mismatches are integrity failures.
"""

from __future__ import annotations


class CommerceError(ValueError):
    """Base class for domain errors raised by the commerce services."""

    code = "commerce_error"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CommerceError):
    """400-level input problem."""

    code = "validation_error"


class NotFoundError(CommerceError):
    """Missing cart, order, product or invoice."""

    code = "not_found"
    status_code = 404


class CapacityExceededError(CommerceError):
    """Not enough unreserved inventory left for the requested quantity."""

    code = "sold_out"
    status_code = 409

    def __init__(self, product_id: int, requested: int, available: int | None, message: str | None = None):
        if message is None:
            message = (
                f"Product {product_id} is sold out: requested {requested}, "
                f"available {available if available is not None else 0}"
            )
        super().__init__(message, product_id=product_id, requested=requested, available=available)
        self.product_id = product_id
        self.requested = requested
        self.available = available


class QuotaExceededError(CommerceError):
    """Organization would hold more units than max_quantity_per_org."""

    code = "limit_reached"
    status_code = 409

    def __init__(self, product_id: int, requested: int, max_allowed: int, already_held: int = 0):
        message = (
            f"Limit reached for product {product_id}: max {max_allowed} per organization, "
            f"already ordered {already_held}, requested {requested}"
        )
        super().__init__(
            message,
            product_id=product_id,
            requested=requested,
            max_allowed=max_allowed,
            already_held=already_held,
        )
        self.product_id = product_id
        self.requested = requested
        self.max_allowed = max_allowed
        self.already_held = already_held


class InvalidPaymentAmountError(CommerceError):
    """Payment amount is not positive or overshoots the balance owed."""

    code = "invalid_payment_amount"


class InvalidStateTransitionError(CommerceError):
    """Order status change not allowed by the lifecycle state machine."""

    code = "invalid_state_transition"
    status_code = 409

    def __init__(self, from_status: str, to_status: str, message: str | None = None):
        super().__init__(
            message or f"Cannot move order from '{from_status}' to '{to_status}'",
            from_status=from_status,
            to_status=to_status,
        )
        self.from_status = from_status
        self.to_status = to_status


class ReconciliationMismatchError(CommerceError):
    """Invoice paid + balance no longer equals its total."""

    code = "reconciliation_mismatch"
    status_code = 500
