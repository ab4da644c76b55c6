"""
Checkout error taxonomy.

Each error carries the HTTP status the API layer answers with. Gateway
declines and outages are normally handled inside the payment service and
surface as a failed PaymentResult rather than propagating.
"""
from typing import Any, Dict, Optional


class OrderflowError(Exception):
    """Base class for checkout errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(OrderflowError):
    """Malformed input, rejected before any side effect."""
    status_code = 400


class NotFoundError(OrderflowError):
    """Referenced order, customer, warehouse or address does not exist."""
    status_code = 404


class DuplicateChargeError(OrderflowError):
    """Same amount and card charged moments ago; rejected before the gateway call."""
    status_code = 409


class GatewayDeclined(OrderflowError):
    """Gateway answered but did not approve or hold the charge."""
    status_code = 400


class GatewayUnreachable(OrderflowError):
    """Transport failure or timeout talking to the payment gateway."""
    status_code = 502


class GatewayNotConfigured(OrderflowError):
    """Gateway credentials missing; nothing was sent."""
    status_code = 500


class NoWarehouseAvailable(OrderflowError):
    """No active warehouse exists, so nothing can be fulfilled."""
    status_code = 409


class ReservationFailure(OrderflowError):
    """Stock reservation failed; callers fall back instead of raising."""
    status_code = 500


class RateQuoteError(OrderflowError):
    """Carrier rate service failed or returned no rates. 504 when the carrier timed out."""
    status_code = 502

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message, details)


class PersistenceError(OrderflowError):
    """Storage layer failed while recording checkout state."""
    status_code = 500
