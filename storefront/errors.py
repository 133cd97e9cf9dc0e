"""
Domain errors raised by the services.

Every error carries the HTTP status it maps to. ``main.py`` registers a
single handler that turns them into ``{"detail": ...}`` responses, the same
body FastAPI produces for ``HTTPException``.
"""
from typing import Optional


class StorefrontError(Exception):
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None, *, redirect: Optional[str] = None):
        self.message = message or self.default_message
        self.redirect = redirect
        super().__init__(self.message)


# =========================
# VALIDATION
# =========================

class InvalidInputError(StorefrontError):
    status_code = 422
    default_message = "Invalid input"


class InvalidCardError(InvalidInputError):
    default_message = "Invalid card number"


class InvalidCVCError(InvalidInputError):
    default_message = "Invalid CVC"


# =========================
# NOT FOUND
# =========================

class NotFoundError(StorefrontError):
    status_code = 404
    default_message = "Not found"


# =========================
# BUSINESS RULES
# =========================

class BusinessRuleError(StorefrontError):
    status_code = 409


class ConflictError(BusinessRuleError):
    default_message = "Request conflicts with an earlier request"


class CheckoutStateError(BusinessRuleError):
    default_message = "Checkout is not in the right step for this action"


class CheckoutInProgressError(CheckoutStateError):
    default_message = "Your order is already being placed"


class PaymentRefundedError(BusinessRuleError):
    default_message = "Your earlier payment was refunded. Please review your order and place it again."


class CartEmptyError(BusinessRuleError):
    default_message = "Your cart is empty"

    def __init__(self, message: Optional[str] = None, *, redirect: Optional[str] = "/cart"):
        super().__init__(message, redirect=redirect)


class PaymentDeclinedError(StorefrontError):
    status_code = 402
    default_message = "Payment failed. Please try again."

    def __init__(self, message: Optional[str] = None, *, decline_code: str = "card_declined"):
        super().__init__(message)
        self.decline_code = decline_code


# =========================
# GATEWAY / PLACEMENT
# =========================

class GatewayError(StorefrontError):
    status_code = 502
    default_message = "Payment provider error"


class GatewayTimeoutError(GatewayError):
    status_code = 504
    default_message = "Payment provider did not respond in time"


class OrderPlacementError(StorefrontError):
    status_code = 500
    default_message = "We could not create your order. Your payment has been refunded."
