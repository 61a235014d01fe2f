"""Exceptions raised by the checkout service"""

from typing import Optional


class CheckoutServiceError(Exception):
    """Base exception for all checkout service errors"""
    pass


class PaymentGatewayError(CheckoutServiceError):
    """Payment gateway call failed"""

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class GatewayModeError(CheckoutServiceError):
    """Operation is not available in the gateway's configured mode"""

    def __init__(self, operation: str, mode: str):
        self.operation = operation
        self.mode = mode
        super().__init__(f"'{operation}' is not available in {mode} payment mode")


class OrderPersistenceError(CheckoutServiceError):
    """Reading or writing orders failed"""

    def __init__(self, action: str, user_id: str, cause: Optional[Exception] = None):
        self.action = action
        self.user_id = user_id
        self.cause = cause
        msg = f"Failed to {action} for user {user_id}"
        if cause:
            msg = f"{msg}: {cause}"
        super().__init__(msg)


class OrderNotFoundError(CheckoutServiceError):
    """Order ID does not exist in the user's history"""

    def __init__(self, user_id: str, order_id: str):
        self.user_id = user_id
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found for user {user_id}")


class InvalidStatusTransitionError(CheckoutServiceError):
    """Order status may only move forward"""

    def __init__(self, order_id: str, current: str, requested: str):
        self.order_id = order_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Order {order_id} cannot move from '{current}' to '{requested}'"
        )


class SessionNotFoundError(CheckoutServiceError):
    """Checkout session ID does not exist"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Checkout session not found: {session_id}")
