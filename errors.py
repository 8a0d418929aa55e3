"""Exceptions raised by the cart, coupon and order layers.

Each carries the HTTP status it maps to; ``main`` renders them as
``{"detail": message}`` like a FastAPI ``HTTPException``.
"""


class KStoreError(Exception):
    """Base exception for all storefront errors."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class RequestError(KStoreError):
    """Raised when a request is well-formed but cannot be accepted."""


class EmptyCartError(RequestError):
    def __init__(self):
        super().__init__("Cart is empty")


class IncompleteAddressError(RequestError):
    def __init__(self, missing: list[str] | None = None):
        self.missing = missing or []
        msg = "Shipping address is required"
        if self.missing:
            msg = f"Shipping address is incomplete: {', '.join(self.missing)}"
        super().__init__(msg)


class InvalidQuantityError(RequestError):
    def __init__(self, quantity: int):
        self.quantity = quantity
        super().__init__(f"Quantity must be at least 1, got {quantity}")


class OutOfStockError(RequestError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Not enough stock for {name}")


class CouponError(RequestError):
    """Raised when a coupon cannot be applied to an order."""


class UnknownCouponError(CouponError):
    status_code = 404

    def __init__(self, code: str):
        self.code = code
        super().__init__("Invalid coupon code")


class NotFoundError(KStoreError):
    status_code = 404


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order not found")


class InvalidTransitionError(KStoreError):
    """Raised when an order status change is not allowed from its current state."""

    def __init__(self, current: str, target: str, message: str | None = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Order cannot move from {current} to {target}")


class AuthError(KStoreError):
    status_code = 401


class PermissionDeniedError(KStoreError):
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)
