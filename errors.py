"""Custom exceptions for the storefront."""
from typing import Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


# ----------------------- Validation -----------------------
class InvalidQuantityError(StorefrontError):
    """Raised when a cart quantity is not a positive integer."""

    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__(f"Quantity must be a positive integer, got {quantity!r}")


class InvalidProductError(StorefrontError):
    """Raised when product fields contradict each other (e.g. sale price above price)."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid product: {reason}")


class ProductUnavailableError(StorefrontError):
    """Raised at checkout when a cart line points at a product that no longer exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Product no longer available: {name}. Remove it from your cart.")


class EmptyCartError(StorefrontError):
    """Raised when an order is placed with nothing in the cart."""

    def __init__(self):
        super().__init__("Cart is empty")


class EmailAlreadyRegisteredError(StorefrontError):
    def __init__(self, email: str):
        self.email = email
        super().__init__("Email already registered")


# ----------------------- Conflicts -----------------------
class OutOfStockError(StorefrontError):
    """Raised when stock cannot cover an ordered quantity."""

    def __init__(self, name: str, requested: int):
        self.name = name
        self.requested = requested
        super().__init__(f"Not enough stock for {name} (requested {requested})")


class InvalidStatusTransitionError(StorefrontError):
    """Raised when an order cannot move from its current status to the requested one."""

    def __init__(self, current: str, requested: str, reason: Optional[str] = None):
        self.current = current
        self.requested = requested
        msg = f"Cannot change order status from '{current}' to '{requested}'"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


# ----------------------- Auth -----------------------
class AuthenticationError(StorefrontError):
    def __init__(self, reason: str = "Not authenticated"):
        super().__init__(reason)


class InvalidCredentialsError(StorefrontError):
    def __init__(self):
        super().__init__("Invalid credentials")


class AdminRequiredError(StorefrontError):
    def __init__(self):
        super().__init__("Admin only")


# ----------------------- Not found -----------------------
class NotFoundError(StorefrontError):
    """Base for lookups of unknown ids."""

    kind = "Resource"

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"{self.kind} not found: {resource_id}")


class ProductNotFoundError(NotFoundError):
    kind = "Product"


class CartItemNotFoundError(NotFoundError):
    kind = "Cart item"


class OrderNotFoundError(NotFoundError):
    kind = "Order"


class NotificationNotFoundError(NotFoundError):
    kind = "Notification"


class OfferNotFoundError(NotFoundError):
    kind = "Offer"


# ----------------------- Dependencies -----------------------
class DatabaseUnavailableError(StorefrontError):
    """Raised when no database connection is configured."""

    def __init__(self):
        super().__init__(
            "Database not available. Check DATABASE_URL and DATABASE_NAME environment variables."
        )
