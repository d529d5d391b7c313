# cart_service/domain/errors.py
"""
Bledy domeny koszyka.

NotFound -> brak zasobu, CartValidationError -> regula biznesowa (user moze poprawic),
ExternalServiceError -> product/order service, ConcurrencyConflict -> optimistic lock.
"""


class CartServiceError(Exception):
    code = "CART_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# --- not found ---

class NotFound(CartServiceError):
    code = "NOT_FOUND"


class CartNotFound(NotFound):
    code = "CART_NOT_FOUND"

    def __init__(self, cart_id: str):
        self.cart_id = cart_id
        super().__init__(f"Cart not found with ID: {cart_id}")


class CartItemNotFound(NotFound):
    code = "CART_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Cart item not found with ID: {item_id}")


class ProductNotFound(NotFound):
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


# --- walidacja ---

class CartValidationError(CartServiceError):
    code = "VALIDATION_ERROR"


class InvalidQuantity(CartValidationError):
    code = "INVALID_QUANTITY"


class LimitExceeded(CartValidationError):
    code = "LIMIT_EXCEEDED"


class DuplicateItem(CartValidationError):
    code = "DUPLICATE_ITEM"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Cart already holds an active line for product: {product_id}")


class EmptyCart(CartValidationError):
    code = "EMPTY_CART"

    def __init__(self, cart_id: str):
        self.cart_id = cart_id
        super().__init__(f"Cannot checkout empty cart: {cart_id}")


class InsufficientStock(CartValidationError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int | None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: requested {requested}, available {available}"
        )


class ItemsUnavailable(CartValidationError):
    code = "ITEMS_UNAVAILABLE"

    def __init__(self, product_ids: list[str]):
        self.product_ids = product_ids
        super().__init__(f"Items unavailable or out of stock: {', '.join(product_ids)}")


class CartNotModifiable(CartValidationError):
    code = "CART_NOT_MODIFIABLE"


class InvalidTransition(CartValidationError):
    code = "INVALID_TRANSITION"


class OwnershipConflict(CartValidationError):
    code = "OWNERSHIP_CONFLICT"


# --- infrastruktura ---

class ExternalServiceError(CartServiceError):
    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")


class ConcurrencyConflict(CartServiceError):
    code = "CONCURRENCY_CONFLICT"

    def __init__(self, cart_id: str, expected_version: int):
        self.cart_id = cart_id
        self.expected_version = expected_version
        super().__init__(
            f"Cart {cart_id} was modified by another operation (expected version {expected_version})"
        )
