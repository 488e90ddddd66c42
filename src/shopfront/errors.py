"""Custom exceptions for shopfront."""


class ShopError(Exception):
    """Base exception for all shopfront errors."""

    pass


# --- Not found ---


class NotFoundError(ShopError):
    """Base for lookups that resolve to nothing (or to something the caller doesn't own)."""

    pass


class ItemNotFoundError(NotFoundError):
    """Raised when an item ID doesn't exist in the catalog."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item with ID {item_id} not found")


class CartNotFoundError(NotFoundError):
    """Raised when a user has no cart yet."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("Cart not found")


class CartLineNotFoundError(NotFoundError):
    """Raised when an item is not in the user's cart."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found in cart: {item_id}")


class OrderNotFoundError(NotFoundError):
    """Raised when an order doesn't exist or belongs to another user."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class UserNotFoundError(NotFoundError):
    """Raised when a user ID doesn't exist."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# --- Validation ---


class InvalidFieldError(ShopError):
    """Raised when one or more input fields fail validation."""

    def __init__(self, fields: dict[str, str], message: str | None = None):
        self.fields = fields
        if message is None:
            details = "; ".join(f"{name}: {reason}" for name, reason in fields.items())
            message = f"Invalid fields ({details})"
        super().__init__(message)


class EmailTakenError(InvalidFieldError):
    """Raised when registering with an email that already has an account."""

    def __init__(self, email: str):
        self.email = email
        super().__init__({"email": "already registered"}, "Email already registered")


# --- Lifecycle state ---


class InvalidStateError(ShopError):
    """Base for operations that are not legal in the current lifecycle state."""

    pass


class EmptyCartError(InvalidStateError):
    """Raised when checking out a cart with no lines."""

    def __init__(self) -> None:
        super().__init__("Cart is empty")


class InvalidStatusTransitionError(InvalidStateError):
    """Raised when an order status change is not a legal forward transition."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from '{current}' to '{requested}'")


class OrderNotCancellableError(InvalidStateError):
    """Raised when cancelling an order that is past the confirmed stage."""

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Order cannot be cancelled at this stage ({status})")


# --- Upstream collaborators ---


class UpstreamError(ShopError):
    """Base for failures in the storage layer or an external service."""

    pass


class StorageError(UpstreamError):
    """Raised when the document store fails."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage operation failed: {operation} ({reason})")


class ImageUploadError(UpstreamError):
    """Raised when an image cannot be uploaded."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Image upload failed: {reason}")


# --- Authentication ---


class AuthenticationError(ShopError):
    """Base for requests that cannot be tied to a user."""

    pass


class NotAuthenticatedError(AuthenticationError):
    """Raised when the session cookie is missing, unknown or expired."""

    def __init__(self, reason: str | None = None):
        msg = "Not authenticated"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class InvalidCredentialsError(AuthenticationError):
    """Raised when email/password don't match an account."""

    def __init__(self) -> None:
        super().__init__("Invalid credentials")
