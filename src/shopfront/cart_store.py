"""Per-user shopping carts.

Each user owns at most one cart document. Every mutation loads the cart,
changes it in memory, recomputes totals and writes the whole document back,
so lines and totals always land in the same write.

Concurrent requests for the same user are not serialized: two interleaved
read-modify-write cycles can lose one of the updates. Carts are single-user
baskets and this is accepted.
"""

import logging

from .catalog import ItemCatalog
from .documents import DocumentStore
from .errors import CartLineNotFoundError, CartNotFoundError, InvalidFieldError
from .models import Cart, _utc_now

logger = logging.getLogger(__name__)

COLLECTION = "cart"


class CartStore:
    """Keyed store of carts, one per user ID."""

    def __init__(self, store: DocumentStore, catalog: ItemCatalog):
        self.store = store
        self.catalog = catalog

    def get(self, user_id: str) -> Cart | None:
        """Get the user's cart without creating one."""
        doc = self.store.find_one(COLLECTION, {"userId": user_id})
        return Cart.from_dict(doc) if doc else None

    def get_or_create(self, user_id: str) -> Cart:
        """Get the user's cart, creating an empty one on first use."""
        empty = Cart.empty(user_id).to_dict()
        del empty["id"]
        doc = self.store.find_or_insert(COLLECTION, {"userId": user_id}, empty)
        return Cart.from_dict(doc)

    def _save(self, cart: Cart) -> Cart:
        cart.recompute_totals()
        cart.updated_at = _utc_now()
        self.store.replace(COLLECTION, cart.id, cart.to_dict())
        return cart

    def add_item(self, user_id: str, item_id: str, quantity: int = 1) -> Cart:
        """
        Add quantity of an item, merging with an existing line.

        New lines capture the item's current catalog price.

        Raises:
            InvalidFieldError: If quantity < 1.
            ItemNotFoundError: If the item doesn't exist.
        """
        if quantity < 1:
            raise InvalidFieldError({"quantity": "must be at least 1"})
        item = self.catalog.get(item_id)

        cart = self.get_or_create(user_id)
        cart.add_line(item.id, quantity, item.price)
        return self._save(cart)

    def update_quantity(self, user_id: str, item_id: str, quantity: int) -> Cart:
        """
        Set the quantity of an existing line. quantity <= 0 removes the line.

        Raises:
            CartNotFoundError: If the user has no cart.
            CartLineNotFoundError: If the item isn't in the cart.
        """
        cart = self.get(user_id)
        if cart is None:
            raise CartNotFoundError(user_id)
        if not cart.set_quantity(item_id, quantity):
            raise CartLineNotFoundError(item_id)
        return self._save(cart)

    def remove_item(self, user_id: str, item_id: str) -> Cart:
        """Remove an item's line. Removing something that isn't there is a no-op."""
        cart = self.get(user_id)
        if cart is None:
            return Cart.empty(user_id)
        if not cart.remove_line(item_id):
            return cart
        return self._save(cart)

    def clear(self, user_id: str) -> Cart:
        """Empty the cart, keeping the document."""
        cart = self.get(user_id)
        if cart is None:
            return Cart.empty(user_id)
        cart.clear()
        return self._save(cart)

    def summary(self, user_id: str) -> dict[str, float | int]:
        cart = self.get(user_id)
        if cart is None:
            return {"totalItems": 0, "totalAmount": 0.0}
        return {"totalItems": cart.total_items, "totalAmount": cart.total_amount}
