"""Item catalog."""

import logging
import math

from .documents import DocumentStore
from .errors import InvalidFieldError, ItemNotFoundError
from .models import Item, _utc_now

logger = logging.getLogger(__name__)

COLLECTION = "item"

TITLE_LENGTH = (3, 50)
DESCRIPTION_LENGTH = (20, 150)


def validate_item_fields(
    title: str,
    description: str,
    image: str,
    price: float,
    discounted: float,
    total_price: float,
    quantity: int,
) -> dict[str, str]:
    """Return a map of wire field name -> problem for every rule the values break."""
    problems: dict[str, str] = {}

    title_len = len((title or "").strip())
    if not TITLE_LENGTH[0] <= title_len <= TITLE_LENGTH[1]:
        problems["title"] = f"must be {TITLE_LENGTH[0]}-{TITLE_LENGTH[1]} characters"

    description_len = len((description or "").strip())
    if not DESCRIPTION_LENGTH[0] <= description_len <= DESCRIPTION_LENGTH[1]:
        problems["description"] = (
            f"must be {DESCRIPTION_LENGTH[0]}-{DESCRIPTION_LENGTH[1]} characters"
        )

    if not (image or "").strip():
        problems["image"] = "is required"

    amounts = {"price": price, "discounted": discounted, "totalPrice": total_price}
    for name, value in amounts.items():
        if not math.isfinite(value):
            problems[name] = "must be a finite number"

    if "price" not in problems and price <= 0:
        problems["price"] = "must be greater than 0"
    if "discounted" not in problems:
        if discounted < 0:
            problems["discounted"] = "cannot be negative"
        elif discounted > price:
            problems["discounted"] = "cannot exceed the price"
    if not problems.keys() & amounts.keys() and total_price < price - discounted:
        problems["totalPrice"] = "must be at least price minus discount"

    if quantity < 1:
        problems["quantity"] = "must be at least 1"

    return problems


class ItemCatalog:
    """Creates and looks up sellable items."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def create(
        self,
        title: str,
        description: str,
        image: str,
        price: float,
        total_price: float,
        quantity: int = 1,
        discounted: float = 0.0,
    ) -> Item:
        """
        Validate and store a new item.

        Args:
            image: URL of an already-uploaded image.

        Raises:
            InvalidFieldError: Listing every offending field.
        """
        problems = validate_item_fields(
            title, description, image, price, discounted, total_price, quantity
        )
        if problems:
            raise InvalidFieldError(problems)

        now = _utc_now()
        doc = self.store.insert(
            COLLECTION,
            {
                "title": title.strip(),
                "description": description.strip(),
                "image": image,
                "price": float(price),
                "discounted": float(discounted),
                "totalPrice": float(total_price),
                "quantity": int(quantity),
                "createdAt": now,
                "updatedAt": now,
            },
        )
        item = Item.from_dict(doc)
        logger.info("Created item %s (%s)", item.id, item.title)
        return item

    def find(self, item_id: str) -> Item | None:
        doc = self.store.get(COLLECTION, item_id)
        return Item.from_dict(doc) if doc else None

    def get(self, item_id: str) -> Item:
        """
        Get an item by ID.

        Raises:
            ItemNotFoundError: If the item doesn't exist.
        """
        item = self.find(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def list_items(self) -> list[Item]:
        return [Item.from_dict(d) for d in self.store.find(COLLECTION)]

    def count(self) -> int:
        return self.store.count(COLLECTION)
