"""Order placement and lifecycle.

Placing an order from a cart is two writes: the order document is inserted
first, then the cart is cleared. There is no transaction around the pair.
If the clear fails the order still stands; the failure is logged and
reported back as ``cart_cleared=False``. An add-to-cart that lands between
the two writes is wiped by the clear.
"""

import logging
import math
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .cart_store import CartStore
from .catalog import ItemCatalog
from .documents import DocumentStore
from .errors import (
    EmptyCartError,
    InvalidFieldError,
    InvalidStatusTransitionError,
    OrderNotCancellableError,
    OrderNotFoundError,
    ShopError,
)
from .models import (
    CANCELLABLE_STATUSES,
    DELIVERY_DAYS,
    ORDER_STATUSES,
    SHIPPING_COSTS,
    Order,
    OrderLine,
    OrderSummary,
    PaymentInfo,
    ShippingInfo,
    _format_ts,
    _utc_now,
    can_transition,
)

logger = logging.getLogger(__name__)

COLLECTION = "order"

_ORDER_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
_ORDER_SUFFIX_LENGTH = 9


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def generate_order_number(moment: datetime) -> str:
    """ORD-<epoch ms>-<9 random base36 chars>."""
    suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(_ORDER_SUFFIX_LENGTH))
    return f"ORD-{_epoch_ms(moment)}-{suffix}"


def generate_transaction_id(moment: datetime) -> str:
    return f"TXN-{_epoch_ms(moment)}-{secrets.token_hex(4).upper()}"


@dataclass
class DirectItem:
    """One requested (item, quantity) pair for a buy-now order."""

    item_id: str
    quantity: int = 1


@dataclass
class PlacedOrder:
    order: Order
    cart_cleared: bool


class OrderLedger:
    """Creates orders from carts or direct item lists and manages their status."""

    def __init__(
        self,
        store: DocumentStore,
        catalog: ItemCatalog,
        carts: CartStore,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.catalog = catalog
        self.carts = carts
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # --- Creation ---

    def _lines_from_cart(self, user_id: str) -> list[OrderLine]:
        cart = self.carts.get(user_id)
        if cart is None or not cart.items:
            raise EmptyCartError()
        lines = []
        for cart_line in cart.items:
            item = self.catalog.find(cart_line.item_id)
            lines.append(
                OrderLine(
                    item_id=cart_line.item_id,
                    quantity=cart_line.quantity,
                    price=cart_line.price,
                    title=item.title if item else None,
                )
            )
        return lines

    def _lines_from_direct(self, direct_items: list[DirectItem]) -> list[OrderLine]:
        if not direct_items:
            raise InvalidFieldError(
                {"directItems": "no items provided"}, "No items provided for order"
            )
        bad = [d.item_id for d in direct_items if d.quantity < 1]
        if bad:
            raise InvalidFieldError({"directItems": f"quantity must be at least 1 for {', '.join(bad)}"})

        lines = []
        for direct in direct_items:
            item = self.catalog.get(direct.item_id)
            lines.append(
                OrderLine(
                    item_id=item.id,
                    quantity=direct.quantity,
                    price=item.price,
                    title=item.title,
                )
            )
        return lines

    def create_order(
        self,
        user_id: str,
        shipping_info: ShippingInfo,
        payment_info: PaymentInfo | None = None,
        shipping_method: str = "standard",
        use_cart: bool = True,
        direct_items: list[DirectItem] | None = None,
    ) -> PlacedOrder:
        """
        Snapshot the cart (or a direct item list) into a confirmed order.

        Cart orders use the prices captured in the cart; direct orders use
        current catalog prices.

        Raises:
            InvalidFieldError: Bad shipping method, shipping info or direct items.
            EmptyCartError: Cart order with nothing in the cart.
            ItemNotFoundError: A direct item doesn't exist.
        """
        if shipping_method not in SHIPPING_COSTS:
            raise InvalidFieldError(
                {"shippingMethod": f"must be one of {', '.join(SHIPPING_COSTS)}"}
            )
        missing = shipping_info.missing_fields()
        if missing:
            raise InvalidFieldError({f"shippingInfo.{name}": "is required" for name in missing})

        if use_cart:
            lines = self._lines_from_cart(user_id)
        else:
            lines = self._lines_from_direct(direct_items or [])

        now = self._clock()
        summary = OrderSummary.compute(lines, shipping_method)
        payment = PaymentInfo(
            method=(payment_info.method if payment_info else "card") or "card",
            card_last4=payment_info.card_last4 if payment_info else None,
            transaction_id=generate_transaction_id(now),
        )
        timestamp = _format_ts(now)
        doc: dict[str, Any] = Order(
            id="",
            user_id=user_id,
            order_number=generate_order_number(now),
            items=lines,
            shipping_info=shipping_info,
            payment_info=payment,
            order_summary=summary,
            status="confirmed",
            shipping_method=shipping_method,
            estimated_delivery=_format_ts(now + timedelta(days=DELIVERY_DAYS[shipping_method])),
            created_at=timestamp,
            updated_at=timestamp,
        ).to_dict()
        del doc["id"]

        order = Order.from_dict(self.store.insert(COLLECTION, doc))
        logger.info(
            "Placed order %s for user %s (total %.2f)",
            order.order_number,
            user_id,
            order.order_summary.total,
        )

        cart_cleared = True
        if use_cart:
            try:
                self.carts.clear(user_id)
            except ShopError:
                cart_cleared = False
                logger.exception(
                    "Order %s placed but clearing the cart of user %s failed",
                    order.order_number,
                    user_id,
                )
        return PlacedOrder(order=order, cart_cleared=cart_cleared)

    # --- Queries ---

    def get_order(self, user_id: str, order_id: str) -> Order:
        """
        Get one of the user's orders.

        Raises:
            OrderNotFoundError: If it doesn't exist or belongs to someone else.
        """
        doc = self.store.get(COLLECTION, order_id)
        if doc is None or doc.get("userId") != user_id:
            raise OrderNotFoundError(order_id)
        return Order.from_dict(doc)

    def list_orders(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
    ) -> tuple[list[Order], dict[str, Any]]:
        """List the user's orders, newest first, with pagination info."""
        page = max(page, 1)
        limit = max(limit, 1)
        query: dict[str, Any] = {"userId": user_id}
        if status:
            query["status"] = status

        total = self.store.count(COLLECTION, query)
        docs = self.store.find(
            COLLECTION,
            query,
            sort_by="createdAt",
            descending=True,
            skip=(page - 1) * limit,
            limit=limit,
        )
        pagination = {
            "currentPage": page,
            "totalPages": math.ceil(total / limit),
            "totalOrders": total,
            "hasNext": page * limit < total,
            "hasPrev": page > 1,
        }
        return [Order.from_dict(d) for d in docs], pagination

    def summary(self, user_id: str) -> dict[str, Any]:
        orders = self.store.find(COLLECTION, {"userId": user_id})
        return {
            "totalOrders": len(orders),
            "totalSpent": round(sum(o["orderSummary"]["total"] for o in orders), 2),
            "pendingOrders": sum(1 for o in orders if o.get("status") == "pending"),
            "completedOrders": sum(1 for o in orders if o.get("status") == "delivered"),
        }

    # --- Lifecycle ---

    def _set_status(
        self, order: Order, status: str, extra: dict[str, Any] | None = None
    ) -> Order:
        fields: dict[str, Any] = {"status": status, "updatedAt": _utc_now()}
        fields.update(extra or {})
        # Compare-and-set on the status we validated against
        doc = self.store.update(COLLECTION, {"id": order.id, "status": order.status}, fields)
        if doc is None:
            current = self.store.get(COLLECTION, order.id)
            if current is None:
                raise OrderNotFoundError(order.id)
            raise InvalidStatusTransitionError(current.get("status", "unknown"), status)
        return Order.from_dict(doc)

    def update_status(
        self,
        order_id: str,
        status: str,
        tracking_number: str | None = None,
        notes: str | None = None,
    ) -> Order:
        """
        Move an order along the lifecycle (administrative path).

        Raises:
            InvalidFieldError: Unknown status value.
            OrderNotFoundError: If the order doesn't exist.
            InvalidStatusTransitionError: If the move isn't a legal forward step.
        """
        if status not in ORDER_STATUSES:
            raise InvalidFieldError({"status": f"must be one of {', '.join(ORDER_STATUSES)}"})
        doc = self.store.get(COLLECTION, order_id)
        if doc is None:
            raise OrderNotFoundError(order_id)
        order = Order.from_dict(doc)
        if not can_transition(order.status, status):
            raise InvalidStatusTransitionError(order.status, status)

        extra: dict[str, Any] = {}
        if tracking_number:
            extra["trackingNumber"] = tracking_number
        if notes:
            extra["notes"] = notes
        updated = self._set_status(order, status, extra)
        logger.info("Order %s: %s -> %s", updated.order_number, order.status, status)
        return updated

    def cancel(self, user_id: str, order_id: str) -> Order:
        """
        Cancel one of the user's orders while it is still pending or confirmed.

        Raises:
            OrderNotFoundError: If it doesn't exist or belongs to someone else.
            OrderNotCancellableError: If it has progressed past confirmed.
        """
        order = self.get_order(user_id, order_id)
        if order.status not in CANCELLABLE_STATUSES:
            raise OrderNotCancellableError(order.status)
        try:
            updated = self._set_status(order, "cancelled")
        except InvalidStatusTransitionError as e:
            raise OrderNotCancellableError(e.current) from e
        logger.info("Order %s cancelled by user %s", updated.order_number, user_id)
        return updated
