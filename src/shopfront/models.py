"""Data models for shopfront."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
import uuid

# Order lifecycle
ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"processing", "cancelled"}),
    "processing": frozenset({"shipped"}),
    "shipped": frozenset({"delivered"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
}
CANCELLABLE_STATUSES = frozenset({"pending", "confirmed"})

# Checkout constants
SHIPPING_COSTS = {"standard": 5.99, "express": 15.99}
DELIVERY_DAYS = {"standard": 7, "express": 3}
TAX_RATE = 0.08


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return _format_ts(datetime.now(timezone.utc))


def _format_ts(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new document ID."""
    return str(uuid.uuid4())


def _money(value: float) -> float:
    """Round a currency amount to cents."""
    return round(value, 2)


def can_transition(current: str, requested: str) -> bool:
    """Whether the order lifecycle allows moving from current to requested."""
    return requested in ORDER_TRANSITIONS.get(current, frozenset())


@dataclass
class Item:
    """A sellable catalog item."""

    id: str
    title: str
    description: str
    image: str
    price: float
    discounted: float = 0.0
    total_price: float = 0.0
    quantity: int = 1
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "image": self.image,
            "price": self.price,
            "discounted": self.discounted,
            "totalPrice": self.total_price,
            "quantity": self.quantity,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def brief(self) -> dict[str, Any]:
        """Subset embedded next to cart and order lines."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Item":
        return cls(
            id=data["id"],
            title=data["title"],
            description=data["description"],
            image=data["image"],
            price=data["price"],
            discounted=data.get("discounted", 0.0),
            total_price=data.get("totalPrice", 0.0),
            quantity=data.get("quantity", 1),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class CartLine:
    """One item in a cart, with the unit price captured when it was added."""

    item_id: str
    quantity: int
    price: float
    added_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemId": self.item_id,
            "quantity": self.quantity,
            "price": self.price,
            "addedAt": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        return cls(
            item_id=data["itemId"],
            quantity=data["quantity"],
            price=data["price"],
            added_at=data.get("addedAt", ""),
        )


@dataclass
class Cart:
    """A user's basket. Totals are derived from the lines."""

    user_id: str
    id: str = ""
    items: list[CartLine] = field(default_factory=list)
    total_amount: float = 0.0
    total_items: int = 0
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def find_line(self, item_id: str) -> CartLine | None:
        for line in self.items:
            if line.item_id == item_id:
                return line
        return None

    def add_line(self, item_id: str, quantity: int, price: float) -> CartLine:
        """Increment the existing line for item_id, or append a new one."""
        line = self.find_line(item_id)
        if line is not None:
            line.quantity += quantity
        else:
            line = CartLine(item_id=item_id, quantity=quantity, price=price)
            self.items.append(line)
        self.recompute_totals()
        return line

    def set_quantity(self, item_id: str, quantity: int) -> bool:
        """Set a line's quantity; quantity <= 0 removes it. False if no such line."""
        line = self.find_line(item_id)
        if line is None:
            return False
        if quantity <= 0:
            self.remove_line(item_id)
        else:
            line.quantity = quantity
            self.recompute_totals()
        return True

    def remove_line(self, item_id: str) -> bool:
        before = len(self.items)
        self.items = [line for line in self.items if line.item_id != item_id]
        self.recompute_totals()
        return len(self.items) != before

    def clear(self) -> None:
        self.items = []
        self.recompute_totals()

    def recompute_totals(self) -> None:
        self.total_items = sum(line.quantity for line in self.items)
        self.total_amount = _money(sum(line.price * line.quantity for line in self.items))

    def to_dict(self) -> dict[str, Any]:
        self.recompute_totals()
        return {
            "id": self.id,
            "userId": self.user_id,
            "items": [line.to_dict() for line in self.items],
            "totalAmount": self.total_amount,
            "totalItems": self.total_items,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cart":
        cart = cls(
            id=data.get("id", ""),
            user_id=data["userId"],
            items=[CartLine.from_dict(line) for line in data.get("items", [])],
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )
        cart.recompute_totals()
        return cart

    @classmethod
    def empty(cls, user_id: str) -> "Cart":
        """A fresh cart with no lines and zero totals."""
        now = _utc_now()
        return cls(user_id=user_id, created_at=now, updated_at=now)


@dataclass
class OrderLine:
    """Snapshot of one purchased item."""

    item_id: str
    quantity: int
    price: float
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "itemId": self.item_id,
            "quantity": self.quantity,
            "price": self.price,
        }
        if self.title is not None:
            result["title"] = self.title
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderLine":
        return cls(
            item_id=data["itemId"],
            quantity=data["quantity"],
            price=data["price"],
            title=data.get("title"),
        )


@dataclass
class ShippingInfo:
    full_name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str = "USA"

    def missing_fields(self) -> list[str]:
        """Wire names of required fields left blank."""
        return [
            key
            for key, value in self.to_dict().items()
            if not str(value or "").strip()
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "fullName": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zipCode": self.zip_code,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShippingInfo":
        return cls(
            full_name=data["fullName"],
            email=data["email"],
            phone=data["phone"],
            address=data["address"],
            city=data["city"],
            state=data["state"],
            zip_code=data["zipCode"],
            country=data.get("country", "USA"),
        )


@dataclass
class PaymentInfo:
    method: str = "card"
    card_last4: str | None = None
    transaction_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"method": self.method}
        if self.card_last4 is not None:
            result["cardLast4"] = self.card_last4
        if self.transaction_id is not None:
            result["transactionId"] = self.transaction_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentInfo":
        return cls(
            method=data.get("method", "card"),
            card_last4=data.get("cardLast4"),
            transaction_id=data.get("transactionId"),
        )


@dataclass
class OrderSummary:
    subtotal: float
    shipping_cost: float
    tax: float
    total: float

    @classmethod
    def compute(cls, lines: list[OrderLine], shipping_method: str) -> "OrderSummary":
        """Price a list of snapshot lines for the given shipping method."""
        subtotal = _money(sum(line.price * line.quantity for line in lines))
        shipping_cost = SHIPPING_COSTS[shipping_method]
        tax = _money(subtotal * TAX_RATE)
        return cls(
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            tax=tax,
            total=_money(subtotal + shipping_cost + tax),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "shippingCost": self.shipping_cost,
            "tax": self.tax,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderSummary":
        return cls(
            subtotal=data["subtotal"],
            shipping_cost=data["shippingCost"],
            tax=data["tax"],
            total=data["total"],
        )


@dataclass
class Order:
    """A placed order: an immutable snapshot plus a mutable status."""

    id: str
    user_id: str
    order_number: str
    items: list[OrderLine]
    shipping_info: ShippingInfo
    payment_info: PaymentInfo
    order_summary: OrderSummary
    status: str = "pending"
    shipping_method: str = "standard"
    estimated_delivery: str | None = None
    tracking_number: str | None = None
    notes: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "orderNumber": self.order_number,
            "items": [line.to_dict() for line in self.items],
            "shippingInfo": self.shipping_info.to_dict(),
            "paymentInfo": self.payment_info.to_dict(),
            "orderSummary": self.order_summary.to_dict(),
            "status": self.status,
            "shippingMethod": self.shipping_method,
            "estimatedDelivery": self.estimated_delivery,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.tracking_number is not None:
            result["trackingNumber"] = self.tracking_number
        if self.notes is not None:
            result["notes"] = self.notes
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            user_id=data["userId"],
            order_number=data["orderNumber"],
            items=[OrderLine.from_dict(line) for line in data.get("items", [])],
            shipping_info=ShippingInfo.from_dict(data["shippingInfo"]),
            payment_info=PaymentInfo.from_dict(data.get("paymentInfo", {})),
            order_summary=OrderSummary.from_dict(data["orderSummary"]),
            status=data.get("status", "pending"),
            shipping_method=data.get("shippingMethod", "standard"),
            estimated_delivery=data.get("estimatedDelivery"),
            tracking_number=data.get("trackingNumber"),
            notes=data.get("notes"),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class User:
    """An account. Password material never leaves public_dict()."""

    id: str
    name: str
    email: str
    password_hash: str
    salt: str
    role: str = "user"
    created_at: str = field(default_factory=_utc_now)

    def public_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "createdAt": self.created_at,
        }

    def to_dict(self) -> dict[str, Any]:
        result = self.public_dict()
        result["passwordHash"] = self.password_hash
        result["salt"] = self.salt
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            name=data["name"],
            email=data["email"],
            password_hash=data["passwordHash"],
            salt=data["salt"],
            role=data.get("role", "user"),
            created_at=data.get("createdAt", ""),
        )


@dataclass
class Session:
    """A login session referenced by the auth cookie."""

    token: str
    user_id: str
    expires_at: str
    id: str = ""
    created_at: str = field(default_factory=_utc_now)

    def is_expired(self, now: datetime | None = None) -> bool:
        moment = now or datetime.now(timezone.utc)
        expires = datetime.fromisoformat(self.expires_at.replace("Z", "+00:00"))
        return moment >= expires

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "token": self.token,
            "userId": self.user_id,
            "expiresAt": self.expires_at,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        return cls(
            id=data.get("id", ""),
            token=data["token"],
            user_id=data["userId"],
            expires_at=data["expiresAt"],
            created_at=data.get("createdAt", ""),
        )
