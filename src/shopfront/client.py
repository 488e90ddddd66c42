"""Python client for the shopfront API, with local mirrors of cart and auth state.

The server is authoritative. ``CartMirror`` and ``AuthMirror`` only hold what
the last response said, plus optimistic edits that ``CartSession`` rolls back
when the server rejects them.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any

import requests

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised when the API answers with ``success: false`` or a non-2xx status."""

    def __init__(self, status_code: int, message: str, error: str | None = None):
        self.status_code = status_code
        self.message = message
        self.error = error
        super().__init__(f"{status_code}: {message}")


class ShopClient:
    """Thin wrapper over the REST routes. Cookies persist on the session."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 10.0,
        session: Any | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session if session is not None else requests.Session()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._session.request(
            method, f"{self.base_url}/api{path}", timeout=self.timeout, **kwargs
        )
        try:
            payload = response.json()
        except ValueError:
            raise ApiError(response.status_code, response.text or "Invalid JSON response")

        if response.status_code >= 400 or not payload.get("success", False):
            message = payload.get("message") or f"HTTP {response.status_code}"
            logger.debug("%s %s -> %s %s", method, path, response.status_code, message)
            raise ApiError(response.status_code, message, payload.get("error"))
        return payload.get("data")

    # --- Auth ---

    def register(self, name: str, email: str, password: str) -> dict[str, Any]:
        data = self._request(
            "POST", "/auth/register", json={"name": name, "email": email, "password": password}
        )
        return data["user"]

    def login(self, email: str, password: str) -> dict[str, Any]:
        data = self._request("POST", "/auth/login", json={"email": email, "password": password})
        return data["user"]

    def logout(self) -> None:
        self._request("POST", "/auth/logout")

    def get_auth(self) -> dict[str, Any]:
        return self._request("GET", "/auth/getAuth")["user"]

    def get_profile(self, user_id: str) -> dict[str, Any]:
        return self._request("GET", f"/auth/profile/{user_id}")["user"]

    # --- Items ---

    def list_items(self) -> list[dict[str, Any]]:
        return self._request("GET", "/items/all-items")

    def get_item(self, item_id: str) -> dict[str, Any]:
        return self._request("GET", f"/items/item/{item_id}")

    def create_item(
        self,
        fields: dict[str, Any],
        image: bytes,
        filename: str = "image.png",
    ) -> dict[str, Any]:
        data = self._request(
            "POST",
            "/items/create",
            data={k: str(v) for k, v in fields.items()},
            files={"image": (filename, image)},
        )
        return data["item"]

    # --- Cart ---

    def get_cart(self) -> dict[str, Any]:
        return self._request("GET", "/cart")

    def get_cart_summary(self) -> dict[str, Any]:
        return self._request("GET", "/cart/summary")

    def add_to_cart(self, item_id: str, quantity: int = 1) -> dict[str, Any]:
        return self._request("POST", "/cart/add", json={"itemId": item_id, "quantity": quantity})

    def update_cart_item(self, item_id: str, quantity: int) -> dict[str, Any]:
        return self._request("PUT", f"/cart/update/{item_id}", json={"quantity": quantity})

    def remove_from_cart(self, item_id: str) -> dict[str, Any]:
        return self._request("DELETE", f"/cart/remove/{item_id}")

    def clear_cart(self) -> dict[str, Any]:
        return self._request("DELETE", "/cart/clear")

    # --- Orders ---

    def create_order(
        self,
        shipping_info: dict[str, Any],
        payment_info: dict[str, Any] | None = None,
        shipping_method: str = "standard",
        direct_items: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "shippingInfo": shipping_info,
            "paymentInfo": payment_info or {"method": "card"},
            "shippingMethod": shipping_method,
            "useCart": direct_items is None,
        }
        if direct_items is not None:
            body["directItems"] = direct_items
        return self._request("POST", "/orders", json=body)

    def list_orders(
        self, page: int = 1, limit: int = 10, status: str | None = None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        return self._request("GET", "/orders", params=params)

    def get_order(self, order_id: str) -> dict[str, Any]:
        return self._request("GET", f"/orders/{order_id}")["order"]

    def get_order_summary(self) -> dict[str, Any]:
        return self._request("GET", "/orders/summary")["summary"]

    def cancel_order(self, order_id: str) -> dict[str, Any]:
        return self._request("PUT", f"/orders/{order_id}/cancel")["order"]

    def update_order_status(
        self,
        order_id: str,
        status: str,
        tracking_number: str | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"status": status}
        if tracking_number:
            body["trackingNumber"] = tracking_number
        if notes:
            body["notes"] = notes
        return self._request("PUT", f"/orders/{order_id}/status", json=body)["order"]


@dataclass
class CartMirror:
    """Local copy of the cart used for optimistic display."""

    items: list[dict[str, Any]] = field(default_factory=list)
    total_items: int = 0
    total_amount: float = 0.0
    is_loading: bool = False
    error: str | None = None

    def _recount(self) -> None:
        self.total_items = sum(line["quantity"] for line in self.items)
        self.total_amount = round(sum(line["price"] * line["quantity"] for line in self.items), 2)

    def load(self, cart: dict[str, Any]) -> None:
        """Replace local state with a cart payload from the server."""
        self.items = [dict(line) for line in cart.get("items", [])]
        self.total_items = cart.get("totalItems", 0)
        self.total_amount = cart.get("totalAmount", 0.0)
        self.is_loading = False
        self.error = None

    def apply_add(self, item_id: str, quantity: int, price: float) -> None:
        for line in self.items:
            if line["itemId"] == item_id:
                line["quantity"] += quantity
                break
        else:
            self.items.append({"itemId": item_id, "quantity": quantity, "price": price})
        self._recount()

    def apply_update(self, item_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.apply_remove(item_id)
            return
        for line in self.items:
            if line["itemId"] == item_id:
                line["quantity"] = quantity
        self._recount()

    def apply_remove(self, item_id: str) -> None:
        self.items = [line for line in self.items if line["itemId"] != item_id]
        self._recount()

    def apply_clear(self) -> None:
        self.items = []
        self._recount()

    def fail(self, message: str) -> None:
        self.is_loading = False
        self.error = message

    def snapshot(self) -> dict[str, Any]:
        return {
            "items": copy.deepcopy(self.items),
            "totalItems": self.total_items,
            "totalAmount": self.total_amount,
        }

    def restore(self, snapshot: dict[str, Any]) -> None:
        self.items = copy.deepcopy(snapshot["items"])
        self.total_items = snapshot["totalItems"]
        self.total_amount = snapshot["totalAmount"]


@dataclass
class AuthMirror:
    user: dict[str, Any] | None = None
    error: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def set_user(self, user: dict[str, Any] | None) -> None:
        self.user = user
        self.error = None


class CartSession:
    """Applies cart edits locally first, then confirms them with the server."""

    def __init__(self, client: ShopClient, cart: CartMirror | None = None, auth: AuthMirror | None = None):
        self.client = client
        self.cart = cart or CartMirror()
        self.auth = auth or AuthMirror()

    def login(self, email: str, password: str) -> bool:
        try:
            self.auth.set_user(self.client.login(email, password))
        except ApiError as e:
            self.auth.error = e.message
            return False
        self.refresh()
        return True

    def logout(self) -> None:
        self.client.logout()
        self.auth.set_user(None)
        self.cart.load({})

    def refresh(self) -> None:
        self.cart.is_loading = True
        try:
            self.cart.load(self.client.get_cart())
        except ApiError as e:
            self.cart.fail(e.message)
        except requests.RequestException as e:
            self.cart.fail(str(e))

    def _optimistic(self, local_edit, remote_call) -> bool:
        before = self.cart.snapshot()
        local_edit()
        self.cart.is_loading = True
        try:
            self.cart.load(remote_call())
        except ApiError as e:
            self.cart.restore(before)
            self.cart.fail(e.message)
            return False
        except requests.RequestException as e:
            self.cart.restore(before)
            self.cart.fail(str(e))
            return False
        return True

    def add(self, item_id: str, quantity: int = 1, price: float = 0.0) -> bool:
        return self._optimistic(
            lambda: self.cart.apply_add(item_id, quantity, price),
            lambda: self.client.add_to_cart(item_id, quantity),
        )

    def update(self, item_id: str, quantity: int) -> bool:
        return self._optimistic(
            lambda: self.cart.apply_update(item_id, quantity),
            lambda: self.client.update_cart_item(item_id, quantity),
        )

    def remove(self, item_id: str) -> bool:
        return self._optimistic(
            lambda: self.cart.apply_remove(item_id),
            lambda: self.client.remove_from_cart(item_id),
        )

    def clear(self) -> bool:
        return self._optimistic(self.cart.apply_clear, self.client.clear_cart)
