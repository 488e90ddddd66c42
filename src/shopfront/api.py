"""FastAPI REST API for the shopfront catalog, cart and orders."""

import logging
from datetime import timedelta
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .accounts import AccountStore
from .cart_store import CartStore
from .catalog import ItemCatalog, validate_item_fields
from .documents import DocumentStore, open_document_store
from .errors import (
    AuthenticationError,
    ImageUploadError,
    InvalidFieldError,
    InvalidStateError,
    NotFoundError,
    ShopError,
    StorageError,
    UpstreamError,
)
from .models import Cart, Order, PaymentInfo, Session, ShippingInfo, User
from .order_ledger import DirectItem, OrderLedger
from .settings import Settings, load_settings
from .uploads import ImageUploader, LocalImageUploader, open_image_uploader

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class ApiModel(BaseModel):
    """Request bodies use camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(ApiModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str


class LoginRequest(ApiModel):
    email: EmailStr
    password: str


class AddToCartRequest(ApiModel):
    item_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1)


class UpdateCartItemRequest(ApiModel):
    quantity: int = Field(..., description="New quantity; 0 or less removes the line")


class ShippingInfoSchema(ApiModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = "USA"

    def to_model(self) -> ShippingInfo:
        return ShippingInfo(
            full_name=self.full_name,
            email=str(self.email),
            phone=self.phone,
            address=self.address,
            city=self.city,
            state=self.state,
            zip_code=self.zip_code,
            country=self.country,
        )


class PaymentInfoSchema(ApiModel):
    method: str = "card"
    card_number: Optional[str] = Field(
        None, description="Only the last four digits are kept"
    )
    card_last4: Optional[str] = Field(None, pattern=r"^\d{4}$")

    def to_model(self) -> PaymentInfo:
        last4 = self.card_last4
        if self.card_number:
            digits = "".join(ch for ch in self.card_number if ch.isdigit())
            if len(digits) >= 4:
                last4 = digits[-4:]
        return PaymentInfo(method=self.method, card_last4=last4)


class DirectItemSchema(ApiModel):
    item_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1)


class CreateOrderRequest(ApiModel):
    shipping_info: ShippingInfoSchema
    payment_info: PaymentInfoSchema = Field(default_factory=PaymentInfoSchema)
    shipping_method: str = "standard"
    use_cart: bool = True
    direct_items: list[DirectItemSchema] = Field(default_factory=list)


class UpdateOrderStatusRequest(ApiModel):
    status: str
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


# --- Helper Functions ---


def get_settings() -> Settings:
    return load_settings()


def get_document_store() -> DocumentStore:
    """Get the configured document store."""
    return open_document_store(get_settings())


def get_catalog() -> ItemCatalog:
    return ItemCatalog(get_document_store())


def get_cart_store() -> CartStore:
    store = get_document_store()
    return CartStore(store, ItemCatalog(store))


def get_order_ledger() -> OrderLedger:
    store = get_document_store()
    catalog = ItemCatalog(store)
    return OrderLedger(store, catalog, CartStore(store, catalog))


def get_account_store() -> AccountStore:
    settings = get_settings()
    return AccountStore(
        get_document_store(), session_ttl=timedelta(hours=settings.session_ttl_hours)
    )


def get_image_uploader() -> ImageUploader:
    return open_image_uploader(get_settings())


def current_user(request: Request) -> User:
    """Resolve the caller from the session cookie."""
    token = request.cookies.get(get_settings().session_cookie)
    return get_account_store().authenticate(token)


def _ok(data: Any, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    return body


def _set_session_cookie(response: Response, session: Session) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie,
        value=session.token,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def _with_items(lines: list[dict[str, Any]], catalog: ItemCatalog) -> list[dict[str, Any]]:
    """Attach the current catalog view of each line's item (None if it's gone).

    Each distinct item id is looked up once.
    """
    briefs: dict[str, dict[str, Any] | None] = {}
    for line in lines:
        item_id = line["itemId"]
        if item_id not in briefs:
            item = catalog.find(item_id)
            briefs[item_id] = item.brief() if item else None
        line["item"] = briefs[item_id]
    return lines


def cart_to_payload(cart: Cart, catalog: ItemCatalog) -> dict[str, Any]:
    data = cart.to_dict()
    _with_items(data["items"], catalog)
    return data


def order_to_payload(order: Order, catalog: ItemCatalog) -> dict[str, Any]:
    data = order.to_dict()
    _with_items(data["items"], catalog)
    return data


# --- FastAPI App ---


app = FastAPI(
    title="shopfront API",
    description="REST API for the item catalog, shopping cart and orders",
    version=__version__,
)

_startup_settings = load_settings()

app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(
        {
            _startup_settings.client_url,
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
    ),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Exception Handlers ---


# Map exception types to HTTP status codes; the closest entry in the MRO wins
ERROR_STATUS_CODES: dict[type, int] = {
    NotFoundError: 404,
    InvalidFieldError: 400,
    InvalidStateError: 400,
    ImageUploadError: 400,
    StorageError: 500,
    UpstreamError: 500,
    AuthenticationError: 401,
}


def status_code_for(exc: ShopError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


def _error(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "message": message}
    if error:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError) -> JSONResponse:
    """Map ShopError subclasses to appropriate HTTP responses."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _error(status_code, str(exc), type(exc).__name__)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer schema failures with 400 and the offending field names."""
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        name = ".".join(loc) or "body"
        if name not in fields:
            fields.append(name)
    return _error(400, f"Missing or invalid fields: {', '.join(fields)}", "RequestValidationError")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal Server Error")


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """Health check endpoint. Reports whether the document store answers."""
    try:
        return _ok({"status": "ok", "itemCount": get_catalog().count()})
    except ShopError as e:
        return _ok({"status": "error", "detail": str(e)})


# --- Auth Endpoints ---


@app.post("/api/auth/register", status_code=201)
def register(request: RegisterRequest, response: Response):
    """Create an account and start a session."""
    user, session = get_account_store().register(
        name=request.name, email=str(request.email), password=request.password
    )
    _set_session_cookie(response, session)
    return _ok({"user": user.public_dict()}, "Registered successfully")


@app.post("/api/auth/login")
def login(request: LoginRequest, response: Response):
    user, session = get_account_store().login(str(request.email), request.password)
    _set_session_cookie(response, session)
    return _ok({"user": user.public_dict()}, "Logged in successfully")


@app.post("/api/auth/logout")
def logout(request: Request, response: Response):
    cookie = get_settings().session_cookie
    get_account_store().logout(request.cookies.get(cookie))
    response.delete_cookie(cookie)
    return _ok(None, "Logged out successfully")


@app.get("/api/auth/getAuth")
def get_auth(user: User = Depends(current_user)):
    return _ok({"user": user.public_dict()})


@app.get("/api/auth/profile/{user_id}")
def get_profile(user_id: str, user: User = Depends(current_user)):
    profile = get_account_store().get_user(user_id)
    return _ok({"user": profile.public_dict()})


# --- Item Endpoints ---


@app.post("/api/items/create", status_code=201)
def create_item(
    title: str = Form(...),
    description: str = Form(...),
    price: float = Form(...),
    total_price: float = Form(..., alias="totalPrice"),
    quantity: int = Form(...),
    discounted: float = Form(0.0),
    image: Optional[UploadFile] = File(None),
    user: User = Depends(current_user),
):
    """
    Create a catalog item from a multipart form.

    Fields are validated before the image is uploaded so that rejected
    requests don't leave orphaned images behind.
    """
    if image is None or not image.filename:
        raise InvalidFieldError({"image": "file is required"}, "Image file is required")

    problems = validate_item_fields(
        title, description, image.filename, price, discounted, total_price, quantity
    )
    if problems:
        raise InvalidFieldError(problems)

    image_url = get_image_uploader().upload(image.file.read(), image.filename)
    item = get_catalog().create(
        title=title,
        description=description,
        image=image_url,
        price=price,
        discounted=discounted,
        total_price=total_price,
        quantity=quantity,
    )
    return _ok({"item": item.to_dict()}, "Item created successfully")


@app.get("/api/items/all-items")
def list_items():
    return _ok([item.to_dict() for item in get_catalog().list_items()])


@app.get("/api/items/item/{item_id}")
def get_item(item_id: str):
    return _ok(get_catalog().get(item_id).to_dict())


@app.get("/images/{name}")
def get_image(name: str):
    """Serve images stored by the local uploader."""
    uploader = get_image_uploader()
    path = uploader.resolve(name) if isinstance(uploader, LocalImageUploader) else None
    if path is None:
        raise HTTPException(status_code=404, detail=f"Image not found: {name}")
    return FileResponse(path)


# --- Cart Endpoints ---


@app.get("/api/cart")
def get_cart(user: User = Depends(current_user)):
    carts = get_cart_store()
    cart = carts.get(user.id)
    if cart is None or not cart.items:
        return _ok(cart_to_payload(cart or Cart.empty(user.id), carts.catalog), "Cart is empty")
    return _ok(cart_to_payload(cart, carts.catalog), "Cart retrieved successfully")


@app.get("/api/cart/summary")
def get_cart_summary(user: User = Depends(current_user)):
    """Totals only, for badges."""
    return _ok(get_cart_store().summary(user.id))


@app.post("/api/cart/add")
def add_to_cart(request: AddToCartRequest, user: User = Depends(current_user)):
    carts = get_cart_store()
    cart = carts.add_item(user.id, request.item_id, request.quantity)
    return _ok(cart_to_payload(cart, carts.catalog), "Item added to cart successfully")


@app.put("/api/cart/update/{item_id}")
def update_cart_item(
    item_id: str, request: UpdateCartItemRequest, user: User = Depends(current_user)
):
    carts = get_cart_store()
    cart = carts.update_quantity(user.id, item_id, request.quantity)
    return _ok(cart_to_payload(cart, carts.catalog), "Cart item updated successfully")


@app.delete("/api/cart/remove/{item_id}")
def remove_from_cart(item_id: str, user: User = Depends(current_user)):
    carts = get_cart_store()
    cart = carts.remove_item(user.id, item_id)
    return _ok(cart_to_payload(cart, carts.catalog), "Item removed from cart successfully")


@app.delete("/api/cart/clear")
def clear_cart(user: User = Depends(current_user)):
    carts = get_cart_store()
    cart = carts.clear(user.id)
    return _ok(cart_to_payload(cart, carts.catalog), "Cart cleared successfully")


# --- Order Endpoints ---


@app.post("/api/orders", status_code=201)
def create_order(request: CreateOrderRequest, user: User = Depends(current_user)):
    """
    Place an order from the caller's cart (default) or from directItems.

    ``cartCleared`` is false when the order was stored but emptying the
    cart afterwards failed.
    """
    ledger = get_order_ledger()
    placed = ledger.create_order(
        user_id=user.id,
        shipping_info=request.shipping_info.to_model(),
        payment_info=request.payment_info.to_model(),
        shipping_method=request.shipping_method,
        use_cart=request.use_cart,
        direct_items=[DirectItem(d.item_id, d.quantity) for d in request.direct_items],
    )
    return _ok(
        {
            "order": order_to_payload(placed.order, ledger.catalog),
            "orderNumber": placed.order.order_number,
            "cartCleared": placed.cart_cleared,
        },
        "Order created successfully",
    )


@app.get("/api/orders")
def list_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status: Optional[str] = Query(default=None),
    user: User = Depends(current_user),
):
    ledger = get_order_ledger()
    orders, pagination = ledger.list_orders(user.id, page=page, limit=limit, status=status)
    return _ok(
        {
            "orders": [order_to_payload(o, ledger.catalog) for o in orders],
            "pagination": pagination,
        }
    )


@app.get("/api/orders/summary")
def get_order_summary(user: User = Depends(current_user)):
    return _ok({"summary": get_order_ledger().summary(user.id)})


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: User = Depends(current_user)):
    ledger = get_order_ledger()
    order = ledger.get_order(user.id, order_id)
    return _ok({"order": order_to_payload(order, ledger.catalog)})


@app.put("/api/orders/{order_id}/status")
def update_order_status(
    order_id: str, request: UpdateOrderStatusRequest, user: User = Depends(current_user)
):
    """Administrative status change. Only legal forward transitions are accepted."""
    ledger = get_order_ledger()
    order = ledger.update_status(
        order_id,
        request.status,
        tracking_number=request.tracking_number,
        notes=request.notes,
    )
    return _ok({"order": order_to_payload(order, ledger.catalog)}, "Order status updated successfully")


@app.put("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, user: User = Depends(current_user)):
    ledger = get_order_ledger()
    order = ledger.cancel(user.id, order_id)
    return _ok({"order": order_to_payload(order, ledger.catalog)}, "Order cancelled successfully")
