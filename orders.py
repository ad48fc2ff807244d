"""
Orders: checkout (cart -> order), order queries and admin status changes.

Checkout keeps cart, stock and orders consistent without a multi-document
transaction: the cart's lines are claimed first, stock is reserved with
conditional decrements, the order is inserted last, and any failure on the way
gives the reserved units and the claimed lines back.
"""

import secrets
import time
from typing import Dict, List, Optional, Tuple, Type

import structlog
from bson import ObjectId
from fastapi import APIRouter, Depends
from pydantic import EmailStr, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import get_current_user, is_admin, require_admin
from cart import claim_items, restore_items
from catalog import Pagination, products_by_ids
from database import collection, create_document, find_by_id, now, paginate, serialize_doc, to_object_id
from errors import InsufficientStock, InvalidArgument, InvalidState, NotFound, ShopError, Unauthorized
from schemas import Address, ApiModel, OrderStatus, PaymentStatus, ProductStatus

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

MAX_ORDER_NUMBER_ATTEMPTS = 5

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING, PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}


class OrderNumberExhausted(ShopError):
    status_code = 500


# ---------- Schemas ----------

class CheckoutRequest(ApiModel):
    shipping_address: Address
    payment_method: str = Field(..., min_length=1)


class StatusUpdateRequest(ApiModel):
    status: str


class PaymentUpdateRequest(ApiModel):
    payment_status: str


class OrderItemOut(ApiModel):
    product_id: str
    name: str
    price: float
    quantity: int


class OrderOwner(ApiModel):
    id: str
    name: str
    email: EmailStr


class OrderOut(ApiModel):
    id: str
    order_number: str
    user_id: str
    user: Optional[OrderOwner] = None
    items: List[OrderItemOut]
    shipping_address: Address
    payment_method: str
    total_amount: float
    status: OrderStatus
    payment_status: PaymentStatus
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class OrderResponse(ApiModel):
    success: bool = True
    order: OrderOut


class OrderListResponse(ApiModel):
    success: bool = True
    orders: List[OrderOut]
    pagination: Pagination


# ---------- Checkout ----------

def generate_order_number() -> str:
    """`ORD-<epoch millis>-<8 hex chars>`; the unique index on order_number is the real guarantee."""
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(4).upper()}"


def reserve_stock(items: List[dict]) -> List[Tuple[ObjectId, int]]:
    """Decrement stock for every line, all or nothing.

    Each decrement only matches while enough stock remains, so two checkouts
    racing for the last units cannot both succeed.
    """
    products = collection("product")
    reserved = []
    for item in items:
        product_id = ObjectId(item["product_id"])
        result = products.update_one(
            {"_id": product_id, "status": ProductStatus.ACTIVE.value, "stock": {"$gte": item["quantity"]}},
            {"$inc": {"stock": -item["quantity"]}, "$set": {"updated_at": now()}},
        )
        if result.matched_count == 0:
            release_stock(reserved)
            raise InsufficientStock(item["name"])
        reserved.append((product_id, item["quantity"]))
    return reserved


def release_stock(reserved: List[Tuple[ObjectId, int]]) -> None:
    if not reserved:
        return
    products = collection("product")
    for product_id, quantity in reserved:
        products.update_one({"_id": product_id}, {"$inc": {"stock": quantity}, "$set": {"updated_at": now()}})
    logger.warning("Stock reservation released", products=[str(pid) for pid, _ in reserved])


def insert_order(order: dict) -> str:
    for attempt in range(1, MAX_ORDER_NUMBER_ATTEMPTS + 1):
        order["order_number"] = generate_order_number()
        try:
            return create_document("order", order)
        except DuplicateKeyError:
            logger.warning("Order number collision", order_number=order["order_number"], attempt=attempt)
    raise OrderNumberExhausted("Could not allocate a unique order number")


def snapshot_items(cart: dict) -> List[dict]:
    """Validate every cart line against the live catalog and copy what the order keeps."""
    products = products_by_ids(item["product_id"] for item in cart["items"])
    items = []
    for line in cart["items"]:
        product = products.get(line["product_id"])
        if not product or product.get("status") != ProductStatus.ACTIVE.value:
            raise NotFound(f"Product no longer available: {line['product_id']}")
        if int(product.get("stock", 0)) < line["quantity"]:
            raise InsufficientStock(product["name"])
        items.append({
            "product_id": line["product_id"],
            "name": product["name"],
            "price": line["price"],
            "quantity": line["quantity"],
        })
    return items


def place_order(user_id: str, shipping_address: dict, payment_method: str) -> dict:
    cart = collection("cart").find_one({"user_id": user_id})
    if not cart or not cart.get("items"):
        raise InvalidState("Cart is empty")

    # the claim empties the cart, so a second submit of the same cart finds nothing to order
    if claim_items(cart) is None:
        raise InvalidState("Cart changed during checkout, please retry")

    try:
        items = snapshot_items(cart)
        reserved = reserve_stock(items)
        try:
            order_id = insert_order({
                "user_id": user_id,
                "items": items,
                "shipping_address": shipping_address,
                "payment_method": payment_method,
                "total_amount": cart.get("total_amount", 0.0),
                "status": OrderStatus.PENDING.value,
                "payment_status": PaymentStatus.PENDING.value,
            })
        except Exception:
            release_stock(reserved)
            raise
    except Exception:
        restore_items(user_id, cart["items"])
        raise

    order = find_by_id("order", order_id)
    logger.info(
        "Order placed",
        order_id=order_id,
        order_number=order["order_number"],
        user_id=user_id,
        total_amount=order["total_amount"],
        lines=len(items),
    )
    return order


# ---------- Status changes ----------

def _change(order_id: str, field: str, value: str, enum_cls: Type, transitions: Dict, label: str) -> dict:
    try:
        target = enum_cls(value)
    except ValueError:
        raise InvalidArgument(f"Invalid {label}: {value}")

    order = find_by_id("order", order_id, label="order id")
    if not order:
        raise NotFound("Order not found")
    current = enum_cls(order[field])
    if target == current:
        return order
    if target not in transitions[current]:
        raise InvalidArgument(f"Cannot change {label} from {current.value} to {target.value}")

    updated = collection("order").find_one_and_update(
        {"_id": order["_id"], field: current.value},
        {"$set": {field: target.value, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise InvalidState("Order was modified concurrently, please retry")
    logger.info("Order updated", order_id=order_id, field=field, old=current.value, new=target.value)
    return updated


def change_status(order_id: str, status: str) -> dict:
    return _change(order_id, "status", status, OrderStatus, ORDER_TRANSITIONS, "status")


def change_payment_status(order_id: str, payment_status: str) -> dict:
    return _change(order_id, "payment_status", payment_status, PaymentStatus, PAYMENT_TRANSITIONS, "payment status")


# ---------- Queries ----------

def get_order_for(order_id: str, user: dict) -> dict:
    order = find_by_id("order", order_id, label="order id")
    if not order:
        raise NotFound("Order not found")
    if order["user_id"] != str(user["_id"]) and not is_admin(user):
        raise Unauthorized("Not authorized to view this order")
    return order


def attach_owners(orders: List[dict]) -> List[dict]:
    user_ids = {to_object_id(o["user_id"], "user id") for o in orders}
    owners = {}
    if user_ids:
        for u in collection("user").find({"_id": {"$in": list(user_ids)}}, {"name": 1, "email": 1}):
            owners[str(u["_id"])] = {"id": str(u["_id"]), "name": u["name"], "email": u["email"]}
    out = []
    for order in orders:
        doc = serialize_doc(order)
        doc["user"] = owners.get(order["user_id"])
        out.append(doc)
    return out


# ---------- Routes ----------

@router.post("", status_code=201, response_model=OrderResponse)
def create_order(payload: CheckoutRequest, user: dict = Depends(get_current_user)):
    order = place_order(str(user["_id"]), payload.shipping_address.model_dump(), payload.payment_method)
    return {"order": serialize_doc(order)}


@router.get("/my-orders", response_model=OrderListResponse)
def my_orders(page: int = 1, limit: int = 10, user: dict = Depends(get_current_user)):
    docs, pagination = paginate("order", {"user_id": str(user["_id"])}, [("created_at", DESCENDING)], page, limit)
    return {"orders": [serialize_doc(d) for d in docs], "pagination": pagination}


@router.get("", response_model=OrderListResponse)
def list_orders(page: int = 1, limit: int = 10, status: Optional[str] = None, admin: dict = Depends(require_admin)):
    query = {}
    if status:
        try:
            query["status"] = OrderStatus(status).value
        except ValueError:
            raise InvalidArgument(f"Invalid status: {status}")
    docs, pagination = paginate("order", query, [("created_at", DESCENDING)], page, limit)
    return {"orders": attach_owners(docs), "pagination": pagination}


@router.get("/{order_id}", response_model=OrderResponse)
def read_order(order_id: str, user: dict = Depends(get_current_user)):
    return {"order": serialize_doc(get_order_for(order_id, user))}


@router.put("/{order_id}/status", response_model=OrderResponse)
def update_status(order_id: str, payload: StatusUpdateRequest, admin: dict = Depends(require_admin)):
    return {"order": serialize_doc(change_status(order_id, payload.status))}


@router.put("/{order_id}/payment", response_model=OrderResponse)
def update_payment(order_id: str, payload: PaymentUpdateRequest, admin: dict = Depends(require_admin)):
    return {"order": serialize_doc(change_payment_status(order_id, payload.payment_status))}
