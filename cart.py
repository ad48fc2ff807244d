"""
Shopping cart: one per user, created lazily, never deleted.

Every mutation recomputes `total_amount` from the stored lines; the client
never supplies prices or totals.
"""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import Field
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import get_current_user
from catalog import ProductOut, get_active_product, products_by_ids, serialize_product
from database import collection, now, serialize_doc
from errors import InsufficientStock, InvalidArgument, NotFound
from schemas import ApiModel

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])

STOCK_MESSAGE = "Not enough stock available"


# ---------- Schemas ----------

class AddToCartRequest(ApiModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class UpdateCartRequest(ApiModel):
    product_id: str
    quantity: int


class CartLineOut(ApiModel):
    product_id: str
    product: Optional[ProductOut] = None
    quantity: int
    price: float


class CartOut(ApiModel):
    id: str
    user_id: str
    items: List[CartLineOut]
    total_amount: float
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CartResponse(ApiModel):
    success: bool = True
    cart: CartOut


# ---------- Aggregate ----------

def calculate_total(items: List[dict]) -> float:
    return round(sum(item["price"] * item["quantity"] for item in items), 2)


def get_or_create_cart(user_id: str) -> dict:
    carts = collection("cart")
    stamp = now()
    try:
        return carts.find_one_and_update(
            {"user_id": user_id},
            {"$setOnInsert": {"items": [], "total_amount": 0.0, "created_at": stamp, "updated_at": stamp}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # lost an upsert race against a concurrent request for the same user
        return carts.find_one({"user_id": user_id})


def save_items(cart: dict, items: List[dict]) -> dict:
    total = calculate_total(items)
    return collection("cart").find_one_and_update(
        {"_id": cart["_id"]},
        {"$set": {"items": items, "total_amount": total, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )


def _find_line(items: List[dict], product_id: str) -> Optional[dict]:
    return next((item for item in items if item["product_id"] == product_id), None)


def add_item(user_id: str, product_id: str, quantity: int = 1) -> dict:
    if quantity < 1:
        raise InvalidArgument("Quantity must be at least 1")
    product = get_active_product(product_id)
    stock = int(product.get("stock", 0))
    if stock < quantity:
        raise InsufficientStock(product["name"], STOCK_MESSAGE)

    cart = get_or_create_cart(user_id)
    items = [dict(item) for item in cart.get("items", [])]
    product_id = str(product["_id"])
    line = _find_line(items, product_id)
    if line:
        new_quantity = line["quantity"] + quantity
        if stock < new_quantity:
            raise InsufficientStock(product["name"], STOCK_MESSAGE)
        line["quantity"] = new_quantity
    else:
        items.append({"product_id": product_id, "quantity": quantity, "price": float(product["price"])})

    logger.debug("Cart item added", user_id=user_id, product_id=product_id, quantity=quantity)
    return save_items(cart, items)


def update_item(user_id: str, product_id: str, quantity: int) -> dict:
    if quantity < 1:
        raise InvalidArgument("Quantity must be at least 1")
    product = get_active_product(product_id)
    if int(product.get("stock", 0)) < quantity:
        raise InsufficientStock(product["name"], STOCK_MESSAGE)

    cart = get_or_create_cart(user_id)
    items = [dict(item) for item in cart.get("items", [])]
    line = _find_line(items, str(product["_id"]))
    if not line:
        raise NotFound("Item not found in cart")
    line["quantity"] = quantity
    return save_items(cart, items)


def remove_item(user_id: str, product_id: str) -> dict:
    cart = get_or_create_cart(user_id)
    items = [dict(item) for item in cart.get("items", []) if item["product_id"] != product_id]
    return save_items(cart, items)


def clear_cart(user_id: str) -> dict:
    cart = get_or_create_cart(user_id)
    return save_items(cart, [])


def claim_items(cart: dict) -> Optional[dict]:
    """Empty the cart only if it still holds exactly the lines that were read.

    Returns the updated cart, or None when another request changed it first.
    """
    return collection("cart").find_one_and_update(
        {"_id": cart["_id"], "items": cart["items"]},
        {"$set": {"items": [], "total_amount": 0.0, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )


def restore_items(user_id: str, claimed: List[dict]) -> dict:
    """Put claimed lines back, keeping anything added to the cart since."""
    cart = get_or_create_cart(user_id)
    items = [dict(item) for item in cart.get("items", [])]
    for line in claimed:
        existing = _find_line(items, line["product_id"])
        if existing:
            existing["quantity"] += line["quantity"]
        else:
            items.append(dict(line))
    return save_items(cart, items)


def serialize_cart(cart: dict) -> dict:
    """Cart view with each line's product resolved; vanished products show as null."""
    out = serialize_doc(cart)
    products = products_by_ids(item["product_id"] for item in cart.get("items", []))
    lines = []
    for item in cart.get("items", []):
        product = products.get(item["product_id"])
        lines.append({
            "product_id": item["product_id"],
            "product": serialize_product(product) if product else None,
            "quantity": item["quantity"],
            "price": item["price"],
        })
    out["items"] = lines
    return out


# ---------- Routes ----------

def _user_id(user: dict) -> str:
    return str(user["_id"])


@router.get("", response_model=CartResponse)
def read_cart(user: dict = Depends(get_current_user)):
    return {"cart": serialize_cart(get_or_create_cart(_user_id(user)))}


@router.post("/add", response_model=CartResponse)
def add_to_cart(payload: AddToCartRequest, user: dict = Depends(get_current_user)):
    return {"cart": serialize_cart(add_item(_user_id(user), payload.product_id, payload.quantity))}


@router.put("/update", response_model=CartResponse)
def update_cart(payload: UpdateCartRequest, user: dict = Depends(get_current_user)):
    return {"cart": serialize_cart(update_item(_user_id(user), payload.product_id, payload.quantity))}


@router.delete("/remove/{product_id}", response_model=CartResponse)
def remove_from_cart(product_id: str, user: dict = Depends(get_current_user)):
    return {"cart": serialize_cart(remove_item(_user_id(user), product_id))}


@router.delete("/clear", response_model=CartResponse)
def empty_cart(user: dict = Depends(get_current_user)):
    return {"cart": serialize_cart(clear_cart(_user_id(user)))}
