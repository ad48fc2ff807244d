"""Product catalog: public queries and admin CRUD with soft delete."""

import re
from typing import Dict, Iterable, List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import Field
from pydantic.alias_generators import to_snake
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from auth import require_admin
from database import collection, create_document, find_by_id, now, paginate, serialize_doc, to_object_id
from errors import InvalidArgument, NotFound
from schemas import ApiModel, ProductStatus, Rating

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

ACTIVE = {"status": ProductStatus.ACTIVE.value}


# ---------- Schemas ----------

class ProductIn(ApiModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1)
    brand: Optional[str] = None
    stock: int = Field(0, ge=0)
    images: List[str] = Field(default_factory=list)
    featured: bool = False
    rating: Rating = Field(default_factory=Rating)
    status: ProductStatus = ProductStatus.ACTIVE


class ProductUpdate(ApiModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1)
    brand: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    images: Optional[List[str]] = None
    featured: Optional[bool] = None
    rating: Optional[Rating] = None
    status: Optional[ProductStatus] = None


class ProductOut(ProductIn):
    id: str
    is_active: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Pagination(ApiModel):
    page: int
    pages: int
    total: int
    limit: int


class ProductListResponse(ApiModel):
    success: bool = True
    products: List[ProductOut]
    pagination: Pagination


class ProductResponse(ApiModel):
    success: bool = True
    product: ProductOut


class ValuesResponse(ApiModel):
    success: bool = True
    categories: Optional[List[str]] = None
    brands: Optional[List[str]] = None


class MessageResponse(ApiModel):
    success: bool = True
    message: str


# ---------- Helpers ----------

def serialize_product(doc: dict) -> dict:
    out = serialize_doc(doc)
    out["is_active"] = doc.get("status") == ProductStatus.ACTIVE.value
    return out


def get_active_product(product_id: str) -> dict:
    """Fetch a product that can still be sold, or raise NotFound."""
    product = find_by_id("product", product_id, label="product id")
    if not product or product.get("status") != ProductStatus.ACTIVE.value:
        raise NotFound("Product not found")
    return product


def products_by_ids(product_ids: Iterable[str]) -> Dict[str, dict]:
    """Resolve product ids in one round trip; unknown ids are absent from the result."""
    ids = [to_object_id(pid, "product id") for pid in set(product_ids)]
    if not ids:
        return {}
    return {str(p["_id"]): p for p in collection("product").find({"_id": {"$in": ids}})}


def build_filter(
    category: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    search: Optional[str] = None,
) -> dict:
    query = dict(ACTIVE)
    if category:
        query["category"] = category
    if brand:
        query["brand"] = brand
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{field: pattern} for field in ("name", "description", "brand", "category")]
    return query


SORT_FIELD = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def sort_key(field: str) -> str:
    if not SORT_FIELD.match(field):
        raise InvalidArgument(f"Invalid sort field: {field}")
    if field in ("id", "_id"):
        return "_id"
    if field == "isActive":
        return "status"
    return to_snake(field)


# ---------- Routes ----------

@router.get("", response_model=ProductListResponse)
def list_products(
    page: int = 1,
    limit: int = 12,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    search: Optional[str] = None,
    sort: str = "createdAt",
    order: str = "desc",
):
    if order not in ("asc", "desc"):
        raise InvalidArgument("order must be 'asc' or 'desc'")
    query = build_filter(category, brand, min_price, max_price, search)
    direction = DESCENDING if order == "desc" else ASCENDING
    docs, pagination = paginate("product", query, [(sort_key(sort), direction)], page, limit)
    return {"products": [serialize_product(d) for d in docs], "pagination": pagination}


# Must be registered before /{product_id}
@router.get("/meta/categories", response_model=ValuesResponse, response_model_exclude_none=True)
def list_categories():
    return {"categories": sorted(v for v in collection("product").distinct("category", ACTIVE) if v)}


@router.get("/meta/brands", response_model=ValuesResponse, response_model_exclude_none=True)
def list_brands():
    return {"brands": sorted(v for v in collection("product").distinct("brand", ACTIVE) if v)}


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(product_id: str):
    return {"product": serialize_product(get_active_product(product_id))}


@router.post("", status_code=201, response_model=ProductResponse)
def create_product(payload: ProductIn, admin: dict = Depends(require_admin)):
    pid = create_document("product", payload.model_dump(mode="json"))
    logger.info("Product created", product_id=pid, admin_id=str(admin["_id"]))
    return {"product": serialize_product(find_by_id("product", pid))}


@router.put("/{product_id}", response_model=ProductResponse)
def update_product(product_id: str, payload: ProductUpdate, admin: dict = Depends(require_admin)):
    changes = payload.model_dump(mode="json", exclude_unset=True)
    if not changes:
        raise InvalidArgument("No fields to update")
    if any(value is None for key, value in changes.items() if key not in ("description", "brand")):
        raise InvalidArgument("Only description and brand may be cleared")
    changes["updated_at"] = now()
    product = collection("product").find_one_and_update(
        {"_id": to_object_id(product_id, "product id")},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if not product:
        raise NotFound("Product not found")
    logger.info("Product updated", product_id=product_id, fields=sorted(changes))
    return {"product": serialize_product(product)}


@router.delete("/{product_id}", response_model=MessageResponse)
def delete_product(product_id: str, admin: dict = Depends(require_admin)):
    product = collection("product").find_one_and_update(
        {"_id": to_object_id(product_id, "product id")},
        {"$set": {"status": ProductStatus.RETIRED.value, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not product:
        raise NotFound("Product not found")
    logger.info("Product retired", product_id=product_id)
    return {"message": "Product deleted successfully"}
