"""
MongoDB access for the Web Shop API.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; every
helper below checks through `get_db()` so endpoints answer with a clean 500
instead of an AttributeError.
"""

import math
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection

from errors import InvalidArgument, ShopError

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

MAX_PAGE_SIZE = 100
MAX_PAGE = 100_000

client: Optional[MongoClient] = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


class DatabaseUnavailable(ShopError):
    status_code = 500

    def __init__(self):
        super().__init__("Database not available")


def get_db():
    if db is None:
        raise DatabaseUnavailable()
    return db


def collection(name: str) -> Collection:
    return get_db()[name]


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Union[str, ObjectId], label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise InvalidArgument(f"Invalid {label}: {value}")


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at; returns its id."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    stamp = now()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    result = collection(collection_name).insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = collection(collection_name).find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_by_id(collection_name: str, doc_id: Union[str, ObjectId], label: str = "id") -> Optional[dict]:
    return collection(collection_name).find_one({"_id": to_object_id(doc_id, label)})


def paginate(
    collection_name: str,
    filter_dict: dict,
    sort: List[Tuple[str, int]],
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[dict], Dict[str, int]]:
    """Run a skip/limit query and build the pagination block returned by list endpoints."""
    if page < 1:
        raise InvalidArgument("page must be at least 1")
    if limit < 1:
        raise InvalidArgument("limit must be at least 1")
    if limit > MAX_PAGE_SIZE:
        raise InvalidArgument(f"limit must be at most {MAX_PAGE_SIZE}")
    if page > MAX_PAGE:
        raise InvalidArgument(f"page must be at most {MAX_PAGE}")

    coll = collection(collection_name)
    docs = list(coll.find(filter_dict).sort(sort).skip((page - 1) * limit).limit(limit))
    total = coll.count_documents(filter_dict)
    pagination = {
        "page": page,
        "pages": math.ceil(total / limit),
        "total": total,
        "limit": limit,
    }
    return docs, pagination


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    """Turn a raw document into plain JSON-able values, exposing `_id` as `id`."""
    if doc is None:
        return None
    out: Dict[str, Any] = {}
    for k, v in doc.items():
        out[k] = _serialize_value(v)
    if "_id" in out:
        out["id"] = out.pop("_id")
    return out


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def ensure_indexes() -> None:
    database = get_db()
    database["user"].create_index("email", unique=True)
    database["cart"].create_index("user_id", unique=True)
    database["order"].create_index("order_number", unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["product"].create_index([("status", ASCENDING), ("category", ASCENDING)])
