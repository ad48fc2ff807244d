from uuid import uuid4

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import database
from auth import create_token, hash_password
from database import create_document
from schemas import Product, Role


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    """Swap the real database for an in-memory one for every test."""
    db = mongomock.MongoClient()["webshop_test"]
    monkeypatch.setattr(database, "db", db)
    database.ensure_indexes()
    yield db


@pytest.fixture()
def client():
    from main import app

    return TestClient(app)


@pytest.fixture()
def make_user():
    def _make(name="Jane Buyer", role=Role.USER, email=None, password="secret123"):
        uid = create_document("user", {
            "name": name,
            "email": email or f"{uuid4().hex[:10]}@example.com",
            "password_hash": hash_password(password),
            "role": role.value,
        })
        return uid, {"Authorization": f"Bearer {create_token(uid)}"}

    return _make


@pytest.fixture()
def user(make_user):
    return make_user()


@pytest.fixture()
def other_user(make_user):
    return make_user(name="Otto Other")


@pytest.fixture()
def admin(make_user):
    return make_user(name="Ada Admin", role=Role.ADMIN)


@pytest.fixture()
def make_product():
    def _make(name="Widget", price=10.0, stock=5, category="gadgets", **fields):
        product = Product(name=name, price=price, stock=stock, category=category, **fields)
        return create_document("product", product.model_dump(mode="json"))

    return _make


@pytest.fixture()
def stock_of(mongo):
    def _stock(product_id):
        return mongo["product"].find_one({"_id": ObjectId(product_id)})["stock"]

    return _stock
