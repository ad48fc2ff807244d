"""
Reset users and products to a small demo data set.

    DATABASE_URL=mongodb://localhost:27017 DATABASE_NAME=webshop python seed.py
"""

import structlog

import database
from auth import hash_password
from database import create_document
from logging_config import configure_logging
from schemas import Product, Role

logger = structlog.get_logger(__name__)

SAMPLE_PRODUCTS = [
    Product(name="iPhone 15 Pro", description="Latest iPhone with advanced camera system and A17 Pro chip",
            price=999.99, category="electronics", brand="Apple", stock=50, featured=True,
            images=["https://via.placeholder.com/400x400/007bff/ffffff?text=iPhone+15+Pro"],
            rating={"average": 4.8, "count": 125}),
    Product(name="Samsung Galaxy S24", description="Premium Android smartphone with AI-powered features",
            price=899.99, category="electronics", brand="Samsung", stock=30, featured=True,
            images=["https://via.placeholder.com/400x400/28a745/ffffff?text=Galaxy+S24"],
            rating={"average": 4.6, "count": 89}),
    Product(name="MacBook Air M3", description="Ultra-lightweight laptop with M3 chip and all-day battery life",
            price=1299.99, category="electronics", brand="Apple", stock=25, featured=True,
            images=["https://via.placeholder.com/400x400/6c757d/ffffff?text=MacBook+Air"],
            rating={"average": 4.9, "count": 67}),
    Product(name="Nike Air Max 270", description="Comfortable running shoes with Air Max cushioning",
            price=129.99, category="clothing", brand="Nike", stock=100,
            images=["https://via.placeholder.com/400x400/dc3545/ffffff?text=Nike+Air+Max"],
            rating={"average": 4.4, "count": 234}),
    Product(name="Adidas Ultraboost 22", description="Premium running shoes with responsive cushioning",
            price=189.99, category="clothing", brand="Adidas", stock=75,
            images=["https://via.placeholder.com/400x400/000000/ffffff?text=Ultraboost"],
            rating={"average": 4.5, "count": 156}),
    Product(name="Coffee Maker Deluxe", description="Programmable coffee maker with built-in grinder",
            price=149.99, category="home", brand="BrewMaster", stock=45,
            images=["https://via.placeholder.com/400x400/795548/ffffff?text=Coffee+Maker"]),
]

SAMPLE_USERS = [
    {
        "name": "Admin User",
        "email": "admin@webshop.com",
        "password": "admin123",
        "role": Role.ADMIN,
        "address": {"street": "123 Admin St", "city": "Admin City", "state": "AC", "zip_code": "12345", "country": "USA"},
    },
    {
        "name": "John Doe",
        "email": "john@example.com",
        "password": "password123",
        "role": Role.USER,
        "address": {"street": "456 User Ave", "city": "User City", "state": "UC", "zip_code": "67890", "country": "USA"},
    },
]


def seed() -> None:
    db = database.get_db()
    db["user"].delete_many({})
    db["product"].delete_many({})
    logger.info("Cleared existing users and products")

    database.ensure_indexes()

    for user in SAMPLE_USERS:
        create_document("user", {
            "name": user["name"],
            "email": user["email"],
            "password_hash": hash_password(user["password"]),
            "role": user["role"].value,
            "address": user["address"],
        })
    logger.info("Created users", emails=[u["email"] for u in SAMPLE_USERS])

    for product in SAMPLE_PRODUCTS:
        create_document("product", product.model_dump(mode="json"))
    logger.info("Created products", count=len(SAMPLE_PRODUCTS))


if __name__ == "__main__":
    configure_logging()
    seed()
    for user in SAMPLE_USERS:
        print(f"{user['role'].value}: {user['email']} / {user['password']}")
