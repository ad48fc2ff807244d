"""
Database Schemas for the Web Shop

Each Pydantic model represents a collection in your database.
Model name is converted to lowercase for the collection name:
- User -> "user"
- Product -> "product"
- Cart -> "cart"
- Order -> "order"

Documents are stored with snake_case keys. The HTTP layer speaks camelCase
through `ApiModel`.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for request/response bodies: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class ProductStatus(str, Enum):
    ACTIVE = "active"
    RETIRED = "retired"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Address(ApiModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, unique")
    password_hash: str = Field(..., description="HMAC-SHA256 hash of the password")
    role: Role = Field(Role.USER, description="Role of the account: user or admin")
    address: Optional[Address] = Field(None, description="Default shipping address")


class Rating(BaseModel):
    average: float = Field(0, ge=0, le=5)
    count: int = Field(0, ge=0)


class Product(BaseModel):
    name: str = Field(..., description="Product name")
    description: Optional[str] = Field(None, description="Short description")
    price: float = Field(..., ge=0, description="Unit price")
    category: str = Field(..., description="Product category")
    brand: Optional[str] = Field(None, description="Brand name")
    stock: int = Field(0, ge=0, description="Units in stock")
    images: List[str] = Field(default_factory=list, description="Image URLs")
    featured: bool = Field(False, description="Shown on the landing page")
    rating: Rating = Field(default_factory=Rating)
    status: ProductStatus = Field(ProductStatus.ACTIVE, description="Retired products are hidden from every read path")


class CartItem(BaseModel):
    product_id: str = Field(..., description="Product ID")
    quantity: int = Field(..., ge=1, description="Quantity wanted")
    price: float = Field(..., ge=0, description="Unit price when the line was added")


class Cart(BaseModel):
    user_id: str = Field(..., description="Owner, one cart per user")
    items: List[CartItem] = Field(default_factory=list)
    total_amount: float = Field(0, ge=0, description="Sum of quantity x price over items")


class OrderItem(BaseModel):
    product_id: str = Field(..., description="Product ID")
    name: str = Field(..., description="Snapshot of product name at purchase time")
    price: float = Field(..., ge=0, description="Unit price at purchase time")
    quantity: int = Field(..., ge=1, description="Quantity ordered")


class Order(BaseModel):
    order_number: str = Field(..., description="Human readable unique number")
    user_id: str = Field(..., description="ID of the user placing the order")
    items: List[OrderItem] = Field(..., description="Line items")
    shipping_address: Address
    payment_method: str
    total_amount: float = Field(..., ge=0, description="Order total")
    status: OrderStatus = Field(OrderStatus.PENDING, description="Fulfilment status")
    payment_status: PaymentStatus = Field(PaymentStatus.PENDING, description="Payment status")
