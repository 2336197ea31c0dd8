"""
Database Schemas

MongoDB collection schemas as Pydantic models.
These schemas are used to build documents before they are persisted.

Each Pydantic model represents a collection in the database.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- Product -> "product" collection
- Cart -> "cart" collection
- Order -> "order" collection

References between collections (cart items, order lines, favorites) are plain
ObjectIds and are resolved at read time; nothing here embeds another
collection's documents.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)


class User(Document):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: Optional[str] = Field(None, description="Password hash (absent for Google users)")
    profilePic: str = Field("", description="Avatar URL")
    isAdmin: bool = Field(False, description="Admin flag")
    favorites: List[ObjectId] = Field(default_factory=list, description="Favorited product ids")


class Review(Document):
    """Embedded in Product.reviews, newest first."""
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    user: ObjectId
    name: str = "Anonymous"
    rating: float
    comment: str = ""
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)


class Product(Document):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., description="Product name")
    description: str = Field(..., description="Product description")
    category: str = Field(..., description="Product category")
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    image: Optional[Any] = Field(None, description="Image URL or {data, contentType}")
    price: float = Field(..., ge=0, description="Unit price")
    countInStock: int = Field(0, ge=0, description="Units in stock")
    rating: float = Field(0, description="Mean review rating, 0 without reviews")
    numReviews: int = Field(0, ge=0, description="Number of reviews")
    reviews: List[Review] = Field(default_factory=list)


class CartItem(Document):
    product: ObjectId
    quantity: int = Field(..., ge=1)


class Cart(Document):
    """
    Carts collection schema
    Collection name: "cart" (one document per user)
    """
    user: ObjectId
    items: List[CartItem] = Field(default_factory=list)


class OrderItem(Document):
    product: ObjectId
    name: str
    qty: int
    price: float
    image: Optional[Any] = Field(None, description="Product image copied at order time")


class ShippingAddress(BaseModel):
    address: str
    city: str
    postalCode: str
    country: str


class Order(Document):
    """
    Orders collection schema
    Collection name: "order"
    """
    user: ObjectId
    orderItems: List[OrderItem]
    shippingAddress: Dict[str, Any]
    paymentMethod: str
    totalPrice: float = Field(..., ge=0)
    isPaid: bool = False
    paidAt: Optional[datetime] = None
    isDelivered: bool = False
    deliveredAt: Optional[datetime] = None
