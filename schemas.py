"""
Database Schemas

Define your MongoDB collection schemas here using Pydantic models.
These schemas are used for data validation in your application.

Each Pydantic model represents a collection in your database.
Model name is converted to lowercase for the collection name:
- Order -> "order" collection
- Product -> "product" collection

Stored field names are camelCase (the storefront frontend reads them as-is),
so every model exposes them through aliases.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

# Cloud 9 Pastries storefront schemas


class CartItem(BaseModel):
    """
    A single line of an order's cart. Unknown keys sent by the storefront
    (image, variant, ...) are kept on the stored item.
    """
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1, description="Product name at time of order")
    quantity: int = Field(..., ge=1, description="Units ordered")
    price: float = Field(..., ge=0, description="Unit price in INR")


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(..., alias="fullName", description="Customer full name")
    email: str = Field(..., description="Customer email address")
    phone: str = ""
    address: str = ""
    landmark: str = ""
    city: str = ""
    pincode: str = ""
    payment_method: str = Field("", alias="paymentMethod", description="e.g. UPI, COD")
    cart: List[CartItem] = Field(default_factory=list)
    total: float = Field(..., ge=0, description="Order total as submitted by the customer")
    screenshot_url: Optional[str] = Field(None, alias="screenshotUrl")
    screenshot_public_id: Optional[str] = Field(None, alias="screenshotPublicId")
    status: str = Field("pending", description="Free-text order status")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Product name")
    description: str = ""
    price: float = Field(..., ge=0, description="Price in INR")
    category: str = ""
    options: List[str] = Field(default_factory=list, description="Flavours/sizes offered")
    image_url: Optional[str] = Field(None, alias="imageUrl")
    image_public_id: Optional[str] = Field(None, alias="imagePublicId")
    available: bool = Field(True, description="False while the product is on hold")


class StatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)


class ContactMessage(BaseModel):
    """Contact form submission; emailed to the operator, not stored."""
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


def parse_options(raw: Optional[str]) -> List[str]:
    """'butter, chocolate ,' -> ['butter', 'chocolate']"""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def cart_total(cart: List[CartItem]) -> float:
    return round(sum(item.price * item.quantity for item in cart), 2)
