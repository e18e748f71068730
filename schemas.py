"""
Database Schemas for the Shop API

Each Pydantic model corresponds to a MongoDB collection.
Collection name is the lowercase of the class name.

- User -> "user"
- Category -> "category"
- Product -> "product"
- Cart -> "cart"
- Order -> "order"

References between collections are stored as string ids (user_id, product_id,
category_id). Request payload models live at the bottom of this module.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

Role = Literal["user", "admin"]
OrderStatus = Literal["Processing", "Shipped", "Delivered", "Cancelled"]

CASH_ON_DELIVERY = "Cash on Delivery"

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


class ImageRef(BaseModel):
    """Image hosted by the external upload service"""
    public_id: str = Field(..., min_length=1, description="Storage id at the image host")
    url: str = Field(..., min_length=1, description="Retrievable image URL")


class User(BaseModel):
    """Users collection schema"""
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Email address, unique")
    password_hash: str = Field(..., description="BCrypt password hash")
    role: Role = Field("user", description="Role: user or admin")
    address: str = Field("", description="Postal address")
    image: Optional[ImageRef] = None
    orders: List[str] = Field(default_factory=list, description="Ids of orders placed by the user")


class Category(BaseModel):
    """Categories collection schema"""
    name: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=500)


class Product(BaseModel):
    """Products collection schema"""
    name: str = Field(..., min_length=1, max_length=100)
    price: float = Field(..., ge=0, description="Price in dollars")
    description: str = Field(..., min_length=1)
    category_id: str = Field(..., description="Id of the owning category")
    image: ImageRef


class CartItem(BaseModel):
    product_id: str = Field(..., description="ID of the product")
    quantity: int = Field(1, ge=1, description="Quantity of the product")


class Cart(BaseModel):
    """Carts collection schema, one per user"""
    user_id: str = Field(..., description="Owner user id")
    items: List[CartItem] = Field(default_factory=list, description="List of cart items")


class OrderItem(BaseModel):
    """Snapshot of a product taken when the order is placed"""
    product_id: str
    name: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    image: str


class ShippingAddress(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class PaymentResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class Order(BaseModel):
    """Orders collection schema"""
    user_id: str
    order_items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: str
    payment_result: Optional[PaymentResult] = None
    subtotal: float = Field(0.0, ge=0)
    shipping_cost: float = Field(0.0, ge=0)
    tax: float = Field(0.0, ge=0)
    total: float = Field(0.0, ge=0)
    status: OrderStatus = Field("Processing")
    tracking_number: str = Field("Pending")
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None


# -----------------------------
# Request payloads
# -----------------------------

class Payload(BaseModel):
    """Base for request bodies: unknown fields are rejected"""
    model_config = ConfigDict(extra="forbid")


class SignupRequest(Payload):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    address: str = ""
    image: ImageRef

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
        return v


class LoginRequest(Payload):
    email: EmailStr
    password: str


class ProfileUpdateRequest(Payload):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    image: Optional[ImageRef] = None


class CategoryRequest(Payload):
    name: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=500)


class ProductRequest(Payload):
    name: str = Field(..., min_length=1, max_length=100)
    price: float = Field(..., ge=0)
    description: str = Field(..., min_length=1)
    category_id: str
    image: ImageRef


class AddToCartRequest(Payload):
    product_id: str
    quantity: int = Field(1, ge=1)


class UpdateCartItemRequest(Payload):
    quantity: int


class OrderItemIn(Payload):
    product_id: str
    quantity: int = Field(..., ge=1)
    # Optional so the server can take them from the product when recomputing totals
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None


class CreateOrderRequest(Payload):
    order_items: List[OrderItemIn] = Field(default_factory=list)
    shipping_address: ShippingAddress
    payment_method: str = Field(..., min_length=1)
    subtotal: float = Field(0.0, ge=0)
    shipping_cost: float = Field(0.0, ge=0)
    tax: float = Field(0.0, ge=0)
    total: float = Field(0.0, ge=0)


class UpdateStatusRequest(Payload):
    status: OrderStatus
    tracking_number: Optional[str] = None


class UpdatePaymentRequest(Payload):
    is_paid: bool = True
    payment_result: Optional[PaymentResult] = None


class RoleUpdateRequest(Payload):
    role: Role
