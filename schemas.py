"""
Database Schemas for the GroceryMart storefront

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

PaymentMethod = Literal["COD", "Card", "UPI"]
OrderStatus = Literal["confirmed", "packed", "shipped", "delivered", "cancelled"]
NotificationType = Literal["order", "offer", "system"]


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Salted password hash")
    is_admin: bool = False


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    category: str = Field(..., min_length=1)
    subcategory: Optional[str] = None
    price: float = Field(..., gt=0, description="List price in the store currency")
    sale_price: Optional[float] = Field(None, gt=0)
    discount_percentage: Optional[int] = None
    stock: int = Field(0, ge=0)
    image_url: Optional[str] = None
    is_featured: bool = False
    is_bestseller: bool = False
    is_organic: bool = False
    rating: float = Field(0, ge=0, le=5)
    review_count: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _sale_below_price(self):
        if self.sale_price is not None and self.sale_price >= self.price:
            raise ValueError("sale_price must be lower than price")
        return self


class CartItem(BaseModel):
    user_id: str
    product_id: str
    quantity: int = Field(..., ge=1)
    # snapshot for display without a catalog join
    name: str
    price: float
    sale_price: Optional[float] = None
    image_url: Optional[str] = None


class OrderItem(BaseModel):
    product_id: str
    product_name: str
    product_image: Optional[str] = None
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., description="Effective price paid per unit")
    list_price: float


class Order(BaseModel):
    order_number: str
    user_id: str
    user_email: str
    user_name: Optional[str] = None
    items: List[OrderItem]
    subtotal: float
    delivery_fee: float
    tax: float
    discount: float = 0
    savings: float = 0
    total: float
    delivery_address: str
    delivery_slot: Optional[str] = None
    coupon_code: Optional[str] = None
    payment_method: PaymentMethod = "COD"
    payment_status: Literal["paid", "pending"] = "pending"
    status: OrderStatus = "confirmed"
    idempotency_key: str
    cart_line_ids: List[str] = []
    cart_cleared: bool = False
    delivered_at: Optional[datetime] = None


class Notification(BaseModel):
    user_id: str
    title: str
    message: str
    type: NotificationType = "system"
    is_read: bool = False
    order_id: Optional[str] = None


class AdminNotification(BaseModel):
    title: str
    message: str
    type: NotificationType = "order"
    is_read: bool = False
    order_id: Optional[str] = None


class Offer(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    discount_percentage: Optional[int] = Field(None, ge=0, le=100)
    coupon_code: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True


class Review(BaseModel):
    product_id: str
    user_id: str
    user_name: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    is_verified: bool = True


class Wishlist(BaseModel):
    user_id: str
    product_id: str
