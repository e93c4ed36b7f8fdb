"""
Database Schemas for LivestockMart

Each Pydantic model represents a MongoDB collection. Collection name is the lowercase
class name (e.g., Listing -> "listing"). Request models forbid unknown fields so
malformed bodies are rejected before they reach a service.
"""
from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, EmailStr
from enum import Enum


class Category(str, Enum):
    goat = "Goat"
    sheep = "Sheep"


class ListingStatus(str, Enum):
    available = "Available"
    reserved = "Reserved"
    sold = "Sold"


class PaymentMethod(str, Enum):
    cod = "cod"
    upi = "upi"
    card = "card"


class PaymentStatus(str, Enum):
    pending = "Pending"
    paid = "Paid"
    failed = "Failed"


class OrderStatus(str, Enum):
    processing = "Processing"
    packed = "Packed"
    shipped = "Shipped"
    delivered = "Delivered"
    cancelled = "Cancelled"


class Command(BaseModel):
    model_config = ConfigDict(extra="forbid")


# Catalog

class Listing(Command):
    name: str = Field(..., min_length=1)
    category: Category
    breed: str = Field(..., min_length=1)
    age: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    image: str = "🐐"
    tags: List[str] = []
    status: ListingStatus = ListingStatus.available
    quantity: int = Field(1, ge=0)
    description: Optional[str] = None
    weight: Optional[str] = None


class ListingOut(Listing):
    model_config = ConfigDict(extra="ignore")

    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Accounts

class Address(Command):
    label: str = ""
    name: str
    line1: str
    line2: str = ""
    city: str
    state: str
    pincode: str
    phone: str


class CartItem(Command):
    listing_id: str
    quantity: int = Field(1, ge=1)
    selected: bool = True


class RegisterPayload(Command):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginPayload(Command):
    email: EmailStr
    password: str


class OtpRequest(Command):
    email: EmailStr


class OtpVerify(Command):
    email: EmailStr
    code: str = Field(..., min_length=1)


class UserState(Command):
    cart: List[CartItem] = []
    wishlist: List[str] = []
    addresses: List[Address] = []


class AccountOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    is_admin: bool = False


# Orders

class OrderItem(Command):
    item_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    category: Optional[str] = None
    breed: Optional[str] = None
    image: Optional[str] = None


class OrderCreate(Command):
    items: List[OrderItem] = Field(..., min_length=1)
    address: Address
    payment_method: PaymentMethod = PaymentMethod.cod
    payment_reference: Optional[str] = None
    # accepted for client compatibility, never trusted
    total: Optional[float] = None


class StatusChange(Command):
    status: OrderStatus


class PaymentStatusChange(Command):
    payment_status: PaymentStatus


class TrackingStep(BaseModel):
    label: str
    completed: bool


class OrderOut(BaseModel):
    id: str
    user_id: str
    customer: str
    items: List[OrderItem]
    total_amount: float
    address: Address
    payment_method: PaymentMethod
    payment_reference: Optional[str] = None
    payment_status: PaymentStatus
    order_status: OrderStatus
    tracking: List[TrackingStep]
    created_at: datetime
    updated_at: datetime


# Payments

class PaymentIntentRequest(Command):
    amount: float = Field(..., gt=0)
