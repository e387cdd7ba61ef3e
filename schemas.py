"""
Database Schemas for the BreadBox marketplace

Each Pydantic model below corresponds to a MongoDB collection.
The collection name is the lowercase class name (e.g., Vendor -> "vendor",
Package -> "package").
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

PHONE_PATTERN = r"^[6-9]\d{9}$"


class Role(str, Enum):
    USER = "user"
    VENDOR = "vendor"
    DELIVERY_PARTNER = "deliverypartner"
    ADMIN = "admin"


class ItemType(str, Enum):
    FOOD = "Food"
    JUICE = "Juice"


class Account(BaseModel):
    """Fields shared by every principal collection."""
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Unique, lower-cased email address")
    password_hash: str = Field(..., description="BCrypt password hash")
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    address: str
    otp_hash: Optional[str] = Field(None, description="BCrypt hash of the pending OTP")
    otp_expiry: Optional[datetime] = None
    is_verified: bool = False
    role: Role = Field(Role.USER, validate_default=True)


class User(Account):
    role: Role = Field(Role.USER, validate_default=True)


class Vendor(Account):
    name: str = Field(..., min_length=3)
    role: Role = Field(Role.VENDOR, validate_default=True)


class Restaurant(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    vendor_id: ObjectId = Field(..., description="Owning vendor _id (unique)")
    name: str
    address: str
    phone: str = Field(..., pattern=PHONE_PATTERN)
    operating_hours: str


class Item(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, use_enum_values=True)

    vendor_id: ObjectId
    name: str
    description: Optional[str] = Field(None, max_length=500)
    price: float = Field(..., ge=0)
    type: ItemType
    is_available: bool = True


class Package(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    vendor_id: ObjectId
    package_name: str
    description: Optional[str] = Field(None, max_length=500)
    price: float = Field(..., ge=0)
    items: List[ObjectId] = Field(..., min_length=1, description="Ordered references to item _id")
    image_url: str = ""
    is_active: bool = True
