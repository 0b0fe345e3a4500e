"""
Database Schemas

Pydantic models for the documents kept in the store. Stored field names are
the camelCase aliases; Python code uses the snake_case attributes.

Collections:
- products  (Product, key generated on insert)
- carts     (CartDocument, key = identity)
- users     (UserProfile, key = identity)
- accounts  (Account, key = lower-cased email)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Product(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Product name")
    description: str = Field("", description="Product description")
    price: float = Field(..., ge=0, description="Unit price")
    image_url: str = Field("", alias="imageUrl", description="Image URL; empty means placeholder")
    origin_country: Optional[str] = Field(None, alias="originCountry")
    vendor: Optional[str] = None

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class CartDocument(BaseModel):
    items: Dict[str, int] = Field(default_factory=dict, description="{product_id: quantity}")


class UserProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, validate_default=True)

    name: str = ""
    nickname: str = ""
    avatar: str = Field("", description="Avatar URL or data: URI")
    role: Role = Role.USER
    email: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class Account(BaseModel):
    uid: str = Field(..., description="Identity issued at sign-up")
    email: str = Field(..., description="Lower-cased email address")
    password_hash: str = Field(..., description="BCrypt hashed password")
    created_at: datetime = Field(default_factory=utcnow)


class Identity(BaseModel):
    uid: str
    email: str
    token: Optional[str] = None


class CartTotals(BaseModel):
    subtotal: float = 0.0
    cart_count: int = 0


class ImportReport(BaseModel):
    imported: int = 0
    failed: int = 0
    status: str = Field("success", description="success | partial | failed")
    message: str = ""
