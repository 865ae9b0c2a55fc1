"""
Database Schemas for the Storefront

Each collection model mirrors one MongoDB collection. The collection name is
the lowercase of the class name (e.g., Product -> "product").
Request bodies that are not stored as-is live at the bottom of the module.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

ORDER_STATUSES = ["Not Processed", "Processing", "Shipped", "Delivered", "Cancelled"]

ROLE_USER = 0
ROLE_ADMIN = 1


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="Hashed password")
    phone: str = Field(..., description="Contact phone number")
    address: str = Field(..., description="Shipping address")
    answer: str = Field(..., description="Security answer used for password reset")
    role: int = Field(ROLE_USER, description="0 = customer, 1 = admin")


class Category(BaseModel):
    """
    Categories collection schema
    Collection name: "category"
    """
    name: str
    slug: str


class ProductPhoto(BaseModel):
    data: bytes
    content_type: str


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str
    slug: str
    description: str
    price: float = Field(..., gt=0, description="Price in dollars")
    quantity: int = Field(..., gt=0)
    category: Any = Field(..., description="ObjectId of the product category")
    shipping: bool = False
    photo: Optional[ProductPhoto] = None


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    products: List[Any] = Field(default_factory=list, description="Product ObjectIds")
    buyer: Any = Field(..., description="ObjectId of the buying user")
    payment: dict = Field(default_factory=dict, description="Gateway transaction record")
    status: str = Field(ORDER_STATUSES[0], description="Order status: " + ", ".join(ORDER_STATUSES))


# Product form input

class ProductFieldError(str, Enum):
    NAME = "Name is Required"
    DESCRIPTION = "Description is Required"
    PRICE = "Price is Required"
    PRICE_NOT_POSITIVE = "Price must be greater than 0"
    CATEGORY = "Category is Required"
    QUANTITY = "Quantity is Required"
    QUANTITY_NOT_POSITIVE = "Quantity must be greater than 0"
    SHIPPING = "Shipping is Required"
    PHOTO = "Photo is Required"
    PHOTO_TOO_LARGE = "photo is Required and should be less then 1mb"


class ProductFields(BaseModel):
    """Raw multipart fields, exactly as the admin form posts them."""
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[str] = None
    shipping: Optional[str] = None


class ProductInput(BaseModel):
    name: str
    description: str
    price: float
    category: str
    quantity: int
    shipping: Optional[bool] = None


@dataclass
class ValidationResult:
    value: Optional[ProductInput] = None
    error: Optional[ProductFieldError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: ProductInput) -> "ValidationResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ProductFieldError) -> "ValidationResult":
        return cls(error=error)


# Request bodies

class FilterRequest(BaseModel):
    checked: List[str] = Field(default_factory=list, description="Selected category ids")
    radio: List[float] = Field(default_factory=list, description="[min, max] price range")
    page: int = 1


class CartItem(BaseModel):
    # clients post whole product snapshots, only id and price matter here
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = Field(None, alias="_id")
    price: Any = None


class PaymentRequest(BaseModel):
    nonce: str
    cart: List[CartItem] = Field(default_factory=list)


class StatusUpdate(BaseModel):
    status: str


class CategoryRequest(BaseModel):
    name: Optional[str] = None


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    answer: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None
    answer: Optional[str] = None
    newPassword: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
