"""
Pydantic Schemas for Request/Response Validation

Request schemas validate the shape of incoming carts and commands;
response schemas render fully hydrated orders for both the HTTP API and
the realtime pushes.

Author: Khalil Bannouri
Version: 1.0.0
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import re

from restaurant_orders.models import OrderStatus, UserRole
from restaurant_orders.services.pricing import CartCustomization, CartEntry


# =============================================================================
# AUTH SCHEMAS
# =============================================================================

class RegisterRequest(BaseModel):
    """Request schema for creating an account."""
    email: str = Field(..., max_length=255, examples=["john@example.com"])
    password: str = Field(..., min_length=6, max_length=128)
    first_name: Optional[str] = Field(None, max_length=100, examples=["John"])
    last_name: Optional[str] = Field(None, max_length=100, examples=["Doe"])
    phone: Optional[str] = Field(None, max_length=20, examples=["555-123-4567"])
    role: UserRole = Field(default=UserRole.CUSTOMER)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not re.match(r'^[\w\.\+-]+@[\w\.-]+\.\w+$', v):
            raise ValueError("Invalid email format")
        return v

    @field_validator("first_name", "last_name", "phone")
    @classmethod
    def strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


class LoginRequest(BaseModel):
    """Request schema for obtaining a bearer token."""
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class RoleChangeRequest(BaseModel):
    """Administrative role assignment."""
    role: UserRole


class UserResponse(BaseModel):
    """Public view of an account."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    phone: Optional[str]
    role: UserRole
    loyalty_points: int
    created_at: Optional[datetime] = None


class ProfileResponse(BaseModel):
    """Response for the current user's profile."""
    user: UserResponse


class AuthResponse(BaseModel):
    """Response after registering or logging in."""
    message: str
    user: UserResponse
    token: str


# =============================================================================
# ORDER REQUEST SCHEMAS
# =============================================================================

class CartCustomizationIn(BaseModel):
    """A customization reference inside a cart entry."""
    customization_id: int = Field(..., examples=[7])
    quantity: int = Field(default=1, ge=1, le=99, examples=[1])


class CartEntryIn(BaseModel):
    """Single entry in a cart."""
    menu_item_id: int = Field(..., examples=[3])
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    customizations: List[CartCustomizationIn] = Field(default_factory=list)

    def to_cart_entry(self) -> CartEntry:
        return CartEntry(
            menu_item_id=self.menu_item_id,
            quantity=self.quantity,
            customizations=tuple(
                CartCustomization(
                    customization_id=c.customization_id,
                    quantity=c.quantity,
                )
                for c in self.customizations
            ),
        )


class OrderCreate(BaseModel):
    """Request schema for placing an order."""
    location_id: int = Field(..., examples=[1])
    items: List[CartEntryIn] = Field(..., min_length=1)

    def to_cart(self) -> list[CartEntry]:
        return [item.to_cart_entry() for item in self.items]


class StatusUpdate(BaseModel):
    """Kitchen/admin status assignment."""
    status: OrderStatus


# =============================================================================
# ORDER RESPONSE SCHEMAS
# =============================================================================

class LocationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    address: str


class CustomerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: Optional[str]
    last_name: Optional[str]
    email: str


class MenuItemSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    price: Decimal
    category: str


class CustomizationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: Decimal


class OrderLineCustomizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customization_id: int
    quantity: int
    price_at_time: Decimal
    customization: Optional[CustomizationSummary] = None


class OrderLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int
    quantity: int
    price_at_time: Decimal
    menu_item: Optional[MenuItemSummary] = None
    customizations: List[OrderLineCustomizationResponse] = Field(default_factory=list)


class OrderResponse(BaseModel):
    """Fully hydrated order, as returned by the API and pushed to clients."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: OrderStatus
    total: Decimal
    location_id: int
    user_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    location: Optional[LocationSummary] = None
    user: Optional[CustomerSummary] = None
    lines: List[OrderLineResponse] = Field(default_factory=list)


class OrderDetail(BaseModel):
    """Response for a single order lookup."""
    order: OrderResponse


class OrderEnvelope(BaseModel):
    """Response wrapping a single order with a human-readable message."""
    message: str
    order: OrderResponse


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    orders: List[OrderResponse]
    pagination: Pagination


# =============================================================================
# GENERIC RESPONSES
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    code: Optional[str] = None
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    realtime: str
    connections: int
    timestamp: datetime
