"""
Pydantic Schemas for Request/Response Validation

One request model per write operation (store upsert, product upsert,
group opening, order placement/cancellation) so that payloads are
validated at the HTTP boundary before anything touches the database.

Author: Khalil Bannouri
Version: 1.0.0
"""

from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from group_order.core.config import get_settings


def _strip_required(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("must not be blank")
    return v


def _strip_optional(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class StoreUpsert(BaseModel):
    """Create a store, or update the store that already has this name."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Golden Bento"])
    phone: Optional[str] = Field(None, max_length=30, examples=["02-2345-6789"])

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _strip_required(v)

    @field_validator("phone")
    @classmethod
    def strip_phone(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class StoreUpdate(BaseModel):
    """Partial store update."""
    name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)

    @field_validator("name", "phone")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class ProductCreate(BaseModel):
    """Single menu item added from the menu editor."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Fried Rice"])
    price: float = Field(..., ge=0, examples=[90])
    description: Optional[str] = Field(None, max_length=500, examples=["no onion"])

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _strip_required(v)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class ProductUpdate(BaseModel):
    """Inline edit of a menu item's price and/or note."""
    price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class ProductUpsert(ProductCreate):
    """One spreadsheet row, keyed on (store, name)."""


class GroupCreate(BaseModel):
    """
    Open an ordering window for a store.

    A deadline without timezone (as sent by a datetime-local input) is
    read in the office timezone and stored in UTC.
    """
    store_id: int = Field(..., ge=1)
    end_time: datetime = Field(..., examples=["2026-10-17T11:30:00"])
    name: Optional[str] = Field(None, max_length=100, examples=["Drinks run"])

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    @field_validator("end_time")
    @classmethod
    def normalize_end_time(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            v = v.replace(tzinfo=get_settings().tz)
        return v.astimezone(timezone.utc)


class OrderCreate(BaseModel):
    """A purchaser's line item. Items outside the menu are allowed."""
    item_name: str = Field(..., min_length=1, max_length=100, examples=["Fried Rice"])
    price: float = Field(..., ge=0, examples=[90])
    quantity: int = Field(default=1, ge=1, le=99, examples=[2])
    customer_name: str = Field(..., min_length=1, max_length=100, examples=["Amy"])

    @field_validator("item_name", "customer_name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip_required(v)


class OrderCancel(BaseModel):
    """
    Cancellation request. customer_name must repeat the purchaser name
    exactly; this is a typing confirmation, not an access check.
    """
    customer_name: str = Field(..., min_length=1, max_length=100)


class LoginRequest(BaseModel):
    """Admin email/password sign-in."""
    email: str = Field(..., min_length=3, max_length=255, examples=["admin@example.com"])
    password: str = Field(..., min_length=1, max_length=128)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class StoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    phone: Optional[str] = None
    image_url: Optional[str] = None


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    store_id: int
    name: str
    price: float
    description: Optional[str] = None


class GroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    store_id: int
    order_date: Optional[date] = None
    end_time: datetime
    name: Optional[str] = None
    display_name: str
    store: StoreResponse


class TodayGroupsResponse(BaseModel):
    """Today's groups plus the group the page should show."""
    groups: List[GroupResponse]
    active_group_id: Optional[int] = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    group_id: int
    item_name: str
    price: float
    quantity: int
    customer_name: str
    created_at: Optional[datetime] = None


class OrderDetail(BaseModel):
    """One purchaser's contribution to a summary row."""
    id: int
    customer_name: str
    quantity: int


class SummaryItem(BaseModel):
    """Per-item aggregate of a group's orders."""
    name: str
    count: int
    total: float
    order_details: List[OrderDetail] = Field(default_factory=list)


class GroupOrdersResponse(BaseModel):
    group_id: int
    expired: bool
    orders: List[OrderResponse]
    summary: List[SummaryItem]
    total_count: int
    total_amount: float


class CountdownResponse(BaseModel):
    group_id: int
    end_time: datetime
    expired: bool
    seconds_left: int
    text: str


class ShareLinkResponse(BaseModel):
    url: str
    text: str


class ImportResult(BaseModel):
    """Outcome of a spreadsheet menu import."""
    success: bool
    message: str
    processed: int = 0


class AdminSessionResponse(BaseModel):
    authenticated: bool
    email: Optional[str] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    storage_service: str
    change_feed: str
    timestamp: datetime
