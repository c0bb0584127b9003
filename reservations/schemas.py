from __future__ import annotations

from datetime import datetime, time, timezone
from decimal import Decimal
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reservations.models import OrderState

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class OrderCreate(BaseModel):
    """
    Booking request. Duration bounds, past times and business hours are
    checked by the scheduler so callers get its error messages.
    """

    venue_name: str = Field(min_length=1, max_length=100)
    start_time: datetime
    hours: int

    @field_validator("start_time", mode="after")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("datetime must be timezone-aware (include UTC offset)")
        return v.astimezone(timezone.utc)


class OrderUpdate(OrderCreate):
    pass


class OrderResponse(BaseModel):
    id: int
    user_id: UUID
    venue_id: int
    order_time: datetime
    start_time: datetime
    end_time: datetime
    hours: int
    total: Decimal
    state: OrderState
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderEnriched(OrderResponse):
    venue_name: str | None = None
    customer_username: str | None = None
    customer_full_name: str | None = None


class OrderSlot(BaseModel):
    """Minimal occupied slot, no user identity."""

    start_time: datetime
    end_time: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Venues
# ---------------------------------------------------------------------------


class VenueCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=5000)
    address: str = Field(min_length=1, max_length=255)
    picture: str | None = Field(default=None, max_length=255)
    price: Decimal = Field(gt=0, max_digits=8, decimal_places=2)
    open_time: time
    close_time: time

    @field_validator("name", "address", mode="after")
    @classmethod
    def strip_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("open_time", "close_time", mode="after")
    @classmethod
    def whole_minutes(cls, v: time) -> time:
        return v.replace(second=0, microsecond=0, tzinfo=None)


class VenueUpdate(VenueCreate):
    pass


class VenueResponse(BaseModel):
    id: int
    name: str
    description: str
    address: str
    picture: str | None
    price: Decimal
    open_time: time
    close_time: time
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VenueNameCheck(BaseModel):
    name: str
    available: bool


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


class PageParams(BaseModel):
    """Bind to a FastAPI route via Depends(PageParams)."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int
