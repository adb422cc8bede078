# schemas/bookings.py

from typing import Literal, Optional
from pydantic import BaseModel, Field, model_validator


class BookingCreate(BaseModel):
    service_id: int
    slot_id: int

    lock_id: Optional[str] = Field(default=None, max_length=36)
    session_id: Optional[str] = Field(default=None, min_length=1, max_length=128)

    customer_name: str = Field(min_length=1, max_length=120)
    customer_phone: str = Field(min_length=3, max_length=30)
    customer_email: Optional[str] = Field(default=None, max_length=255)

    adult_count: int = Field(ge=0)
    child_count: int = Field(default=0, ge=0)
    visitor_count: int = Field(gt=0)

    total_price: int = Field(default=0, ge=0)
    notes: Optional[str] = None
    language: Literal["en", "ar"] = "en"
    created_by: Optional[str] = Field(default=None, max_length=128)

    model_config = {"extra": "forbid", "str_strip_whitespace": True}

    @model_validator(mode="after")
    def _lock_needs_session(self):
        if self.lock_id and not self.session_id:
            raise ValueError("session_id is required when lock_id is given")
        return self


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)
    actor: Optional[str] = Field(default=None, max_length=128)

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class BookingStatusChange(BaseModel):
    status: Literal["confirmed", "completed"]
    actor: Optional[str] = Field(default=None, max_length=128)

    model_config = {"extra": "forbid"}


class BookingReschedule(BaseModel):
    slot_id: int
    actor: Optional[str] = Field(default=None, max_length=128)

    model_config = {"extra": "forbid"}


class BookingVisitorsChange(BaseModel):
    adult_count: int = Field(ge=0)
    child_count: int = Field(default=0, ge=0)
    total_price: Optional[int] = Field(default=None, ge=0)
    actor: Optional[str] = Field(default=None, max_length=128)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _at_least_one_visitor(self):
        if self.adult_count + self.child_count <= 0:
            raise ValueError("a booking needs at least one visitor")
        return self
