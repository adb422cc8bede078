# schemas/slots.py

from datetime import date, time
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class AvailabilityQuery(BaseModel):
    start: date
    end: date

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _ordered(self):
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class TenantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class ServiceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None
    default_capacity: int = Field(default=1, ge=0)

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class SlotCreate(BaseModel):
    service_id: int
    slot_date: date
    start_time: time
    end_time: time
    capacity: Optional[int] = Field(default=None, ge=0)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _ordered(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class SlotResize(BaseModel):
    capacity: int = Field(ge=0)

    model_config = {"extra": "forbid"}
