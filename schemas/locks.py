# schemas/locks.py

from typing import Optional
from pydantic import BaseModel, Field


class LockCreate(BaseModel):
    slot_id: int
    session_id: str = Field(min_length=1, max_length=128)
    quantity: int = Field(default=1, ge=1)
    ttl_seconds: Optional[int] = Field(default=None, ge=1)

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class LockRelease(BaseModel):
    session_id: Optional[str] = Field(default=None, min_length=1, max_length=128)

    model_config = {"extra": "forbid"}


class ActiveLocksQuery(BaseModel):
    slot_ids: list[int] = Field(max_length=500)

    model_config = {"extra": "forbid"}
