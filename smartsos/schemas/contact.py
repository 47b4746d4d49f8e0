"""Emergency contact schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class ContactCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)
    phone_number: str = Field(..., pattern=r"^\+?[0-9][0-9 \-]{1,30}$")
    relationship: str | None = Field(default=None, pattern="^(family|friend|authority|coast_guard)$")
    priority: int = Field(default=1, ge=1, le=10)


class ContactResponse(BaseModel):
    id: str
    user_id: str
    name: str
    phone_number: str
    relationship: str | None
    priority: int
    created_at: datetime

    model_config = {"from_attributes": True}
