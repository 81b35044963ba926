from typing import Optional
from pydantic import BaseModel, Field, field_validator


class CheckoutRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=64)
    notes: Optional[str] = Field(default=None, max_length=1000)
    whatsapp_phone: Optional[str] = Field(default=None, pattern=r"^\+?\d{6,15}$")

    @field_validator("notes")
    @classmethod
    def _blank_notes_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v
