from typing import Literal, Optional
from pydantic import BaseModel, Field

OrderStatus = Literal["pending", "accepted", "ready", "in_progress", "available", "cancelled"]


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus
    notes: Optional[str] = Field(default=None, max_length=1000)
