"""
app/schemas/orders.py

Purpose: Document callback API payloads
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.order import Order, OrderStatus


class DocumentReadyRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Where the generated document is published")
    sent_at: Optional[datetime] = Field(
        default=None,
        description="When the document was delivered; defaults to now"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://files.example.com/pdf/K3M9Q2ZX.pdf",
                "sent_at": "2026-10-19T12:30:00"
            }
        }


class OrderResponse(BaseModel):
    order_id: str
    client_id: int
    status: OrderStatus
    created_at: datetime
    taken_at: Optional[datetime] = None
    staff_id: Optional[int] = None
    staff_name: str = ""
    referrer_id: int = 0
    referrer_name: str = ""
    button_pressed: bool = False
    reminder_sent: bool = False
    notification_sent: bool = False
    document_url: Optional[str] = None
    document_sent_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        data = order.model_dump(exclude={"id", "active", "upgrade_of"})
        return cls(order_id=order.id, **data)


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    count: int
