"""
app/models/order.py

Purpose: Order document model

- Consultation order lifecycle (new -> in_work -> complete | full)
- Claim, referrer and reminder metadata
- Document delivery details
"""

from enum import Enum
from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    NEW = "new"
    IN_WORK = "in_work"
    COMPLETE = "complete"
    FULL = "full"


ACTIVE_STATUSES = (OrderStatus.NEW, OrderStatus.IN_WORK)

# Allowed prior statuses per target status
ALLOWED_TRANSITIONS = {
    OrderStatus.IN_WORK: (OrderStatus.NEW,),
    OrderStatus.COMPLETE: (OrderStatus.IN_WORK,),
    OrderStatus.FULL: (OrderStatus.NEW, OrderStatus.IN_WORK),
}


def is_active(status: OrderStatus) -> bool:
    return status in ACTIVE_STATUSES


class Order(BaseModel):
    """
    Stored in the `orders` collection with the order ID as `_id`.
    `active` mirrors the status and backs the one-active-order index.
    """
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: str = Field(alias="_id")
    client_id: int
    status: OrderStatus = OrderStatus.NEW
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
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
    # Set on full orders recorded without an active order; unique per predecessor
    upgrade_of: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Order":
        return cls.model_validate(doc)

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(by_alias=True)
        doc["status"] = self.status.value
        if doc.get("upgrade_of") is None:
            doc.pop("upgrade_of", None)
        return doc

    @property
    def has_referrer(self) -> bool:
        return bool(self.referrer_id)
