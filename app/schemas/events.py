"""
app/schemas/events.py

Purpose: Inbound chat event schemas

- Normalizes Telegram updates into transport-neutral events
- Ensures predictable dispatching
"""

from pydantic import BaseModel, Field
from datetime import datetime

from utils.constants import UNNAMED_USER, UNNAMED_HANDLE


class IncomingMessage(BaseModel):
    """
    Normalized text message for internal processing.
    """
    chat_id: int = Field(..., description="Chat the message arrived in")
    user_id: int = Field(..., description="Sender's user ID")
    name: str = Field(default="", description="Sender's display name")
    handle: str = Field(default="", description="Sender's @username without '@'")
    text: str = Field(default="", description="Message text content")
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "chat_id": 42,
                "user_id": 42,
                "name": "Ann",
                "handle": "ann1",
                "text": "/start ref_K3M9Q2ZX"
            }
        }

    @property
    def display_name(self) -> str:
        return self.name.strip() or UNNAMED_USER

    @property
    def username(self) -> str:
        return self.handle.strip() or UNNAMED_HANDLE


class CallbackEvent(BaseModel):
    """
    Normalized inline button press.

    `chat_id` is the chat holding the pressed message (the staff channel
    for claims, the private chat for reminders).
    """
    user_id: int
    chat_id: int
    name: str = ""
    handle: str = ""
    data: str = ""
    message_id: str = ""
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return self.name.strip() or UNNAMED_USER

    @property
    def username(self) -> str:
        return self.handle.strip() or UNNAMED_HANDLE
