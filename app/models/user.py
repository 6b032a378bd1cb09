"""
app/models/user.py

Purpose: User document model

- Telegram chat ID and profile
- Referral code
- Demo consultation flag
"""

from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field


class User(BaseModel):
    chat_id: int
    handle: str = ""
    display_name: str = ""
    referral_code: Optional[str] = None
    demo_used: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "User":
        doc = {k: v for k, v in doc.items() if k != "_id"}
        return cls.model_validate(doc)
