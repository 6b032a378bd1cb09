"""
app/schemas/response.py

Purpose: Error body shared by every API error handler
"""

from pydantic import BaseModel, Field
from typing import Optional, Any

class ErrorResponse(BaseModel):
    """
    Body returned for every failed API call.
    `code` is stable (NOT_FOUND, INVALID_TRANSITION, ...); `error` is for humans.
    """
    error: str
    code: str
    details: Optional[Any] = Field(default=None, description="Order ID, validation errors or other context")
