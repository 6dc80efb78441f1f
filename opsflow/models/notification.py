"""Notification data model for opsflow."""

from datetime import datetime
from typing import Any, Dict, List
from pydantic import BaseModel, Field


class Notification(BaseModel):
    """Notification handed to the dispatcher (delivery is external)."""

    id: str = Field(..., description="Unique notification identifier")
    type: str = Field(..., description="Notification type (e.g., 'task_assigned', 'grey_area')")
    recipient_id: str = Field(..., description="Recipient employee ID")
    title: str = Field(..., description="Notification title")
    body: str = Field("", description="Notification body")
    data: Dict[str, Any] = Field(default_factory=dict, description="Structured payload")
    channels: List[str] = Field(default_factory=lambda: ["push", "email"], description="Delivery channels")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    read: bool = Field(False, description="Whether the recipient read it")
