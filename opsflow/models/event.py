"""Business event data model for opsflow."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ProcessingStatus(str, Enum):
    """Event processing status enumeration."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class EventSource(BaseModel):
    """Where the event came from (module, integration, schedule)."""

    type: str = Field(..., description="Source type (e.g., 'system', 'user', 'integration')")
    id: Optional[str] = Field(None, description="Source identifier")
    name: Optional[str] = Field(None, description="Source display name")


class EventTrigger(BaseModel):
    """Who or what triggered the event."""

    type: str = Field(..., description="Trigger type ('user', 'system', 'schedule')")
    id: Optional[str] = Field(None, description="Trigger identity (employee id for user triggers)")


class EventMetadata(BaseModel):
    """Routing and classification metadata for an event."""

    subsidiary_id: str = Field(..., description="Owning subsidiary")
    department_id: Optional[str] = Field(None, description="Owning department")
    correlation_id: Optional[str] = Field(None, description="Correlation identifier")
    causation_id: Optional[str] = Field(None, description="Identifier of the causing event")
    priority: Optional[str] = Field(None, description="Event-level priority (critical/high/medium/low)")
    tags: List[str] = Field(default_factory=list, description="Free-form tags")
    is_internal: bool = Field(False, description="Whether the event originated internally")


class EventProcessing(BaseModel):
    """Mutable processing state of an event."""

    status: ProcessingStatus = Field(ProcessingStatus.PENDING, description="Processing status")
    tasks_generated: List[str] = Field(default_factory=list, description="IDs of tasks generated from this event")
    retry_count: int = Field(0, description="Number of times the event was resubmitted")
    processed_at: Optional[datetime] = Field(None, description="When processing last finished")
    error_message: Optional[str] = Field(None, description="Accumulated error messages")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class BusinessEvent(BaseModel):
    """Immutable record of something that happened in the business."""

    id: str = Field(..., description="Unique event identifier")
    event_type: str = Field(..., description="Event catalog key (e.g., 'financial.invoice_overdue')")
    category: str = Field(..., description="Event category")
    source: EventSource = Field(..., description="Event source")
    trigger: Optional[EventTrigger] = Field(None, description="Event trigger")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Open attribute map")
    metadata: EventMetadata = Field(..., description="Event metadata")
    processing: EventProcessing = Field(default_factory=EventProcessing, description="Processing state")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Event creation timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @property
    def triggering_user_id(self) -> Optional[str]:
        """Employee id of the user who triggered the event, if any."""
        if self.trigger and self.trigger.type == "user":
            return self.trigger.id
        return None
