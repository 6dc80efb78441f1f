"""Grey area data model for opsflow.

A grey area is an ambiguous situation that needs human judgment. It carries
both a current status and an append-only activity log; the log is the audit
trail, the status is its queryable projection.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class GreyAreaStatus(str, Enum):
    """Grey area lifecycle status."""
    DETECTED = "detected"
    UNDER_REVIEW = "under_review"
    PENDING_INPUT = "pending_input"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class GreyAreaSeverity(str, Enum):
    """Grey area severity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DetectionMethod(str, Enum):
    """How a grey area was raised."""
    RULE_ENGINE = "rule_engine"
    MANUAL_FLAG = "manual_flag"


TERMINAL_GREY_AREA_STATUSES = {GreyAreaStatus.RESOLVED, GreyAreaStatus.DISMISSED}

VALID_GREY_AREA_TRANSITIONS: Dict[GreyAreaStatus, set] = {
    GreyAreaStatus.DETECTED: {
        GreyAreaStatus.UNDER_REVIEW,
        GreyAreaStatus.PENDING_INPUT,
        GreyAreaStatus.ESCALATED,
        GreyAreaStatus.RESOLVED,
        GreyAreaStatus.DISMISSED,
    },
    GreyAreaStatus.UNDER_REVIEW: {
        GreyAreaStatus.UNDER_REVIEW,
        GreyAreaStatus.PENDING_INPUT,
        GreyAreaStatus.ESCALATED,
        GreyAreaStatus.RESOLVED,
        GreyAreaStatus.DISMISSED,
    },
    GreyAreaStatus.PENDING_INPUT: {
        GreyAreaStatus.PENDING_INPUT,
        GreyAreaStatus.UNDER_REVIEW,
        GreyAreaStatus.ESCALATED,
        GreyAreaStatus.RESOLVED,
        GreyAreaStatus.DISMISSED,
    },
    GreyAreaStatus.ESCALATED: {
        GreyAreaStatus.ESCALATED,
        GreyAreaStatus.UNDER_REVIEW,
        GreyAreaStatus.PENDING_INPUT,
        GreyAreaStatus.RESOLVED,
        GreyAreaStatus.DISMISSED,
    },
    GreyAreaStatus.RESOLVED: set(),
    GreyAreaStatus.DISMISSED: set(),
}


def validate_grey_area_transition(from_status: str, to_status: str) -> bool:
    """Check whether a grey area status transition is legal."""
    allowed = VALID_GREY_AREA_TRANSITIONS.get(GreyAreaStatus(from_status), set())
    return GreyAreaStatus(to_status) in allowed


class Actor(BaseModel):
    """Person (or the system) performing an action."""

    id: str = Field(..., description="Actor identifier")
    name: str = Field("", description="Actor display name")
    email: str = Field("", description="Actor email")


class DetectionContext(BaseModel):
    """Where and how a grey area was detected."""

    entity_type: str = Field(..., description="Scanned entity type")
    entity_id: str = Field(..., description="Scanned entity ID")
    entity_name: Optional[str] = Field(None, description="Scanned entity display name")
    detected_at: datetime = Field(..., description="Detection timestamp")
    method: DetectionMethod = Field(DetectionMethod.RULE_ENGINE, description="Detection method")
    rule_id: Optional[str] = Field(None, description="Matching rule ID")
    rule_name: Optional[str] = Field(None, description="Matching rule name")
    triggered_by: Optional[Actor] = Field(None, description="Who flagged it (manual flags)")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class InputResponse(BaseModel):
    """Answer to an input request."""

    value: Any = Field(..., description="Provided value")
    provided_by: Actor = Field(..., description="Who provided the value")
    provided_at: datetime = Field(..., description="When the value was provided")
    notes: Optional[str] = Field(None, description="Notes")


class InputSlot(BaseModel):
    """A question a reviewer needs answered."""

    question: str = Field(..., description="Question text")
    required: bool = Field(True, description="Whether an answer is required before review resumes")
    requested_from: Optional[str] = Field(None, description="Who should answer")
    requested_by: Optional[Actor] = Field(None, description="Who asked")
    requested_at: Optional[datetime] = Field(None, description="When it was asked")
    response: Optional[InputResponse] = Field(None, description="Answer, once provided")


class GreyAreaEscalation(BaseModel):
    """One escalation step."""

    level: int = Field(..., description="Escalation level after this step")
    from_assignee: Optional[Actor] = Field(None, description="Previous assignee")
    to_assignee: Actor = Field(..., description="New assignee")
    reason: str = Field(..., description="Escalation reason")
    escalated_by: Actor = Field(..., description="Who escalated")
    escalated_at: datetime = Field(..., description="Escalation timestamp")
    acknowledged: bool = Field(False, description="Whether the new assignee acknowledged")


class ActivityEntry(BaseModel):
    """Append-only audit log entry."""

    action: str = Field(..., description="What happened")
    performed_by: Actor = Field(..., description="Who did it")
    performed_at: datetime = Field(..., description="When")
    details: Optional[str] = Field(None, description="Details")


class FollowUpAction(BaseModel):
    """Follow-up work spawned by a resolution."""

    description: str = Field(..., description="Follow-up description (task title)")
    assigned_to: Optional[Actor] = Field(None, description="Assignee")
    due_date: Optional[datetime] = Field(None, description="Due date")
    task_id: Optional[str] = Field(None, description="Follow-up task created for this action")


class GreyAreaResolution(BaseModel):
    """How a grey area was closed."""

    approach: str = Field(..., description="Resolution approach")
    decision: str = Field(..., description="Decision taken")
    reasoning: str = Field("", description="Reasoning")
    outcome: str = Field("pending", description="Outcome")
    follow_up_actions: List[FollowUpAction] = Field(default_factory=list, description="Follow-up actions")
    resolved_by: Optional[Actor] = Field(None, description="Who resolved")
    resolved_at: Optional[datetime] = Field(None, description="When resolved")


class GreyArea(BaseModel):
    """Detected ambiguous situation tracked through review and escalation."""

    id: str = Field(..., description="Unique grey area identifier")
    type: str = Field(..., description="Grey area type")
    subsidiary_id: str = Field(..., description="Owning subsidiary")
    department_id: Optional[str] = Field(None, description="Owning department")
    title: str = Field(..., description="Title")
    description: str = Field("", description="Description")
    status: GreyAreaStatus = Field(GreyAreaStatus.DETECTED, description="Lifecycle status")
    severity: GreyAreaSeverity = Field(GreyAreaSeverity.MEDIUM, description="Severity")
    detection_context: DetectionContext = Field(..., description="Detection context")
    assigned_to: Optional[Actor] = Field(None, description="Current reviewer")
    assigned_at: Optional[datetime] = Field(None, description="When the reviewer was assigned")
    reviewer_roles: List[str] = Field(default_factory=list, description="Roles eligible to review")
    current_escalation_level: int = Field(0, ge=0, description="Escalation level (only increases)")
    resolution_deadline: datetime = Field(..., description="Resolution deadline")
    sla_hours: float = Field(..., description="SLA window used for the deadline")
    inputs_required: List[InputSlot] = Field(default_factory=list, description="Requested inputs")
    escalations: List[GreyAreaEscalation] = Field(default_factory=list, description="Escalation history")
    activity_log: List[ActivityEntry] = Field(default_factory=list, description="Append-only audit trail")
    resolution: Optional[GreyAreaResolution] = Field(None, description="Resolution record")
    search_terms: List[str] = Field(default_factory=list, description="Search terms")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
