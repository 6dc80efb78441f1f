"""Task data model for opsflow."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    """Coarse task status enumeration."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskStage(str, Enum):
    """Fine-grained task lifecycle stage."""
    PENDING_ASSIGNMENT = "pending_assignment"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    PENDING_REVIEW = "pending_review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"
    ESCALATED = "escalated"


class TaskPriority(str, Enum):
    """Task priority tier."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskSource(str, Enum):
    """How a task was created."""
    EVENT_GENERATED = "event_generated"
    GREY_AREA = "grey_area"
    MANUAL = "manual"


TERMINAL_STAGES = {TaskStage.COMPLETED, TaskStage.CANCELLED}

# Stage transitions driven by Task API consumers. blocked/escalated are
# reachable from any non-terminal stage.
VALID_STAGE_TRANSITIONS: Dict[TaskStage, set] = {
    TaskStage.PENDING_ASSIGNMENT: {TaskStage.ASSIGNED, TaskStage.CANCELLED},
    TaskStage.ASSIGNED: {TaskStage.IN_PROGRESS, TaskStage.PENDING_ASSIGNMENT, TaskStage.CANCELLED},
    TaskStage.IN_PROGRESS: {TaskStage.PENDING_REVIEW, TaskStage.COMPLETED, TaskStage.CANCELLED},
    TaskStage.PENDING_REVIEW: {TaskStage.IN_PROGRESS, TaskStage.COMPLETED, TaskStage.CANCELLED},
    TaskStage.BLOCKED: {TaskStage.ASSIGNED, TaskStage.IN_PROGRESS, TaskStage.CANCELLED},
    TaskStage.ESCALATED: {TaskStage.ASSIGNED, TaskStage.IN_PROGRESS, TaskStage.CANCELLED},
    TaskStage.COMPLETED: set(),
    TaskStage.CANCELLED: set(),
}


def validate_stage_transition(from_stage: str, to_stage: str) -> bool:
    """Check whether a stage transition is legal.

    Args:
        from_stage: Current stage
        to_stage: Target stage

    Returns:
        True if the transition is allowed
    """
    current = TaskStage(from_stage)
    target = TaskStage(to_stage)
    if current in TERMINAL_STAGES:
        return False
    if target in (TaskStage.BLOCKED, TaskStage.ESCALATED):
        return current != target
    return target in VALID_STAGE_TRANSITIONS[current]


class TaskContext(BaseModel):
    """What the task was created from."""

    event_id: Optional[str] = Field(None, description="Originating event ID")
    event_type: Optional[str] = Field(None, description="Originating event type")
    event_payload: Optional[Dict[str, Any]] = Field(None, description="Originating event payload")
    parent_task_id: Optional[str] = Field(None, description="Parent task ID")
    related_entity_type: Optional[str] = Field(None, description="Related entity type (e.g., 'grey_area')")
    related_entity_id: Optional[str] = Field(None, description="Related entity ID")


class TaskAssignment(BaseModel):
    """Current assignee of a task."""

    assignee_id: str = Field(..., description="Assigned employee ID")
    assignee_name: Optional[str] = Field(None, description="Assignee display name")
    assignee_email: Optional[str] = Field(None, description="Assignee email")
    method: str = Field(..., description="Assignment strategy that produced the assignee")
    assigned_at: datetime = Field(..., description="Assignment timestamp")
    assigned_by: str = Field("system", description="Who assigned the task")
    fallback_used: bool = Field(False, description="Whether a fallback strategy produced the assignee")
    role_profile_id: Optional[str] = Field(None, description="Role profile used for matching")
    previous_assignees: List[str] = Field(default_factory=list, description="Earlier assignee IDs")


class TaskDependency(BaseModel):
    """Dependency on another task."""

    task_id: str = Field(..., description="Dependent task ID")
    relation: str = Field("blocks", description="Relation type")
    status: str = Field("pending", description="Dependency status")


class TaskCompletion(BaseModel):
    """Completion record."""

    completed_at: datetime = Field(..., description="Completion timestamp")
    completed_by: str = Field(..., description="Who completed the task")
    notes: Optional[str] = Field(None, description="Completion notes")


class TaskEscalation(BaseModel):
    """Escalation record."""

    escalated_at: datetime = Field(..., description="Escalation timestamp")
    escalated_by: str = Field("system", description="Who escalated")
    reason: str = Field(..., description="Escalation reason")
    notes: Optional[str] = Field(None, description="Escalation notes")


class Task(BaseModel):
    """Work item produced by the orchestration engine."""

    id: str = Field(..., description="Unique task identifier")
    subsidiary_id: str = Field(..., description="Owning subsidiary")
    department_id: Optional[str] = Field(None, description="Owning department")
    title: str = Field(..., description="Task title")
    description: str = Field("", description="Task description")
    task_type: str = Field(..., description="Task type key")
    source: TaskSource = Field(TaskSource.EVENT_GENERATED, description="How the task was created")
    context: TaskContext = Field(default_factory=TaskContext, description="Creation context")
    status: TaskStatus = Field(TaskStatus.PENDING, description="Coarse status")
    stage: TaskStage = Field(TaskStage.PENDING_ASSIGNMENT, description="Lifecycle stage")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Priority tier")
    assignment: Optional[TaskAssignment] = Field(None, description="Current assignment")
    due_date: Optional[datetime] = Field(None, description="Deadline")
    dependencies: List[TaskDependency] = Field(default_factory=list, description="Task dependencies")
    completion: Optional[TaskCompletion] = Field(None, description="Completion record")
    escalations: List[TaskEscalation] = Field(default_factory=list, description="Escalation history")
    search_terms: List[str] = Field(default_factory=list, description="Search terms")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
