"""SQLAlchemy database models for opsflow.

Nested pydantic structures (assignment, activity log, escalations, ...) are
stored as JSON columns; the fields the engine filters on are denormalized into
plain indexed columns. All timestamps are naive UTC.
"""

from datetime import datetime
import uuid
from typing import Type, TypeVar, Union
from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, JSON, Index

from opsflow.database.database import Base

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


def _dump(model):
    """JSON-safe dict for an optional pydantic model."""
    return model.model_dump(mode="json") if model is not None else None


def _dump_list(models):
    return [m.model_dump(mode="json") for m in models or []]


class EmployeeDB(Base):
    """Database model for Employee (the identity directory)."""

    __tablename__ = "employees"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, nullable=False, unique=True, index=True)
    external_id = Column(String, nullable=True, unique=True, index=True)

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, default="")
    display_name = Column(String, nullable=True)

    subsidiary_id = Column(String, nullable=False, index=True)
    department_id = Column(String, nullable=True, index=True)
    position_title = Column(String, nullable=False, default="")
    reporting_to = Column(String, nullable=True)
    is_department_head = Column(Boolean, nullable=False, default=False)
    employment_status = Column(String, nullable=False, default="active", index=True)

    access_roles = Column(JSON, nullable=False, default=list)
    skills = Column(JSON, nullable=False, default=list)

    # Workload counter; only ever changed with atomic UPDATEs
    active_task_count = Column(Integer, nullable=False, default=0)
    last_assigned_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from opsflow.models.employee import Employee, EmploymentStatus
        return Employee(
            id=self.id,
            email=self.email,
            external_id=self.external_id,
            first_name=self.first_name,
            last_name=self.last_name or "",
            display_name=self.display_name,
            subsidiary_id=self.subsidiary_id,
            department_id=self.department_id,
            position_title=self.position_title or "",
            reporting_to=self.reporting_to,
            is_department_head=self.is_department_head,
            employment_status=value_to_enum(self.employment_status, EmploymentStatus, EmploymentStatus.ACTIVE),
            access_roles=self.access_roles or [],
            skills=self.skills or [],
            active_task_count=self.active_task_count or 0,
            last_assigned_at=self.last_assigned_at,
        )

    @classmethod
    def from_pydantic(cls, employee):
        """Create database model from Pydantic model."""
        return cls(
            id=employee.id,
            email=employee.email,
            external_id=employee.external_id,
            first_name=employee.first_name,
            last_name=employee.last_name,
            display_name=employee.display_name,
            subsidiary_id=employee.subsidiary_id,
            department_id=employee.department_id,
            position_title=employee.position_title,
            reporting_to=employee.reporting_to,
            is_department_head=employee.is_department_head,
            employment_status=enum_to_value(employee.employment_status),
            access_roles=list(employee.access_roles),
            skills=_dump_list(employee.skills),
            active_task_count=employee.active_task_count,
            last_assigned_at=employee.last_assigned_at,
        )


class BusinessEventDB(Base):
    """Database model for BusinessEvent."""

    __tablename__ = "business_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    event_type = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False)
    source = Column(JSON, nullable=False)
    trigger = Column(JSON, nullable=True)
    payload = Column(JSON, nullable=False, default=dict)
    # `metadata` is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=False)
    subsidiary_id = Column(String, nullable=False, index=True)

    processing_status = Column(String, nullable=False, default="pending", index=True)
    tasks_generated = Column(JSON, nullable=False, default=list)
    retry_count = Column(Integer, nullable=False, default=0)
    processed_at = Column(DateTime, nullable=True)
    error_message = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from opsflow.models.event import BusinessEvent, EventProcessing, ProcessingStatus
        return BusinessEvent(
            id=self.id,
            event_type=self.event_type,
            category=self.category,
            source=self.source,
            trigger=self.trigger,
            payload=self.payload or {},
            metadata=self.event_metadata,
            processing=EventProcessing(
                status=value_to_enum(self.processing_status, ProcessingStatus, ProcessingStatus.PENDING),
                tasks_generated=self.tasks_generated or [],
                retry_count=self.retry_count or 0,
                processed_at=self.processed_at,
                error_message=self.error_message,
            ),
            created_at=self.created_at,
        )

    @classmethod
    def from_pydantic(cls, event):
        """Create database model from Pydantic model."""
        return cls(
            id=event.id,
            event_type=event.event_type,
            category=event.category,
            source=_dump(event.source),
            trigger=_dump(event.trigger),
            payload=event.payload,
            event_metadata=_dump(event.metadata),
            subsidiary_id=event.metadata.subsidiary_id,
            processing_status=enum_to_value(event.processing.status),
            tasks_generated=list(event.processing.tasks_generated),
            retry_count=event.processing.retry_count,
            processed_at=event.processing.processed_at,
            error_message=event.processing.error_message,
            created_at=event.created_at,
        )


class TaskDB(Base):
    """Database model for Task."""

    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_event_task_type", "event_id", "task_type"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    subsidiary_id = Column(String, nullable=False, index=True)
    department_id = Column(String, nullable=True, index=True)

    title = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    task_type = Column(String, nullable=False)
    source = Column(String, nullable=False, default="event_generated")

    # Context (denormalized event id for replay checks)
    context = Column(JSON, nullable=False, default=dict)
    event_id = Column(String, nullable=True, index=True)

    status = Column(String, nullable=False, default="pending", index=True)
    stage = Column(String, nullable=False, default="pending_assignment", index=True)
    priority = Column(String, nullable=False, default="medium")

    assignment = Column(JSON, nullable=True)
    assignee_id = Column(String, nullable=True, index=True)

    due_date = Column(DateTime, nullable=True, index=True)
    dependencies = Column(JSON, nullable=False, default=list)
    completion = Column(JSON, nullable=True)
    escalations = Column(JSON, nullable=False, default=list)
    search_terms = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from opsflow.models.task import Task, TaskPriority, TaskSource, TaskStage, TaskStatus
        return Task(
            id=self.id,
            subsidiary_id=self.subsidiary_id,
            department_id=self.department_id,
            title=self.title,
            description=self.description or "",
            task_type=self.task_type,
            source=value_to_enum(self.source, TaskSource, TaskSource.EVENT_GENERATED),
            context=self.context or {},
            status=value_to_enum(self.status, TaskStatus, TaskStatus.PENDING),
            stage=value_to_enum(self.stage, TaskStage, TaskStage.PENDING_ASSIGNMENT),
            priority=value_to_enum(self.priority, TaskPriority, TaskPriority.MEDIUM),
            assignment=self.assignment,
            due_date=self.due_date,
            dependencies=self.dependencies or [],
            completion=self.completion,
            escalations=self.escalations or [],
            search_terms=self.search_terms or [],
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, task):
        """Create database model from Pydantic model."""
        row = cls(id=task.id, created_at=task.created_at)
        row.apply(task)
        return row

    def apply(self, task):
        """Copy every mutable field from a Pydantic task onto this row."""
        self.subsidiary_id = task.subsidiary_id
        self.department_id = task.department_id
        self.title = task.title
        self.description = task.description
        self.task_type = task.task_type
        self.source = enum_to_value(task.source)
        self.context = _dump(task.context)
        self.event_id = task.context.event_id
        self.status = enum_to_value(task.status)
        self.stage = enum_to_value(task.stage)
        self.priority = enum_to_value(task.priority)
        self.assignment = _dump(task.assignment)
        self.assignee_id = task.assignment.assignee_id if task.assignment else None
        self.due_date = task.due_date
        self.dependencies = _dump_list(task.dependencies)
        self.completion = _dump(task.completion)
        self.escalations = _dump_list(task.escalations)
        self.search_terms = list(task.search_terms)
        self.updated_at = task.updated_at


class GreyAreaDB(Base):
    """Database model for GreyArea."""

    __tablename__ = "grey_areas"
    __table_args__ = (
        Index("ix_grey_areas_entity", "entity_type", "entity_id"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String, nullable=False)
    subsidiary_id = Column(String, nullable=False, index=True)
    department_id = Column(String, nullable=True)

    title = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    status = Column(String, nullable=False, default="detected", index=True)
    severity = Column(String, nullable=False, default="medium")

    detection_context = Column(JSON, nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)

    assigned_to = Column(JSON, nullable=True)
    assignee_id = Column(String, nullable=True, index=True)
    assigned_at = Column(DateTime, nullable=True)
    reviewer_roles = Column(JSON, nullable=False, default=list)

    current_escalation_level = Column(Integer, nullable=False, default=0)
    resolution_deadline = Column(DateTime, nullable=False, index=True)
    sla_hours = Column(Float, nullable=False)

    inputs_required = Column(JSON, nullable=False, default=list)
    escalations = Column(JSON, nullable=False, default=list)
    activity_log = Column(JSON, nullable=False, default=list)
    resolution = Column(JSON, nullable=True)
    search_terms = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from opsflow.models.grey_area import GreyArea, GreyAreaSeverity, GreyAreaStatus
        return GreyArea(
            id=self.id,
            type=self.type,
            subsidiary_id=self.subsidiary_id,
            department_id=self.department_id,
            title=self.title,
            description=self.description or "",
            status=value_to_enum(self.status, GreyAreaStatus, GreyAreaStatus.DETECTED),
            severity=value_to_enum(self.severity, GreyAreaSeverity, GreyAreaSeverity.MEDIUM),
            detection_context=self.detection_context,
            assigned_to=self.assigned_to,
            assigned_at=self.assigned_at,
            reviewer_roles=self.reviewer_roles or [],
            current_escalation_level=self.current_escalation_level or 0,
            resolution_deadline=self.resolution_deadline,
            sla_hours=self.sla_hours,
            inputs_required=self.inputs_required or [],
            escalations=self.escalations or [],
            activity_log=self.activity_log or [],
            resolution=self.resolution,
            search_terms=self.search_terms or [],
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, grey_area):
        """Create database model from Pydantic model."""
        row = cls(id=grey_area.id, created_at=grey_area.created_at)
        row.apply(grey_area)
        return row

    def apply(self, grey_area):
        """Copy every mutable field from a Pydantic grey area onto this row."""
        self.type = grey_area.type
        self.subsidiary_id = grey_area.subsidiary_id
        self.department_id = grey_area.department_id
        self.title = grey_area.title
        self.description = grey_area.description
        self.status = enum_to_value(grey_area.status)
        self.severity = enum_to_value(grey_area.severity)
        self.detection_context = _dump(grey_area.detection_context)
        self.entity_type = grey_area.detection_context.entity_type
        self.entity_id = grey_area.detection_context.entity_id
        self.assigned_to = _dump(grey_area.assigned_to)
        self.assignee_id = grey_area.assigned_to.id if grey_area.assigned_to else None
        self.assigned_at = grey_area.assigned_at
        self.reviewer_roles = list(grey_area.reviewer_roles)
        self.current_escalation_level = grey_area.current_escalation_level
        self.resolution_deadline = grey_area.resolution_deadline
        self.sla_hours = grey_area.sla_hours
        self.inputs_required = _dump_list(grey_area.inputs_required)
        self.escalations = _dump_list(grey_area.escalations)
        self.activity_log = _dump_list(grey_area.activity_log)
        self.resolution = _dump(grey_area.resolution)
        self.search_terms = list(grey_area.search_terms)
        self.updated_at = grey_area.updated_at


class NotificationDB(Base):
    """Database model for Notification (outbox read by delivery workers)."""

    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String, nullable=False)
    recipient_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    body = Column(String, nullable=False, default="")
    data = Column(JSON, nullable=False, default=dict)
    channels = Column(JSON, nullable=False, default=list)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from opsflow.models.notification import Notification
        return Notification(
            id=self.id,
            type=self.type,
            recipient_id=self.recipient_id,
            title=self.title,
            body=self.body or "",
            data=self.data or {},
            channels=self.channels or [],
            created_at=self.created_at,
            read=self.read,
        )

    @classmethod
    def from_pydantic(cls, notification):
        """Create database model from Pydantic model."""
        return cls(
            id=notification.id,
            type=notification.type,
            recipient_id=notification.recipient_id,
            title=notification.title,
            body=notification.body,
            data=notification.data,
            channels=list(notification.channels),
            read=notification.read,
            created_at=notification.created_at,
        )
