"""Data models for opsflow."""

from opsflow.models.condition import Condition, ConditionOperator, ConditionLogic
from opsflow.models.event import (
    BusinessEvent,
    EventSource,
    EventTrigger,
    EventMetadata,
    EventProcessing,
    ProcessingStatus,
)
from opsflow.models.catalog import (
    AssignmentRule,
    AssignmentType,
    DetectionRule,
    EventDefinition,
    NotificationRule,
    PayloadSchema,
    RulePriority,
    TaskRule,
)
from opsflow.models.task import Task, TaskStatus, TaskStage, TaskPriority, TaskSource, TaskContext, TaskAssignment
from opsflow.models.grey_area import GreyArea, GreyAreaStatus, GreyAreaSeverity, Actor
from opsflow.models.employee import Employee, EmploymentStatus, RoleProfile
from opsflow.models.notification import Notification
from opsflow.models.config import BusinessHours, EngineConfig, DetectionEngineConfig

__all__ = [
    "Condition",
    "ConditionOperator",
    "ConditionLogic",
    "BusinessEvent",
    "EventSource",
    "EventTrigger",
    "EventMetadata",
    "EventProcessing",
    "ProcessingStatus",
    "AssignmentRule",
    "AssignmentType",
    "DetectionRule",
    "EventDefinition",
    "NotificationRule",
    "PayloadSchema",
    "RulePriority",
    "TaskRule",
    "Task",
    "TaskStatus",
    "TaskStage",
    "TaskPriority",
    "TaskSource",
    "TaskContext",
    "TaskAssignment",
    "GreyArea",
    "GreyAreaStatus",
    "GreyAreaSeverity",
    "Actor",
    "Employee",
    "EmploymentStatus",
    "RoleProfile",
    "Notification",
    "BusinessHours",
    "EngineConfig",
    "DetectionEngineConfig",
]
