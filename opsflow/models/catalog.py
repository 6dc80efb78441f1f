"""Declarative rule configuration for opsflow.

Event definitions, task rules, assignment rules and detection rules are data,
loaded at startup (and reloadable), never compiled branches.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from opsflow.models.condition import Condition, ConditionLogic
from opsflow.models.constants import MAX_FALLBACK_DEPTH


class AssignmentType(str, Enum):
    """Assignment strategy enumeration."""
    ROLE = "role"
    DEPARTMENT = "department"
    USER = "user"
    MANAGER = "manager"
    CREATOR = "creator"
    DYNAMIC = "dynamic"


class RulePriority(str, Enum):
    """Catalog priority tier."""
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


class AssignmentRule(BaseModel):
    """Strategy for choosing who does a work item, with an optional fallback."""

    type: AssignmentType = Field(..., description="Assignment strategy")
    value: Optional[str] = Field(None, description="Role slug, department id, user id or payload path")
    fallback: Optional[AssignmentRule] = Field(None, description="Rule tried when this one fails")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @field_validator("fallback")
    @classmethod
    def _cap_chain_depth(cls, fallback: Optional[AssignmentRule]) -> Optional[AssignmentRule]:
        if fallback is not None and len(fallback.chain()) >= MAX_FALLBACK_DEPTH:
            raise ValueError(f"Fallback chain deeper than {MAX_FALLBACK_DEPTH}")
        return fallback

    def chain(self) -> List[AssignmentRule]:
        """Flatten the rule and its fallbacks, primary first."""
        rules: List[AssignmentRule] = []
        current: Optional[AssignmentRule] = self
        while current is not None:
            rules.append(current)
            current = current.fallback
        return rules


class TaskRule(BaseModel):
    """One kind of work item spawned from a matching event."""

    task_type: str = Field(..., description="Task type key")
    title: str = Field(..., description="Title template")
    description: str = Field("", description="Description template")
    priority: RulePriority = Field(RulePriority.P2, description="Rule priority tier")
    due_in_days: Optional[float] = Field(None, description="Explicit SLA in days (else tier default)")
    assign_to: AssignmentRule = Field(..., description="Assignment strategy")
    conditions: Optional[List[Condition]] = Field(
        None,
        description="Conditions on the event payload; None means unconditional",
    )
    condition_logic: ConditionLogic = Field(ConditionLogic.AND, description="How conditions combine")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class NotificationRule(BaseModel):
    """Event-level notification fan-out."""

    channels: List[str] = Field(default_factory=lambda: ["in-app"], description="Delivery channels")
    recipients: List[AssignmentRule] = Field(default_factory=list, description="Recipient strategies")
    template: str = Field(..., description="Notification template key")


class PayloadSchema(BaseModel):
    """Minimal payload schema: required keys plus declared property types."""

    required: List[str] = Field(default_factory=list, description="Required payload keys")
    properties: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Property declarations")


class EventDefinition(BaseModel):
    """Catalog entry mapping an event type to its rules."""

    event_type: str = Field(..., description="Event type key")
    name: str = Field("", description="Human-readable name")
    description: str = Field("", description="Description")
    category: str = Field("", description="Event category")
    payload_schema: PayloadSchema = Field(default_factory=PayloadSchema, description="Payload schema")
    tasks: List[TaskRule] = Field(default_factory=list, description="Ordered task rules")
    notifications: List[NotificationRule] = Field(default_factory=list, description="Notification rules")
    enabled: bool = Field(True, description="Whether the definition is active")


class DetectionRule(BaseModel):
    """Rule raising a grey area from an arbitrary entity."""

    id: str = Field(..., description="Rule identifier")
    name: str = Field(..., description="Rule name")
    description: str = Field("", description="Rule description")
    enabled: bool = Field(True, description="Whether the rule is active")
    entity_types: List[str] = Field(default_factory=list, description="Applicable entity types")
    event_types: Optional[List[str]] = Field(None, description="Applicable event types")
    subsidiary_ids: Optional[List[str]] = Field(None, description="Applicable subsidiaries")
    conditions: List[Condition] = Field(default_factory=list, description="Detection conditions")
    condition_logic: ConditionLogic = Field(ConditionLogic.AND, description="How conditions combine")
    grey_area_type: str = Field(..., description="Grey area type raised")
    severity: str = Field("medium", description="Severity (low/medium/high/critical)")
    sla_hours: Optional[float] = Field(None, description="Resolution SLA (else severity default)")
    assign_to_roles: List[str] = Field(default_factory=list, description="Reviewer roles, in preference order")
    assign_to_department: Optional[str] = Field(None, description="Department scope for reviewers")
    title_template: str = Field(..., description="Title template")
    description_template: str = Field("", description="Description template")
    priority: int = Field(50, description="Evaluation order (higher first)")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


AssignmentRule.model_rebuild()
