"""Employee directory data model for opsflow."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from opsflow.models.constants import ACTIVE_EMPLOYMENT_STATUSES


class EmploymentStatus(str, Enum):
    """Employment status enumeration."""
    ACTIVE = "active"
    PROBATION = "probation"
    SUSPENDED = "suspended"
    ON_LEAVE = "on_leave"
    TERMINATED = "terminated"


class ProficiencyLevel(str, Enum):
    """Skill proficiency, lowest to highest."""
    NOVICE = "novice"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


PROFICIENCY_ORDER = [
    ProficiencyLevel.NOVICE.value,
    ProficiencyLevel.INTERMEDIATE.value,
    ProficiencyLevel.ADVANCED.value,
    ProficiencyLevel.EXPERT.value,
]


class EmployeeSkill(BaseModel):
    """Skill held by an employee."""

    name: str = Field(..., description="Skill name")
    proficiency: ProficiencyLevel = Field(ProficiencyLevel.INTERMEDIATE, description="Proficiency level")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class Employee(BaseModel):
    """Identity directory record."""

    id: str = Field(..., description="Unique employee identifier")
    email: str = Field(..., description="Work email")
    external_id: Optional[str] = Field(None, description="Auth-system user ID")
    first_name: str = Field(..., description="First name")
    last_name: str = Field("", description="Last name")
    display_name: Optional[str] = Field(None, description="Display name")
    subsidiary_id: str = Field(..., description="Subsidiary")
    department_id: Optional[str] = Field(None, description="Department")
    position_title: str = Field("", description="Position title")
    reporting_to: Optional[str] = Field(None, description="Manager employee ID")
    is_department_head: bool = Field(False, description="Whether the employee heads their department")
    employment_status: EmploymentStatus = Field(EmploymentStatus.ACTIVE, description="Employment status")
    access_roles: List[str] = Field(default_factory=list, description="Explicit role grants (role slugs)")
    skills: List[EmployeeSkill] = Field(default_factory=list, description="Skills")
    active_task_count: int = Field(0, ge=0, description="Current active workload")
    last_assigned_at: Optional[datetime] = Field(None, description="Last assignment timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @property
    def name(self) -> str:
        return self.display_name or f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.employment_status in ACTIVE_EMPLOYMENT_STATUSES


class RoleSkill(BaseModel):
    """Skill requirement of a role profile."""

    name: str = Field(..., description="Skill name")
    required_level: ProficiencyLevel = Field(ProficiencyLevel.INTERMEDIATE, description="Minimum proficiency")
    is_core: bool = Field(False, description="Whether the skill is core to the role")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class RoleProfile(BaseModel):
    """Role definition used for role-based assignment."""

    slug: str = Field(..., description="Role slug (kebab-case)")
    title: str = Field(..., description="Role title")
    max_concurrent: Optional[int] = Field(None, description="Workload ceiling for holders of this role")
    skills: List[RoleSkill] = Field(default_factory=list, description="Skill requirements")
