"""Engine configuration for opsflow.

Engine behavior is parameterized by an injected config object. Defaults live
in `opsflow.models.constants`; `from_env()` applies `OPSFLOW_*` overrides.
"""

import os
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

from opsflow.models.constants import (
    BUSINESS_END_HOUR,
    BUSINESS_START_HOUR,
    BUSINESS_TIMEZONE,
    DEFAULT_MAX_TASKS_PER_PERSON,
    DEFAULT_SEVERITY_SLA_HOURS,
    DEFAULT_TASK_SLA_HOURS,
    OVERDUE_ESCALATION_HOURS,
    WORKWEEK_DAYS,
)

load_dotenv()


class BusinessHours(BaseModel):
    """Business-hours window used by the deadline calculator."""

    start_hour: int = Field(BUSINESS_START_HOUR, ge=0, le=23, description="First business hour")
    end_hour: int = Field(BUSINESS_END_HOUR, ge=1, le=24, description="Hour business ends (exclusive)")
    workdays: Tuple[int, ...] = Field(WORKWEEK_DAYS, description="Working weekdays (Monday=0)")
    timezone: str = Field(BUSINESS_TIMEZONE, description="IANA timezone of the business day")

    @field_validator("end_hour")
    @classmethod
    def _end_after_start(cls, end_hour: int, info) -> int:
        start_hour = info.data.get("start_hour", BUSINESS_START_HOUR)
        if end_hour <= start_hour:
            raise ValueError("end_hour must be after start_hour")
        return end_hour

    @field_validator("workdays")
    @classmethod
    def _at_least_one_workday(cls, workdays: Tuple[int, ...]) -> Tuple[int, ...]:
        if not workdays or any(d < 0 or d > 6 for d in workdays):
            raise ValueError("workdays must be non-empty weekday numbers 0-6")
        return tuple(sorted(set(workdays)))


class EngineConfig(BaseModel):
    """Task generation engine configuration."""

    default_sla_hours: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_TASK_SLA_HOURS),
        description="SLA hours per priority tier when a rule has no due_in_days",
    )
    business_hours: BusinessHours = Field(default_factory=BusinessHours, description="Business-hours window")
    business_hours_only: bool = Field(True, description="Compute deadlines in business hours")
    exclude_weekends: bool = Field(True, description="Skip non-working days when computing deadlines")
    max_assignment_retries: int = Field(3, ge=0, description="Maximum fallback steps tried")
    max_tasks_per_person: int = Field(DEFAULT_MAX_TASKS_PER_PERSON, gt=0, description="Default workload ceiling")
    workload_balancing_enabled: bool = Field(True, description="Prefer lower workload when ranking")
    max_escalation_level: int = Field(5, ge=1, description="Highest grey area escalation level")
    notify_on_assignment: bool = Field(True, description="Notify assignees of new tasks")
    notify_on_escalation: bool = Field(True, description="Notify on escalations")
    overdue_escalation_hours: Dict[str, float] = Field(
        default_factory=lambda: dict(OVERDUE_ESCALATION_HOURS),
        description="Hours past due before an overdue task escalates",
    )
    unassigned_retry_after_hours: float = Field(2, ge=0, description="Age before unassigned tasks are retried")
    slow_rule_warning_seconds: float = Field(10.0, gt=0, description="Rule duration logged as a warning")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from defaults plus OPSFLOW_* environment overrides."""
        overrides = _env_overrides(
            ints={
                "OPSFLOW_MAX_ASSIGNMENT_RETRIES": "max_assignment_retries",
                "OPSFLOW_MAX_TASKS_PER_PERSON": "max_tasks_per_person",
                "OPSFLOW_MAX_ESCALATION_LEVEL": "max_escalation_level",
            },
            bools={
                "OPSFLOW_WORKLOAD_BALANCING": "workload_balancing_enabled",
                "OPSFLOW_NOTIFY_ON_ASSIGNMENT": "notify_on_assignment",
                "OPSFLOW_NOTIFY_ON_ESCALATION": "notify_on_escalation",
                "OPSFLOW_BUSINESS_HOURS_ONLY": "business_hours_only",
                "OPSFLOW_EXCLUDE_WEEKENDS": "exclude_weekends",
            },
            floats={
                "OPSFLOW_SLOW_RULE_WARNING_SEC": "slow_rule_warning_seconds",
                "OPSFLOW_UNASSIGNED_RETRY_AFTER_HOURS": "unassigned_retry_after_hours",
            },
        )
        hours = _business_hours_from_env()
        if hours:
            overrides["business_hours"] = hours
        return cls(**overrides)


class DetectionEngineConfig(BaseModel):
    """Grey area detection engine configuration."""

    enable_rule_engine: bool = Field(True, description="Run detection rules at all")
    default_sla_hours: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SEVERITY_SLA_HOURS),
        description="Resolution SLA per severity when a rule has none",
    )
    business_hours: BusinessHours = Field(default_factory=BusinessHours, description="Business-hours window")
    business_hours_only: bool = Field(False, description="Compute resolution deadlines in business hours")
    exclude_weekends: bool = Field(False, description="Skip non-working days for resolution deadlines")
    notify_on_detection: bool = Field(True, description="Notify the reviewer on detection")
    notify_on_escalation: bool = Field(True, description="Notify on escalation")
    max_escalation_level: int = Field(5, ge=1, description="Highest escalation level")
    reviewer_capacity: int = Field(20, gt=0, description="Workload ceiling for grey area reviewers")

    @classmethod
    def from_env(cls) -> "DetectionEngineConfig":
        """Build a config from defaults plus OPSFLOW_DETECTION_* (and shared business-hours) overrides."""
        overrides = _env_overrides(
            ints={
                "OPSFLOW_DETECTION_MAX_ESCALATION_LEVEL": "max_escalation_level",
                "OPSFLOW_DETECTION_REVIEWER_CAPACITY": "reviewer_capacity",
            },
            bools={
                "OPSFLOW_DETECTION_ENABLED": "enable_rule_engine",
                "OPSFLOW_DETECTION_BUSINESS_HOURS_ONLY": "business_hours_only",
                "OPSFLOW_DETECTION_EXCLUDE_WEEKENDS": "exclude_weekends",
                "OPSFLOW_DETECTION_NOTIFY_ON_DETECTION": "notify_on_detection",
                "OPSFLOW_DETECTION_NOTIFY_ON_ESCALATION": "notify_on_escalation",
            },
        )
        hours = _business_hours_from_env()
        if hours:
            overrides["business_hours"] = hours
        return cls(**overrides)


def _env_overrides(ints: Dict[str, str], bools: Dict[str, str],
                   floats: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Map set environment variables onto config field names."""
    overrides: Dict[str, Any] = {}
    for env_key, field in ints.items():
        if os.getenv(env_key):
            overrides[field] = int(os.environ[env_key])
    for env_key, field in bools.items():
        if os.getenv(env_key):
            overrides[field] = os.environ[env_key].lower() == "true"
    for env_key, field in (floats or {}).items():
        if os.getenv(env_key):
            overrides[field] = float(os.environ[env_key])
    return overrides


def _business_hours_from_env() -> Optional[BusinessHours]:
    hours: Dict[str, Any] = {}
    if os.getenv("OPSFLOW_BUSINESS_START_HOUR"):
        hours["start_hour"] = int(os.environ["OPSFLOW_BUSINESS_START_HOUR"])
    if os.getenv("OPSFLOW_BUSINESS_END_HOUR"):
        hours["end_hour"] = int(os.environ["OPSFLOW_BUSINESS_END_HOUR"])
    if os.getenv("OPSFLOW_WORKDAYS"):
        hours["workdays"] = tuple(int(d) for d in os.environ["OPSFLOW_WORKDAYS"].split(","))
    if os.getenv("OPSFLOW_TIMEZONE"):
        hours["timezone"] = os.environ["OPSFLOW_TIMEZONE"]
    return BusinessHours(**hours) if hours else None
