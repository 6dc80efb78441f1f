"""Orchestration engine for opsflow."""

from opsflow.engine.conditions import evaluate_condition, evaluate_conditions, get_nested_value
from opsflow.engine.templates import interpolate_template
from opsflow.engine.priority import PriorityFactors, calculate_task_priority, escalate_priority
from opsflow.engine.deadlines import calculate_deadline, business_hours_between
from opsflow.engine.assignment import AssignmentResolver, AssignmentContext, AssignmentOptions, AssignmentResult
from opsflow.engine.task_generation import TaskGenerator, BatchGenerationResult, process_business_event
from opsflow.engine.grey_areas import GreyAreaEngine
from opsflow.engine.monitoring import MonitoringService, MonitoringReport

__all__ = [
    "evaluate_condition",
    "evaluate_conditions",
    "get_nested_value",
    "interpolate_template",
    "PriorityFactors",
    "calculate_task_priority",
    "escalate_priority",
    "calculate_deadline",
    "business_hours_between",
    "AssignmentResolver",
    "AssignmentContext",
    "AssignmentOptions",
    "AssignmentResult",
    "TaskGenerator",
    "BatchGenerationResult",
    "process_business_event",
    "GreyAreaEngine",
    "MonitoringService",
    "MonitoringReport",
]
