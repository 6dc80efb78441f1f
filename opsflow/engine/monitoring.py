"""Periodic monitoring sweeps.

Run on a schedule (or through `POST /monitoring/run`):
overdue tasks escalate, unassigned tasks are retried through their
department, and grey areas past their resolution deadline escalate to the
reviewer's manager. One bad record is logged and skipped, never fatal to the
sweep.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from opsflow.database.employee_repository import EmployeeRepository
from opsflow.database.task_repository import TaskRepository
from opsflow.engine.assignment import AssignmentContext, AssignmentResolver
from opsflow.engine.errors import EscalationLimitError, InvalidInputError
from opsflow.engine.grey_areas import SYSTEM_ACTOR, GreyAreaEngine
from opsflow.engine.priority import escalate_priority
from opsflow.models.catalog import AssignmentRule
from opsflow.models.config import DetectionEngineConfig, EngineConfig
from opsflow.models.task import Task, TaskAssignment, TaskEscalation, TaskStage, validate_stage_transition
from opsflow.notifications.dispatcher import NotificationDispatcher, StoredNotificationDispatcher

logger = logging.getLogger(__name__)

RETRY_METHOD = "fallback"


class MonitoringReport(BaseModel):
    """Counts from one monitoring run."""

    tasks_escalated: List[str] = Field(default_factory=list, description="Escalated task IDs")
    tasks_reassigned: List[str] = Field(default_factory=list, description="Newly assigned task IDs")
    grey_areas_escalated: List[str] = Field(default_factory=list, description="Escalated grey area IDs")
    errors: List[str] = Field(default_factory=list, description="Per-record failures")


class MonitoringService:
    """Scheduled sweeps over tasks and grey areas."""

    def __init__(
        self,
        db: Session,
        config: Optional[EngineConfig] = None,
        detection_config: Optional[DetectionEngineConfig] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        resolver: Optional[AssignmentResolver] = None,
    ):
        self.db = db
        self.config = config or EngineConfig()
        self.tasks = TaskRepository(db)
        self.directory = EmployeeRepository(db)
        self.resolver = resolver or AssignmentResolver(self.directory, self.config)
        self.dispatcher = dispatcher or StoredNotificationDispatcher(db)
        self.grey_area_engine = GreyAreaEngine(
            db,
            config=detection_config,
            dispatcher=self.dispatcher,
            resolver=self.resolver,
            engine_config=self.config,
        )

    def run(self, now: Optional[datetime] = None) -> MonitoringReport:
        """Run every sweep once."""
        now = now or datetime.utcnow()
        report = MonitoringReport()
        report.tasks_escalated = self.escalate_overdue_tasks(now, report.errors)
        report.tasks_reassigned = self.retry_unassigned_tasks(now, errors=report.errors)
        report.grey_areas_escalated = self.escalate_overdue_grey_areas(now, report.errors)
        logger.info(
            f"Monitoring run: {len(report.tasks_escalated)} task(s) escalated, "
            f"{len(report.tasks_reassigned)} reassigned, {len(report.grey_areas_escalated)} grey area(s) escalated"
        )
        return report

    def escalate_overdue_tasks(self, now: datetime, errors: Optional[List[str]] = None) -> List[str]:
        """Escalate tasks overdue by at least their priority's threshold.

        The stage becomes `escalated` and the priority moves up one tier.

        Args:
            now: Reference time (naive UTC)
            errors: Optional list collecting per-task failures

        Returns:
            IDs of escalated tasks
        """
        escalated: List[str] = []
        for task in self.tasks.list_overdue(now):
            threshold = self.config.overdue_escalation_hours.get(task.priority, 0)
            overdue_hours = (now - task.due_date).total_seconds() / 3600
            if overdue_hours < threshold:
                continue
            if not validate_stage_transition(task.stage, TaskStage.ESCALATED.value):
                logger.debug(f"Task {task.id} cannot move from {task.stage} to escalated")
                continue
            try:
                self._escalate_task(task, overdue_hours, now)
                escalated.append(task.id)
            except Exception as e:
                message = f"Failed to escalate task {task.id}: {type(e).__name__}: {str(e)}"
                logger.error(message)
                if errors is not None:
                    errors.append(message)
        return escalated

    def _escalate_task(self, task: Task, overdue_hours: float, now: datetime) -> None:
        escalation = TaskEscalation(
            escalated_at=now,
            reason=f"Overdue by {overdue_hours:.1f} hours",
            notes=f"Priority raised from {task.priority}",
        )
        updated = self.tasks.update(task.model_copy(update={
            "stage": TaskStage.ESCALATED.value,
            "priority": escalate_priority(task.priority).value,
            "escalations": task.escalations + [escalation],
            "updated_at": now,
        }))
        logger.warning(f"Task {task.id} escalated: {escalation.reason}")

        if self.config.notify_on_escalation and updated.assignment:
            self.dispatcher.notify(
                "task_escalated",
                updated.assignment.assignee_id,
                "Overdue Task Escalated",
                updated.title,
                data={"task_id": updated.id, "priority": updated.priority},
            )

    def retry_unassigned_tasks(self, now: datetime, min_age_hours: Optional[float] = None,
                               errors: Optional[List[str]] = None) -> List[str]:
        """Retry assignment of tasks stuck in `pending_assignment`.

        Each task goes through the department strategy of its own department
        (head, else the least loaded member).

        Returns:
            IDs of tasks that are now assigned
        """
        if min_age_hours is None:
            min_age_hours = self.config.unassigned_retry_after_hours
        cutoff = now - timedelta(hours=min_age_hours)

        assigned: List[str] = []
        for task in self.tasks.list_unassigned(created_before=cutoff):
            if not task.department_id:
                logger.debug(f"Task {task.id} has no department; cannot retry assignment")
                continue
            try:
                if self._retry_task(task, now):
                    assigned.append(task.id)
            except Exception as e:
                message = f"Failed to retry assignment of task {task.id}: {type(e).__name__}: {str(e)}"
                logger.error(message)
                if errors is not None:
                    errors.append(message)
        return assigned

    def _retry_task(self, task: Task, now: datetime) -> bool:
        result = self.resolver.resolve(
            AssignmentRule(type="department", value=task.department_id),
            AssignmentContext(subsidiary_id=task.subsidiary_id, department_id=task.department_id),
        )
        if not result.resolved:
            logger.info(f"Task {task.id} still unassigned: {result.error}")
            return False

        assignment = TaskAssignment(
            assignee_id=result.assignee_id,
            assignee_name=result.assignee_name,
            assignee_email=result.assignee_email,
            method=RETRY_METHOD,
            assigned_at=now,
            fallback_used=True,
        )
        updated = self.tasks.update(task.model_copy(update={
            "stage": TaskStage.ASSIGNED.value,
            "assignment": assignment,
            "updated_at": now,
        }))
        self.directory.increment_workload(result.assignee_id, now)
        logger.info(f"Task {task.id} assigned to {result.assignee_id} on retry")

        if self.config.notify_on_assignment:
            self.dispatcher.notify(
                "task_assigned",
                result.assignee_id,
                "New Task Assigned",
                updated.title,
                data={"task_id": updated.id, "task_type": updated.task_type, "priority": updated.priority},
            )
        return True

    def escalate_overdue_grey_areas(self, now: datetime, errors: Optional[List[str]] = None) -> List[str]:
        """Escalate open grey areas past their resolution deadline.

        A grey area already escalated after its deadline passed is left
        alone until someone acts on it.

        Returns:
            IDs of escalated grey areas
        """
        escalated: List[str] = []
        for grey_area in self.grey_area_engine.overdue(now):
            last = grey_area.escalations[-1] if grey_area.escalations else None
            if last and last.escalated_at >= grey_area.resolution_deadline:
                continue
            try:
                self.grey_area_engine.escalate(
                    grey_area.id,
                    f"Resolution deadline passed ({grey_area.resolution_deadline.isoformat()})",
                    SYSTEM_ACTOR,
                )
                escalated.append(grey_area.id)
            except (InvalidInputError, EscalationLimitError) as e:
                logger.warning(f"Cannot escalate overdue grey area {grey_area.id}: {str(e)}")
            except Exception as e:
                message = f"Failed to escalate grey area {grey_area.id}: {type(e).__name__}: {str(e)}"
                logger.error(message)
                if errors is not None:
                    errors.append(message)
        return escalated
