"""Task generation from business events.

For each task rule of the event's catalog entry, independently:
conditions -> assignment -> priority -> deadline -> interpolation -> persist
-> workload increment -> assignment notification. A failing rule never
aborts the others; failures are collected on the batch result.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from opsflow.catalog.event_catalog import EventCatalog, default_event_catalog
from opsflow.database.employee_repository import EmployeeRepository
from opsflow.database.event_repository import EventRepository
from opsflow.database.task_repository import TaskRepository
from opsflow.engine.assignment import AssignmentContext, AssignmentResolver, AssignmentResult
from opsflow.engine.conditions import evaluate_conditions
from opsflow.engine.deadlines import as_utc, calculate_deadline, to_naive_utc
from opsflow.engine.errors import InvalidEventPayload
from opsflow.engine.priority import (
    PriorityFactors,
    calculate_task_priority,
    extract_customer_tier,
    extract_financial_impact,
    map_rule_priority,
)
from opsflow.engine.templates import interpolate_template
from opsflow.models.catalog import EventDefinition, NotificationRule, TaskRule
from opsflow.models.config import EngineConfig
from opsflow.models.event import BusinessEvent, ProcessingStatus
from opsflow.models.task import Task, TaskAssignment, TaskContext, TaskSource
from opsflow.models.task_factory import create_task_base, generate_search_terms
from opsflow.notifications.dispatcher import NotificationDispatcher, StoredNotificationDispatcher

logger = logging.getLogger(__name__)

SKIP_CONDITIONS_NOT_MET = "Conditions not met"
SKIP_ALREADY_GENERATED = "Task already generated for this event"

PAYLOAD_TYPES = {
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


class TaskGenerationResult(BaseModel):
    """Outcome of one task rule."""

    task_type: str = Field(..., description="Task type of the rule")
    status: str = Field(..., description="created, skipped or failed")
    task_id: Optional[str] = Field(None, description="Created task ID")
    priority: Optional[str] = Field(None, description="Computed priority")
    due_date: Optional[datetime] = Field(None, description="Computed deadline (naive UTC)")
    assigned_to: Optional[str] = Field(None, description="Assignee employee ID")
    assignment_method: Optional[str] = Field(None, description="Strategy that resolved the assignee")
    fallback_used: bool = Field(False, description="Whether a fallback strategy resolved the assignee")
    assignment_error: Optional[str] = Field(None, description="Why the task was left unassigned")
    skip_reason: Optional[str] = Field(None, description="Why the rule was skipped")
    error: Optional[str] = Field(None, description="Failure message")
    duration_ms: float = Field(0, description="Wall-clock time spent on the rule")

    @property
    def created(self) -> bool:
        return self.status == "created"


class BatchGenerationResult(BaseModel):
    """Outcome of processing one event."""

    event_id: str
    event_type: str
    tasks_generated: int = 0
    tasks_skipped: int = 0
    results: List[TaskGenerationResult] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    processing_time_ms: float = 0
    status: str = Field(ProcessingStatus.COMPLETED.value, description="Final processing status of the event")


def validate_event_payload(definition: Optional[EventDefinition], payload: Dict[str, Any]) -> List[str]:
    """Check a payload against a definition's schema.

    Returns:
        Validation errors (empty when valid or when there is no definition)
    """
    if definition is None:
        return []
    errors: List[str] = []
    schema = definition.payload_schema
    for key in schema.required:
        if payload.get(key) is None:
            errors.append(f"Missing required field: {key}")
    for key, declaration in schema.properties.items():
        value = payload.get(key)
        expected = PAYLOAD_TYPES.get(declaration.get("type", ""))
        if value is None or expected is None:
            continue
        is_bool = isinstance(value, bool)
        if not isinstance(value, expected) or (is_bool and bool not in expected):
            errors.append(f"Field {key} must be of type {declaration['type']}")
    return errors


def submit_business_event(db: Session, event: BusinessEvent, catalog: Optional[EventCatalog] = None) -> BusinessEvent:
    """Validate and store an inbound event.

    Invalid payloads are rejected before anything is written. Resubmitting an
    existing event id returns the stored event untouched.

    Raises:
        InvalidEventPayload: payload fails the catalog schema
    """
    catalog = catalog or default_event_catalog()
    errors = validate_event_payload(catalog.get(event.event_type), event.payload)
    if errors:
        raise InvalidEventPayload(event.event_type, errors)

    events = EventRepository(db)
    existing = events.get(event.id)
    if existing is not None:
        return existing
    stored = event.model_copy(update={"created_at": to_naive_utc(event.created_at)})
    logger.info(f"Accepted event {event.id} ({event.event_type})")
    return events.create_or_update(stored)


class TaskGenerator:
    """Turns business events into assigned, prioritized, deadline-bound tasks."""

    def __init__(
        self,
        db: Session,
        config: Optional[EngineConfig] = None,
        catalog: Optional[EventCatalog] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        resolver: Optional[AssignmentResolver] = None,
    ):
        self.db = db
        self.config = config or EngineConfig()
        self.catalog = catalog or default_event_catalog()
        self.tasks = TaskRepository(db)
        self.events = EventRepository(db)
        self.directory = EmployeeRepository(db)
        self.resolver = resolver or AssignmentResolver(self.directory, self.config)
        self.dispatcher = dispatcher or StoredNotificationDispatcher(db)

    def process_business_event(self, event: BusinessEvent) -> BatchGenerationResult:
        """Run every task rule of the event's definition.

        Unknown or disabled event types produce zero tasks and mark the event
        `skipped`. Otherwise the event ends `completed`, or `failed` when
        every rule that was not skipped errored. The processing state is
        written once, at the end of the run.

        Args:
            event: Event to process

        Returns:
            BatchGenerationResult
        """
        started = time.monotonic()
        batch = BatchGenerationResult(event_id=event.id, event_type=event.event_type)
        stored = self.events.get(event.id)
        previously_processed = stored is not None and stored.processing.status != ProcessingStatus.PENDING.value
        retry_count = (stored or event).processing.retry_count + (1 if previously_processed else 0)
        known_task_ids = list(stored.processing.tasks_generated) if stored else []

        definition = self.catalog.get(event.event_type)
        if definition is None or not definition.enabled:
            if definition is None:
                batch.errors.append(f"Unknown event type: {event.event_type}")
                logger.warning(f"Unknown event type {event.event_type} for event {event.id}")
            else:
                logger.info(f"Event type {event.event_type} is disabled; skipping event {event.id}")
            batch.status = ProcessingStatus.SKIPPED.value
            return self._finish(event, batch, started, retry_count, known_task_ids)

        for rule in definition.tasks:
            rule_started = time.monotonic()
            try:
                result = self.generate_task(event, rule)
            except Exception as e:
                message = f"Error generating task {rule.task_type}: {type(e).__name__}: {str(e)}"
                logger.error(f"Event {event.id}: {message}")
                batch.errors.append(message)
                result = TaskGenerationResult(task_type=rule.task_type, status="failed", error=str(e))

            result.duration_ms = (time.monotonic() - rule_started) * 1000
            if result.duration_ms > self.config.slow_rule_warning_seconds * 1000:
                logger.warning(f"Rule {rule.task_type} for event {event.id} took {result.duration_ms:.0f}ms")
            batch.results.append(result)

        if definition.notifications:
            self._dispatch_event_notifications(event, definition.notifications)

        batch.tasks_generated = sum(1 for r in batch.results if r.created)
        batch.tasks_skipped = sum(1 for r in batch.results if r.status == "skipped")
        attempted = [r for r in batch.results if r.status != "skipped"]
        if attempted and all(r.status == "failed" for r in attempted):
            batch.status = ProcessingStatus.FAILED.value
        return self._finish(event, batch, started, retry_count, known_task_ids)

    def generate_task(self, event: BusinessEvent, rule: TaskRule) -> TaskGenerationResult:
        """Generate (at most) one task from one rule.

        Raises whatever the directory or store raises; the batch loop turns
        that into a failed result.
        """
        if rule.conditions is not None and not evaluate_conditions(rule.conditions, rule.condition_logic,
                                                                   event.payload):
            return TaskGenerationResult(task_type=rule.task_type, status="skipped", skip_reason=SKIP_CONDITIONS_NOT_MET)

        if self.tasks.exists_for_event(event.id, rule.task_type):
            return TaskGenerationResult(task_type=rule.task_type, status="skipped", skip_reason=SKIP_ALREADY_GENERATED)

        context = AssignmentContext(
            subsidiary_id=event.metadata.subsidiary_id,
            department_id=event.metadata.department_id,
            trigger_user_id=event.triggering_user_id,
            entity_data=event.payload,
        )
        assignment = self.resolver.resolve(rule.assign_to, context)

        priority = calculate_task_priority(PriorityFactors(
            base_priority=map_rule_priority(rule.priority),
            event_priority=event.metadata.priority,
            customer_tier=extract_customer_tier(event.payload),
            financial_impact=extract_financial_impact(event.payload),
        ))

        sla_hours = rule.due_in_days * 24 if rule.due_in_days else self.config.default_sla_hours[priority.value]
        due_date = calculate_deadline(
            as_utc(event.created_at),
            sla_hours,
            priority.value,
            business_hours_only=self.config.business_hours_only,
            exclude_weekends=self.config.exclude_weekends,
            business_hours=self.config.business_hours,
        )

        event_context = event.model_dump(mode="json")
        title = interpolate_template(rule.title, event.payload, event_context)
        description = interpolate_template(rule.description, event.payload, event_context)

        now = datetime.utcnow()
        task = create_task_base(
            subsidiary_id=event.metadata.subsidiary_id,
            department_id=event.metadata.department_id,
            title=title,
            description=description,
            task_type=rule.task_type,
            source=TaskSource.EVENT_GENERATED,
            context=TaskContext(event_id=event.id, event_type=event.event_type, event_payload=event.payload),
            priority=priority,
            assignment=self._task_assignment(assignment, now),
            due_date=to_naive_utc(due_date),
            search_terms=generate_search_terms(title, extra=[rule.task_type, event.event_type]),
            now=now,
        )
        task = self.tasks.create(task)

        if assignment.resolved:
            self.directory.increment_workload(assignment.assignee_id, now)
            if self.config.notify_on_assignment:
                self._notify_assignee(task)
        else:
            logger.warning(f"Task {task.id} ({rule.task_type}) left unassigned: {assignment.error}")

        return TaskGenerationResult(
            task_type=rule.task_type,
            status="created",
            task_id=task.id,
            priority=task.priority,
            due_date=task.due_date,
            assigned_to=assignment.assignee_id,
            assignment_method=assignment.method if assignment.resolved else None,
            fallback_used=assignment.fallback_used,
            assignment_error=assignment.error,
        )

    @staticmethod
    def _task_assignment(assignment: AssignmentResult, now: datetime) -> Optional[TaskAssignment]:
        if not assignment.resolved:
            return None
        return TaskAssignment(
            assignee_id=assignment.assignee_id,
            assignee_name=assignment.assignee_name,
            assignee_email=assignment.assignee_email,
            method=assignment.method,
            assigned_at=now,
            fallback_used=assignment.fallback_used,
            role_profile_id=assignment.role_profile_id,
        )

    def _notify_assignee(self, task: Task) -> None:
        self.dispatcher.notify(
            "task_assigned",
            task.assignment.assignee_id,
            "New Task Assigned",
            task.title,
            data={
                "task_id": task.id,
                "task_type": task.task_type,
                "priority": task.priority,
                "due_date": task.due_date.isoformat() if task.due_date else None,
            },
        )

    def _dispatch_event_notifications(self, event: BusinessEvent, rules: List[NotificationRule]) -> None:
        """Fan an event out to the recipients of its catalog notification rules."""
        context = AssignmentContext(
            subsidiary_id=event.metadata.subsidiary_id,
            department_id=event.metadata.department_id,
            trigger_user_id=event.triggering_user_id,
            entity_data=event.payload,
        )
        for rule in rules:
            notified = set()
            for recipient in rule.recipients:
                try:
                    resolved = self.resolver.resolve(recipient, context)
                except Exception as e:
                    logger.warning(f"Could not resolve {recipient.type} recipient for {event.id}: {str(e)}")
                    continue
                if not resolved.resolved or resolved.assignee_id in notified:
                    continue
                notified.add(resolved.assignee_id)
                self.dispatcher.notify(
                    rule.template,
                    resolved.assignee_id,
                    event.event_type,
                    data={"event_id": event.id, "event_type": event.event_type},
                    channels=rule.channels,
                )

    def _finish(self, event: BusinessEvent, batch: BatchGenerationResult, started: float,
                retry_count: int, known_task_ids: List[str]) -> BatchGenerationResult:
        batch.processing_time_ms = (time.monotonic() - started) * 1000
        new_ids = [r.task_id for r in batch.results if r.task_id]

        processing = event.processing.model_copy(update={
            "status": batch.status,
            "tasks_generated": known_task_ids + [i for i in new_ids if i not in known_task_ids],
            "retry_count": retry_count,
            "processed_at": datetime.utcnow(),
            "error_message": "; ".join(batch.errors) or None,
        })
        self.events.create_or_update(event.model_copy(update={"processing": processing}))

        logger.info(
            f"Processed event {event.id} ({event.event_type}): {batch.tasks_generated} generated, "
            f"{batch.tasks_skipped} skipped, {len(batch.errors)} error(s) in {batch.processing_time_ms:.0f}ms"
        )
        return batch


def process_business_event(event: BusinessEvent, db: Session, config: Optional[EngineConfig] = None,
                           **kwargs) -> BatchGenerationResult:
    """Process one event with a freshly built TaskGenerator."""
    return TaskGenerator(db, config=config, **kwargs).process_business_event(event)
