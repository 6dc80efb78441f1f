"""Grey area detection and lifecycle for opsflow.

Detection runs the rule library against an arbitrary entity (highest rule
priority first) and raises a GreyArea for every matching rule. The lifecycle
operations move a grey area through review, input requests, escalation and
closure. Each operation validates the transition, changes the status and
appends exactly one activity-log entry in a single commit.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from opsflow.catalog.detection_rules import DetectionRuleLibrary, default_detection_rules
from opsflow.database.employee_repository import EmployeeRepository
from opsflow.database.grey_area_repository import GreyAreaRepository
from opsflow.database.task_repository import TaskRepository
from opsflow.engine.assignment import AssignmentContext, AssignmentOptions, AssignmentResolver
from opsflow.engine.conditions import evaluate_conditions, get_nested_value, MISSING
from opsflow.engine.deadlines import as_utc, calculate_deadline, to_naive_utc
from opsflow.engine.errors import (
    EscalationLimitError,
    GreyAreaNotFound,
    InvalidInputError,
    InvalidTransitionError,
)
from opsflow.engine.templates import interpolate_template
from opsflow.models.catalog import AssignmentRule, DetectionRule
from opsflow.models.config import DetectionEngineConfig, EngineConfig
from opsflow.models.constants import SYSTEM_ACTOR_ID
from opsflow.models.employee import Employee
from opsflow.models.grey_area import (
    ActivityEntry,
    Actor,
    DetectionContext,
    DetectionMethod,
    FollowUpAction,
    GreyArea,
    GreyAreaEscalation,
    GreyAreaResolution,
    GreyAreaStatus,
    InputResponse,
    InputSlot,
    TERMINAL_GREY_AREA_STATUSES,
    validate_grey_area_transition,
)
from opsflow.models.task import Task, TaskAssignment, TaskContext, TaskPriority, TaskSource
from opsflow.models.task_factory import create_task_base, generate_search_terms
from opsflow.notifications.dispatcher import (
    NotificationDispatcher,
    StoredNotificationDispatcher,
    channels_for_severity,
)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = Actor(id=SYSTEM_ACTOR_ID, name="System")
FOLLOW_UP_TASK_TYPE = "follow_up"

NOTIFICATION_TITLES = {
    "detected": "New Grey Area Detected",
    "assigned": "Grey Area Assigned to You",
    "escalated": "Grey Area Escalated",
}


def _entity_attribute(entity: Dict[str, Any], *paths: str) -> Optional[Any]:
    for path in paths:
        value = get_nested_value(entity, path)
        if value is not MISSING and value is not None:
            return value
    return None


def grey_area_search_terms(grey_area_type: str, title: str, description: str) -> List[str]:
    """Type, title words and the first ten longer description words."""
    long_words = [w for w in (description or "").lower().split() if len(w) > 4][:10]
    return generate_search_terms(title, extra=[grey_area_type] + long_words)


def _actor(employee: Employee) -> Actor:
    return Actor(id=employee.id, name=employee.name, email=employee.email)


class GreyAreaEngine:
    """Detects grey areas and drives their review lifecycle."""

    def __init__(
        self,
        db: Session,
        config: Optional[DetectionEngineConfig] = None,
        rules: Optional[DetectionRuleLibrary] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        resolver: Optional[AssignmentResolver] = None,
        engine_config: Optional[EngineConfig] = None,
    ):
        """Initialize the engine.

        Args:
            db: Database session
            config: Detection configuration
            rules: Detection rule library (defaults to the built-in rules)
            dispatcher: Notification dispatcher (defaults to the database outbox)
            resolver: Assignment resolver used to pick reviewers
            engine_config: Task engine configuration used for follow-up tasks
        """
        self.db = db
        self.config = config or DetectionEngineConfig()
        self.rules = rules or default_detection_rules()
        self.grey_areas = GreyAreaRepository(db)
        self.tasks = TaskRepository(db)
        self.directory = EmployeeRepository(db)
        self.resolver = resolver or AssignmentResolver(self.directory, engine_config)
        self.dispatcher = dispatcher or StoredNotificationDispatcher(db)

    # Detection

    def scan_for_grey_areas(self, entity: Dict[str, Any], entity_type: str, entity_id: str,
                            subsidiary_id: Optional[str] = None) -> List[GreyArea]:
        """Evaluate every applicable rule against an entity.

        Rules run in descending priority. A rule whose event-type or
        subsidiary filter does not match the entity is skipped. A rule that
        fails is logged and does not stop the remaining rules.

        Args:
            entity: Entity attributes
            entity_type: Entity type (event, transaction, employee, ...)
            entity_id: Entity identifier
            subsidiary_id: Subsidiary, when the entity does not carry one

        Returns:
            Grey areas created by this scan

        Raises:
            InvalidInputError: no subsidiary can be determined
        """
        if not self.config.enable_rule_engine:
            return []

        subsidiary_id = subsidiary_id or _entity_attribute(
            entity, "subsidiaryId", "subsidiary_id", "metadata.subsidiaryId", "metadata.subsidiary_id")
        if not subsidiary_id:
            raise InvalidInputError(f"Cannot scan {entity_type} {entity_id}: no subsidiary")

        event_type = _entity_attribute(entity, "eventType", "event_type")
        detected: List[GreyArea] = []
        for rule in self.rules.get_rules_for_entity_type(entity_type):
            if rule.event_types and event_type not in rule.event_types:
                continue
            if rule.subsidiary_ids and subsidiary_id not in rule.subsidiary_ids:
                continue
            if not evaluate_conditions(rule.conditions, rule.condition_logic, entity):
                continue
            try:
                detected.append(self._create_from_rule(rule, entity, entity_type, entity_id, subsidiary_id))
            except Exception as e:
                logger.error(f"Detection rule {rule.id} failed on {entity_type} {entity_id}: "
                             f"{type(e).__name__}: {str(e)}")

        if detected:
            logger.info(f"Scan of {entity_type} {entity_id} raised {len(detected)} grey area(s)")
        return detected

    def _create_from_rule(self, rule: DetectionRule, entity: Dict[str, Any], entity_type: str,
                          entity_id: str, subsidiary_id: str) -> GreyArea:
        now = datetime.utcnow()
        title = interpolate_template(rule.title_template, entity)
        description = interpolate_template(rule.description_template, entity)
        department_id = _entity_attribute(entity, "departmentId", "department_id", "metadata.departmentId",
                                          "metadata.department_id")

        sla_hours = rule.sla_hours or self.config.default_sla_hours[rule.severity]
        deadline = calculate_deadline(
            as_utc(now),
            sla_hours,
            "medium",
            business_hours_only=self.config.business_hours_only,
            exclude_weekends=self.config.exclude_weekends,
            business_hours=self.config.business_hours,
        )

        reviewer = self.find_reviewer(rule.assign_to_roles, subsidiary_id,
                                      rule.assign_to_department or department_id)

        grey_area = GreyArea(
            id=str(uuid.uuid4()),
            type=rule.grey_area_type,
            subsidiary_id=subsidiary_id,
            department_id=department_id,
            title=title,
            description=description,
            status=GreyAreaStatus.DETECTED,
            severity=rule.severity,
            detection_context=DetectionContext(
                entity_type=entity_type,
                entity_id=entity_id,
                entity_name=_entity_attribute(entity, "name", "title") or entity_id,
                detected_at=now,
                method=DetectionMethod.RULE_ENGINE,
                rule_id=rule.id,
                rule_name=rule.name,
            ),
            assigned_to=_actor(reviewer) if reviewer else None,
            assigned_at=now if reviewer else None,
            reviewer_roles=list(rule.assign_to_roles),
            resolution_deadline=to_naive_utc(deadline),
            sla_hours=sla_hours,
            activity_log=[ActivityEntry(action="Grey area detected", performed_by=SYSTEM_ACTOR, performed_at=now,
                                        details=f"Detected by rule: {rule.name}")],
            search_terms=grey_area_search_terms(rule.grey_area_type, title, description),
            created_at=now,
            updated_at=now,
        )
        grey_area = self.grey_areas.create(grey_area)

        if reviewer:
            self.directory.increment_workload(reviewer.id, now)
            if self.config.notify_on_detection:
                self._notify(grey_area, "detected")
        return grey_area

    def find_reviewer(self, roles: List[str], subsidiary_id: str,
                      department_id: Optional[str] = None) -> Optional[Employee]:
        """First available holder of the reviewer roles, tried in order."""
        context = AssignmentContext(subsidiary_id=subsidiary_id, department_id=department_id)
        options = AssignmentOptions(capacity_override=self.config.reviewer_capacity, department_scope=department_id)
        for role in roles:
            result = self.resolver.resolve(AssignmentRule(type="role", value=role), context, options)
            if result.resolved:
                return self.directory.get(result.assignee_id)
        logger.warning(f"No reviewer available for roles {roles} in {subsidiary_id}")
        return None

    def flag_grey_area(
        self,
        grey_area_type: str,
        title: str,
        description: str,
        severity: str,
        entity_type: str,
        entity_id: str,
        subsidiary_id: str,
        flagged_by: Actor,
        department_id: Optional[str] = None,
        entity_name: Optional[str] = None,
        sla_hours: Optional[float] = None,
    ) -> GreyArea:
        """Raise a grey area by hand.

        Raises:
            InvalidInputError: missing title/subsidiary, unknown severity or non-positive SLA
        """
        if not title or not title.strip():
            raise InvalidInputError("Title is required")
        if not subsidiary_id:
            raise InvalidInputError("Subsidiary is required")
        if severity not in self.config.default_sla_hours:
            raise InvalidInputError(f"Unknown severity: {severity}")
        if sla_hours is not None and sla_hours <= 0:
            raise InvalidInputError("SLA hours must be positive")

        now = datetime.utcnow()
        hours = sla_hours or self.config.default_sla_hours[severity]
        deadline = calculate_deadline(as_utc(now), hours, "medium",
                                      business_hours_only=self.config.business_hours_only,
                                      exclude_weekends=self.config.exclude_weekends,
                                      business_hours=self.config.business_hours)
        grey_area = GreyArea(
            id=str(uuid.uuid4()),
            type=grey_area_type,
            subsidiary_id=subsidiary_id,
            department_id=department_id,
            title=title.strip(),
            description=description or "",
            severity=severity,
            detection_context=DetectionContext(
                entity_type=entity_type,
                entity_id=entity_id,
                entity_name=entity_name or entity_id,
                detected_at=now,
                method=DetectionMethod.MANUAL_FLAG,
                triggered_by=flagged_by,
            ),
            resolution_deadline=to_naive_utc(deadline),
            sla_hours=hours,
            activity_log=[ActivityEntry(action="Manually flagged", performed_by=flagged_by, performed_at=now,
                                        details=description or None)],
            search_terms=grey_area_search_terms(grey_area_type, title, description),
            created_at=now,
            updated_at=now,
        )
        logger.info(f"Grey area flagged by {flagged_by.id} on {entity_type} {entity_id}")
        return self.grey_areas.create(grey_area)

    # Lifecycle

    def get(self, grey_area_id: str) -> GreyArea:
        """Get a grey area.

        Raises:
            GreyAreaNotFound: no such grey area
        """
        grey_area = self.grey_areas.get(grey_area_id)
        if grey_area is None:
            raise GreyAreaNotFound(f"Grey area {grey_area_id} not found")
        return grey_area

    def _check_transition(self, grey_area: GreyArea, to_status: GreyAreaStatus) -> None:
        if not validate_grey_area_transition(grey_area.status, to_status.value):
            raise InvalidTransitionError("Grey area", grey_area.status, to_status.value)

    def _check_open(self, grey_area: GreyArea, to_status: str) -> None:
        if GreyAreaStatus(grey_area.status) in TERMINAL_GREY_AREA_STATUSES:
            raise InvalidTransitionError("Grey area", grey_area.status, to_status)

    def _save(self, grey_area: GreyArea, action: str, actor: Actor, details: Optional[str] = None,
              **changes) -> GreyArea:
        now = datetime.utcnow()
        entry = ActivityEntry(action=action, performed_by=actor, performed_at=now, details=details)
        changes["activity_log"] = grey_area.activity_log + [entry]
        changes["updated_at"] = now
        return self.grey_areas.update(grey_area.model_copy(update=changes))

    def _lookup_assignee(self, identifier: str) -> Employee:
        employee = self.resolver.lookup_employee(identifier)
        if employee is None:
            raise InvalidInputError(f"Employee {identifier} not found")
        if not employee.is_active:
            raise InvalidInputError(f"Employee {identifier} is not active")
        return employee

    def _move_workload(self, previous: Optional[Actor], new: Optional[Employee]) -> None:
        if previous and (new is None or previous.id != new.id) and previous.id != SYSTEM_ACTOR_ID:
            self.directory.decrement_workload(previous.id)
        if new and (previous is None or previous.id != new.id):
            self.directory.increment_workload(new.id)

    def assign(self, grey_area_id: str, assignee_id: str, assigned_by: Actor) -> GreyArea:
        """Assign a reviewer and move the grey area under review."""
        grey_area = self.get(grey_area_id)
        self._check_transition(grey_area, GreyAreaStatus.UNDER_REVIEW)
        employee = self._lookup_assignee(assignee_id)

        updated = self._save(
            grey_area, f"Assigned to {employee.name}", assigned_by,
            status=GreyAreaStatus.UNDER_REVIEW.value,
            assigned_to=_actor(employee),
            assigned_at=datetime.utcnow(),
        )
        self._move_workload(grey_area.assigned_to, employee)
        self._notify(updated, "assigned")
        return updated

    def escalate(self, grey_area_id: str, reason: str, escalated_by: Actor,
                 escalate_to: Optional[str] = None) -> GreyArea:
        """Escalate to a named employee, or to the current reviewer's manager.

        Raises:
            InvalidInputError: empty reason or no escalation target
            EscalationLimitError: the maximum escalation level is reached
        """
        grey_area = self.get(grey_area_id)
        self._check_transition(grey_area, GreyAreaStatus.ESCALATED)
        if not reason or not reason.strip():
            raise InvalidInputError("Escalation reason is required")

        level = grey_area.current_escalation_level + 1
        if level > self.config.max_escalation_level:
            raise EscalationLimitError(
                f"Grey area {grey_area_id} is already at escalation level {grey_area.current_escalation_level}")

        target = self._escalation_target(grey_area, escalate_to)
        now = datetime.utcnow()
        escalation = GreyAreaEscalation(
            level=level,
            from_assignee=grey_area.assigned_to,
            to_assignee=_actor(target),
            reason=reason.strip(),
            escalated_by=escalated_by,
            escalated_at=now,
        )
        updated = self._save(
            grey_area, f"Escalated to {target.name} (Level {level})", escalated_by, details=reason.strip(),
            status=GreyAreaStatus.ESCALATED.value,
            current_escalation_level=level,
            escalations=grey_area.escalations + [escalation],
            assigned_to=_actor(target),
            assigned_at=now,
        )
        self._move_workload(grey_area.assigned_to, target)
        logger.info(f"Grey area {grey_area_id} escalated to {target.id} (level {level})")
        if self.config.notify_on_escalation:
            self._notify(updated, "escalated")
        return updated

    def _escalation_target(self, grey_area: GreyArea, escalate_to: Optional[str]) -> Employee:
        if escalate_to:
            return self._lookup_assignee(escalate_to)
        if grey_area.assigned_to:
            current = self.resolver.lookup_employee(grey_area.assigned_to.id)
            if current and current.reporting_to:
                manager = self.resolver.lookup_employee(current.reporting_to)
                if manager and manager.is_active:
                    return manager
        raise InvalidInputError(f"No escalation target for grey area {grey_area.id}")

    def request_input(self, grey_area_id: str, question: str, requested_by: Actor,
                      requested_from: Optional[str] = None, required: bool = True) -> GreyArea:
        """Ask a question and wait for input."""
        grey_area = self.get(grey_area_id)
        self._check_transition(grey_area, GreyAreaStatus.PENDING_INPUT)
        if not question or not question.strip():
            raise InvalidInputError("Question is required")

        slot = InputSlot(
            question=question.strip(),
            required=required,
            requested_from=requested_from,
            requested_by=requested_by,
            requested_at=datetime.utcnow(),
        )
        return self._save(
            grey_area, "Input requested", requested_by, details=slot.question,
            status=GreyAreaStatus.PENDING_INPUT.value,
            inputs_required=grey_area.inputs_required + [slot],
        )

    def provide_input(self, grey_area_id: str, slot_index: int, value: Any, provided_by: Actor,
                      notes: Optional[str] = None) -> GreyArea:
        """Answer an input slot.

        A grey area waiting on input returns to review once every required
        slot has a response; otherwise it keeps waiting.
        """
        grey_area = self.get(grey_area_id)
        self._check_open(grey_area, grey_area.status)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise InvalidInputError("Input value is required")
        if slot_index < 0 or slot_index >= len(grey_area.inputs_required):
            raise InvalidInputError(f"No input slot {slot_index}")

        slots = [s.model_copy() for s in grey_area.inputs_required]
        if slots[slot_index].response is not None:
            raise InvalidInputError(f"Input slot {slot_index} already answered")
        slots[slot_index] = slots[slot_index].model_copy(update={"response": InputResponse(
            value=value, provided_by=provided_by, provided_at=datetime.utcnow(), notes=notes)})

        status = grey_area.status
        complete = all(s.response is not None for s in slots if s.required)
        if status == GreyAreaStatus.PENDING_INPUT.value and complete:
            status = GreyAreaStatus.UNDER_REVIEW.value

        return self._save(grey_area, "Input provided", provided_by, details=slots[slot_index].question,
                          status=status, inputs_required=slots)

    def resolve(
        self,
        grey_area_id: str,
        approach: str,
        decision: str,
        resolved_by: Actor,
        reasoning: str = "",
        outcome: str = "pending",
        follow_up_actions: Optional[List[FollowUpAction]] = None,
    ) -> GreyArea:
        """Close a grey area with a decision, spawning follow-up tasks."""
        grey_area = self.get(grey_area_id)
        self._check_transition(grey_area, GreyAreaStatus.RESOLVED)
        if not decision or not decision.strip():
            raise InvalidInputError("Decision is required")

        now = datetime.utcnow()
        follow_up_tasks: List[Task] = []
        actions: List[FollowUpAction] = []
        for action in follow_up_actions or []:
            task = self._follow_up_task(grey_area, action, resolved_by, now)
            follow_up_tasks.append(task)
            actions.append(action.model_copy(update={"task_id": task.id}))

        # Tasks go first so a failed write leaves the grey area open.
        for task in self.tasks.create_many(follow_up_tasks):
            if task.assignment:
                self.directory.increment_workload(task.assignment.assignee_id, now)

        resolution = GreyAreaResolution(
            approach=approach,
            decision=decision.strip(),
            reasoning=reasoning,
            outcome=outcome,
            follow_up_actions=actions,
            resolved_by=resolved_by,
            resolved_at=now,
        )
        updated = self._save(grey_area, "Resolved", resolved_by, details=resolution.decision,
                             status=GreyAreaStatus.RESOLVED.value, resolution=resolution)
        self._move_workload(grey_area.assigned_to, None)
        return updated

    def _follow_up_task(self, grey_area: GreyArea, action: FollowUpAction, resolved_by: Actor,
                        now: datetime) -> Task:
        if not action.description or not action.description.strip():
            raise InvalidInputError("Follow-up action needs a description")
        assignment = None
        if action.assigned_to:
            employee = self._lookup_assignee(action.assigned_to.id)
            assignment = TaskAssignment(
                assignee_id=employee.id,
                assignee_name=employee.name,
                assignee_email=employee.email,
                method="user",
                assigned_at=now,
                assigned_by=resolved_by.id,
            )
        return create_task_base(
            subsidiary_id=grey_area.subsidiary_id,
            department_id=grey_area.department_id,
            title=action.description.strip(),
            description=f"Follow-up from grey area: {grey_area.title}",
            task_type=FOLLOW_UP_TASK_TYPE,
            source=TaskSource.GREY_AREA,
            context=TaskContext(related_entity_type="grey_area", related_entity_id=grey_area.id),
            priority=TaskPriority.MEDIUM,
            assignment=assignment,
            due_date=action.due_date,
            now=now,
        )

    def dismiss(self, grey_area_id: str, dismissed_by: Actor, reason: Optional[str] = None) -> GreyArea:
        """Close a grey area as a non-issue."""
        grey_area = self.get(grey_area_id)
        self._check_transition(grey_area, GreyAreaStatus.DISMISSED)
        resolution = GreyAreaResolution(
            approach="no_action",
            decision=reason or "Dismissed",
            reasoning="Dismissed as non-issue",
            outcome="not_applicable",
            resolved_by=dismissed_by,
            resolved_at=datetime.utcnow(),
        )
        updated = self._save(grey_area, "Dismissed", dismissed_by, details=reason,
                             status=GreyAreaStatus.DISMISSED.value, resolution=resolution)
        self._move_workload(grey_area.assigned_to, None)
        return updated

    # Queries

    def for_employee(self, employee_id: str, include_closed: bool = False) -> List[GreyArea]:
        return self.grey_areas.list_for_assignee(employee_id, include_closed)

    def for_subsidiary(self, subsidiary_id: str, status: Optional[str] = None) -> List[GreyArea]:
        return self.grey_areas.list_for_subsidiary(subsidiary_id, status)

    def overdue(self, now: Optional[datetime] = None) -> List[GreyArea]:
        return self.grey_areas.list_overdue(now or datetime.utcnow())

    def by_entity(self, entity_type: str, entity_id: str) -> List[GreyArea]:
        return self.grey_areas.list_by_entity(entity_type, entity_id)

    def _notify(self, grey_area: GreyArea, event: str) -> None:
        if not grey_area.assigned_to:
            return
        self.dispatcher.notify(
            f"grey_area_{event}",
            grey_area.assigned_to.id,
            NOTIFICATION_TITLES[event],
            grey_area.title,
            data={
                "grey_area_id": grey_area.id,
                "severity": grey_area.severity,
                "type": grey_area.type,
                "resolution_deadline": grey_area.resolution_deadline.isoformat(),
            },
            channels=channels_for_severity(grey_area.severity),
        )
