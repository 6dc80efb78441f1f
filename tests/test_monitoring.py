"""Tests for the scheduled monitoring sweeps."""

import pytest
from datetime import datetime, timedelta

from opsflow.database.task_repository import TaskRepository
from opsflow.engine.monitoring import RETRY_METHOD, MonitoringService
from opsflow.models.grey_area import Actor
from opsflow.models.task import TaskAssignment, TaskPriority, validate_stage_transition
from opsflow.models.task_factory import create_task_base

NOW = datetime(2026, 3, 4, 9, 0)
REVIEWER = Actor(id="emp-fin-head")


@pytest.fixture
def service(db_session, dispatcher):
    return MonitoringService(db_session, dispatcher=dispatcher)


@pytest.fixture
def task_repository(db_session):
    return TaskRepository(db_session)


@pytest.fixture
def make_task(task_repository):
    """Factory storing a task; pass assignee_id to create it assigned."""
    def _make(title: str, assignee_id=None, **kwargs):
        assignment = None
        if assignee_id:
            assignment = TaskAssignment(assignee_id=assignee_id, method="role", assigned_at=NOW - timedelta(days=1))
        kwargs.setdefault("now", NOW - timedelta(days=1))
        return task_repository.create(create_task_base(
            subsidiary_id="finishes", title=title, task_type="manual_check", assignment=assignment, **kwargs))
    return _make


class TestStageTransitions:
    """Stage moves the sweeps are allowed to make."""

    @pytest.mark.parametrize("from_stage,to_stage,allowed", [
        ("pending_assignment", "assigned", True),
        ("assigned", "in_progress", True),
        ("in_progress", "escalated", True),
        ("escalated", "escalated", False),
        ("blocked", "blocked", False),
        ("completed", "escalated", False),
        ("cancelled", "assigned", False),
        ("in_progress", "assigned", False),
    ])
    def test_validate_stage_transition(self, from_stage, to_stage, allowed):
        assert validate_stage_transition(from_stage, to_stage) is allowed

    def test_overdue_sweep_skips_closed_stage(self, service, directory, make_task, task_repository):
        task = make_task("Closed out", assignee_id="emp-credit", priority=TaskPriority.HIGH,
                         due_date=NOW - timedelta(hours=5))
        task_repository.update(task.model_copy(update={"stage": "cancelled"}))

        assert service.escalate_overdue_tasks(NOW) == []
        assert task_repository.get(task.id).stage == "cancelled"


class TestOverdueTasks:
    """Escalation of tasks past their due date."""

    def test_escalates_past_threshold(self, service, directory, make_task, task_repository, dispatcher):
        late = make_task("Late", assignee_id="emp-credit", priority=TaskPriority.HIGH,
                         due_date=NOW - timedelta(hours=5))
        grace = make_task("Within grace", assignee_id="emp-credit", priority=TaskPriority.MEDIUM,
                          due_date=NOW - timedelta(hours=2))

        assert service.escalate_overdue_tasks(NOW) == [late.id]

        escalated = task_repository.get(late.id)
        assert escalated.stage == "escalated"
        assert escalated.priority == "critical"
        assert escalated.escalations[0].reason == "Overdue by 5.0 hours"
        assert task_repository.get(grace.id).stage == "assigned"

        notification = dispatcher.sent[-1]
        assert notification.type == "task_escalated"
        assert notification.recipient_id == "emp-credit"

    def test_escalated_tasks_are_not_escalated_again(self, service, directory, make_task):
        make_task("Late", assignee_id="emp-credit", priority=TaskPriority.LOW, due_date=NOW - timedelta(days=3))
        assert len(service.escalate_overdue_tasks(NOW)) == 1
        assert service.escalate_overdue_tasks(NOW + timedelta(days=1)) == []

    def test_unassigned_overdue_task_escalates_silently(self, service, make_task, dispatcher):
        make_task("Nobody", priority=TaskPriority.CRITICAL, department_id="finance",
                  due_date=NOW - timedelta(hours=2))
        assert len(service.escalate_overdue_tasks(NOW)) == 1
        assert dispatcher.sent == []


class TestUnassignedRetry:
    """Retry of tasks stuck at pending_assignment."""

    def test_assigns_through_department(self, service, directory, make_task, task_repository,
                                        employee_repository):
        stuck = make_task("Stuck", department_id="finance")

        assert service.retry_unassigned_tasks(NOW) == [stuck.id]

        task = task_repository.get(stuck.id)
        assert task.stage == "assigned"
        assert task.assignment.assignee_id == "emp-fin-head"
        assert task.assignment.method == RETRY_METHOD
        assert task.assignment.fallback_used is True
        assert employee_repository.get("emp-fin-head").active_task_count == 1

    def test_recent_tasks_wait(self, service, directory, make_task):
        make_task("Fresh", department_id="finance", now=NOW - timedelta(minutes=30))
        assert service.retry_unassigned_tasks(NOW) == []
        assert len(service.retry_unassigned_tasks(NOW, min_age_hours=0)) == 1

    def test_tasks_without_department_are_left(self, service, directory, make_task, task_repository):
        orphan = make_task("No department")
        assert service.retry_unassigned_tasks(NOW) == []
        assert task_repository.get(orphan.id).stage == "pending_assignment"

    def test_empty_department_stays_unassigned(self, service, directory, make_task):
        make_task("Nobody here", department_id="logistics")
        assert service.retry_unassigned_tasks(NOW) == []


class TestOverdueGreyAreas:
    """Escalation of grey areas past their resolution deadline."""

    @pytest.fixture
    def overdue_grey_area(self, service, directory):
        engine = service.grey_area_engine
        grey_area = engine.flag_grey_area(
            grey_area_type="pending-decision",
            title="Renewal decision",
            description="",
            severity="medium",
            entity_type="employee",
            entity_id="emp-sales-rep",
            subsidiary_id="finishes",
            flagged_by=REVIEWER,
        )
        engine.assign(grey_area.id, "emp-credit", REVIEWER)
        stored = engine.get(grey_area.id)
        return engine.grey_areas.update(stored.model_copy(update={"resolution_deadline": datetime(2026, 1, 5, 9, 0)}))

    def test_escalates_to_reviewer_manager(self, service, overdue_grey_area):
        escalated = service.escalate_overdue_grey_areas(datetime.utcnow())

        assert escalated == [overdue_grey_area.id]
        grey_area = service.grey_area_engine.get(overdue_grey_area.id)
        assert grey_area.status == "escalated"
        assert grey_area.assigned_to.id == "emp-fin-head"
        assert grey_area.escalations[0].escalated_by.id == "system"
        assert grey_area.escalations[0].reason.startswith("Resolution deadline passed")

    def test_not_escalated_twice_for_same_deadline(self, service, overdue_grey_area):
        service.escalate_overdue_grey_areas(datetime.utcnow())
        assert service.escalate_overdue_grey_areas(datetime.utcnow()) == []
        assert service.grey_area_engine.get(overdue_grey_area.id).current_escalation_level == 1

    def test_no_target_is_not_an_error(self, service, directory):
        engine = service.grey_area_engine
        grey_area = engine.flag_grey_area(
            grey_area_type="pending-decision", title="Unowned", description="", severity="low",
            entity_type="employee", entity_id="emp-hr", subsidiary_id="finishes", flagged_by=REVIEWER,
        )
        engine.grey_areas.update(grey_area.model_copy(update={"resolution_deadline": datetime(2026, 1, 5, 9, 0)}))

        errors = []
        assert service.escalate_overdue_grey_areas(datetime.utcnow(), errors) == []
        assert errors == []


class TestRun:
    """Full monitoring pass."""

    def test_run_reports_each_sweep(self, service, directory, make_task):
        make_task("Late", assignee_id="emp-credit", priority=TaskPriority.HIGH, due_date=NOW - timedelta(hours=6))
        make_task("Stuck", department_id="hr")

        report = service.run(NOW)

        assert len(report.tasks_escalated) == 1
        assert len(report.tasks_reassigned) == 1
        assert report.grey_areas_escalated == []
        assert report.errors == []
