"""Tests for grey area detection and lifecycle."""

import pytest
from datetime import datetime, timedelta

from opsflow.catalog.detection_rules import DetectionRuleLibrary
from opsflow.database.task_repository import TaskRepository
from opsflow.engine.errors import (
    EscalationLimitError,
    GreyAreaNotFound,
    InvalidInputError,
    InvalidTransitionError,
)
from opsflow.engine.grey_areas import FOLLOW_UP_TASK_TYPE, GreyAreaEngine, grey_area_search_terms
from opsflow.models.config import DetectionEngineConfig
from opsflow.models.grey_area import Actor, FollowUpAction

REVIEWER = Actor(id="emp-fin-head", name="Fin-Head Test")


@pytest.fixture
def engine(db_session, dispatcher):
    return GreyAreaEngine(db_session, dispatcher=dispatcher)


@pytest.fixture
def quality_issue():
    return {
        "eventType": "production.quality_issue",
        "subsidiaryId": "finishes",
        "departmentId": "production",
        "product": "Gloss Enamel",
        "issue": "Peeling finish",
        "severity": "minor",
        "affectedUnits": 25,
    }


@pytest.fixture
def flagged(engine, directory):
    """A manually flagged, unassigned grey area."""
    return engine.flag_grey_area(
        grey_area_type="policy-exception",
        title="Discount above policy",
        description="Sales offered a discount outside the approved band",
        severity="high",
        entity_type="order",
        entity_id="ord-1",
        subsidiary_id="finishes",
        flagged_by=Actor(id="emp-sales-rep"),
        department_id="finance",
    )


class TestDetection:
    """Rule-based scanning."""

    def test_quality_issue_detected_and_assigned(self, engine, directory, quality_issue, dispatcher,
                                                 employee_repository):
        detected = engine.scan_for_grey_areas(quality_issue, "event", "evt-9")

        assert len(detected) == 1
        grey_area = detected[0]
        assert grey_area.type == "escalation-needed"
        assert grey_area.severity == "critical"
        assert grey_area.status == "detected"
        assert grey_area.title == "Quality issue: Gloss Enamel - Peeling finish"
        assert grey_area.department_id == "production"
        assert grey_area.assigned_to.id == "emp-quality"
        assert grey_area.reviewer_roles == ["quality-manager", "production-supervisor"]
        assert grey_area.detection_context.rule_id == "ops_quality_failure"
        assert grey_area.detection_context.method == "rule_engine"
        assert grey_area.resolution_deadline == grey_area.created_at + timedelta(hours=2)
        assert "escalation-needed" in grey_area.search_terms

        assert [e.action for e in grey_area.activity_log] == ["Grey area detected"]
        assert grey_area.activity_log[0].details == "Detected by rule: Quality Failure"
        assert employee_repository.get("emp-quality").active_task_count == 1

        notification = dispatcher.sent[-1]
        assert notification.type == "grey_area_detected"
        assert notification.recipient_id == "emp-quality"
        assert notification.channels == ["push", "email", "sms"]

    def test_no_matching_condition(self, engine, directory, quality_issue):
        entity = {**quality_issue, "affectedUnits": 2}
        assert engine.scan_for_grey_areas(entity, "event", "evt-9") == []

    def test_event_type_filter(self, engine, directory, quality_issue):
        entity = {**quality_issue, "eventType": "production.batch_completed"}
        assert engine.scan_for_grey_areas(entity, "event", "evt-9") == []

    def test_subsidiary_filter(self, db_session, dispatcher, directory):
        rules = DetectionRuleLibrary([{
            "id": "paint_only",
            "name": "Paint only",
            "entity_types": ["transaction"],
            "subsidiary_ids": ["paints"],
            "conditions": [{"field": "amount", "operator": "gt", "value": 0}],
            "grey_area_type": "approval-required",
            "title_template": "Check {{amount}}",
        }])
        engine = GreyAreaEngine(db_session, rules=rules, dispatcher=dispatcher)
        assert engine.scan_for_grey_areas({"amount": 5}, "transaction", "tx-1", subsidiary_id="finishes") == []
        assert len(engine.scan_for_grey_areas({"amount": 5}, "transaction", "tx-1", subsidiary_id="paints")) == 1

    def test_missing_subsidiary(self, engine, quality_issue):
        entity = dict(quality_issue)
        del entity["subsidiaryId"]
        with pytest.raises(InvalidInputError):
            engine.scan_for_grey_areas(entity, "event", "evt-9")

    def test_no_reviewer_leaves_unassigned(self, db_session, dispatcher, directory):
        rules = DetectionRuleLibrary([{
            "id": "orphan",
            "name": "Orphan",
            "entity_types": ["task"],
            "conditions": [{"field": "hasNoOwner", "operator": "eq", "value": True}],
            "grey_area_type": "ownership-gap",
            "title_template": "Ownership unclear: {{title}}",
            "assign_to_roles": ["project-manager"],
        }])
        engine = GreyAreaEngine(db_session, rules=rules, dispatcher=dispatcher)
        grey_area = engine.scan_for_grey_areas({"hasNoOwner": True, "title": "Repaint"}, "task", "t-1",
                                               subsidiary_id="finishes")[0]
        assert grey_area.assigned_to is None
        assert grey_area.sla_hours == 24
        assert dispatcher.sent == []

    def test_disabled_rule_engine(self, db_session, dispatcher, directory, quality_issue):
        engine = GreyAreaEngine(db_session, config=DetectionEngineConfig(enable_rule_engine=False),
                                dispatcher=dispatcher)
        assert engine.scan_for_grey_areas(quality_issue, "event", "evt-9") == []

    def test_search_terms(self):
        terms = grey_area_search_terms("pending-decision", "Contract renewal",
                                       "The contract for this employee expires soon")
        assert terms[:2] == ["contract", "renewal"]
        assert "pending-decision" in terms
        assert "employee" in terms
        assert "soon" not in terms


class TestManualFlag:
    """Manually raised grey areas."""

    def test_flag(self, flagged):
        assert flagged.status == "detected"
        assert flagged.assigned_to is None
        assert flagged.detection_context.method == "manual_flag"
        assert flagged.detection_context.triggered_by.id == "emp-sales-rep"
        assert flagged.sla_hours == 8
        assert [e.action for e in flagged.activity_log] == ["Manually flagged"]

    @pytest.mark.parametrize("overrides", [
        {"title": "  "},
        {"subsidiary_id": ""},
        {"severity": "urgent"},
        {"sla_hours": 0},
    ])
    def test_invalid_input(self, engine, overrides):
        kwargs = {
            "grey_area_type": "policy-exception",
            "title": "Something odd",
            "description": "",
            "severity": "low",
            "entity_type": "order",
            "entity_id": "ord-1",
            "subsidiary_id": "finishes",
            "flagged_by": REVIEWER,
        }
        kwargs.update(overrides)
        with pytest.raises(InvalidInputError):
            engine.flag_grey_area(**kwargs)

    def test_get_missing(self, engine):
        with pytest.raises(GreyAreaNotFound):
            engine.get("nope")


class TestLifecycle:
    """Review, input, escalation and closure."""

    def test_assign(self, engine, flagged, employee_repository, dispatcher):
        updated = engine.assign(flagged.id, "emp-credit", REVIEWER)

        assert updated.status == "under_review"
        assert updated.assigned_to.id == "emp-credit"
        assert updated.assigned_at is not None
        assert updated.activity_log[-1].action == "Assigned to Credit Test"
        assert len(updated.activity_log) == 2
        assert employee_repository.get("emp-credit").active_task_count == 1
        assert dispatcher.sent[-1].type == "grey_area_assigned"
        assert dispatcher.sent[-1].channels == ["push", "email"]

    def test_reassign_moves_workload(self, engine, flagged, employee_repository):
        engine.assign(flagged.id, "emp-credit", REVIEWER)
        engine.assign(flagged.id, "emp-fin-officer", REVIEWER)

        assert employee_repository.get("emp-credit").active_task_count == 0
        assert employee_repository.get("emp-fin-officer").active_task_count == 1

    def test_assign_by_email(self, engine, flagged):
        updated = engine.assign(flagged.id, "emp-credit@example.com", REVIEWER)
        assert updated.assigned_to.id == "emp-credit"

    def test_assign_inactive_employee(self, engine, flagged):
        with pytest.raises(InvalidInputError):
            engine.assign(flagged.id, "emp-suspended", REVIEWER)

    def test_escalate_to_manager(self, engine, flagged, directory, employee_repository):
        engine.assign(flagged.id, "emp-credit", REVIEWER)
        updated = engine.escalate(flagged.id, "Needs sign-off", REVIEWER)

        assert updated.status == "escalated"
        assert updated.current_escalation_level == 1
        assert updated.assigned_to.id == "emp-fin-head"
        escalation = updated.escalations[0]
        assert escalation.level == 1
        assert escalation.from_assignee.id == "emp-credit"
        assert escalation.reason == "Needs sign-off"
        assert updated.activity_log[-1].action == f"Escalated to {directory['emp-fin-head'].name} (Level 1)"
        assert employee_repository.get("emp-credit").active_task_count == 0
        assert employee_repository.get("emp-fin-head").active_task_count == 1

    def test_repeated_escalation_counts(self, engine, flagged):
        engine.assign(flagged.id, "emp-credit", REVIEWER)
        log_length = len(engine.get(flagged.id).activity_log)

        for step, target in enumerate([None, "emp-ceo", "emp-hr"], start=1):
            updated = engine.escalate(flagged.id, f"Round {step}", REVIEWER, escalate_to=target)
            assert updated.current_escalation_level == step
            assert len(updated.escalations) == step
            assert len(updated.activity_log) == log_length + step
            assert updated.escalations[-1].level == step

        assert [e.to_assignee.id for e in updated.escalations] == ["emp-fin-head", "emp-ceo", "emp-hr"]

    def test_escalate_explicit_target(self, engine, flagged):
        updated = engine.escalate(flagged.id, "Board decision", REVIEWER, escalate_to="emp-ceo")
        assert updated.assigned_to.id == "emp-ceo"
        assert updated.escalations[0].from_assignee is None

    def test_escalate_without_target(self, engine, flagged):
        with pytest.raises(InvalidInputError):
            engine.escalate(flagged.id, "No one to ask", REVIEWER)

    def test_escalate_requires_reason(self, engine, flagged):
        with pytest.raises(InvalidInputError):
            engine.escalate(flagged.id, " ", REVIEWER, escalate_to="emp-ceo")

    def test_escalation_limit(self, db_session, dispatcher, flagged):
        engine = GreyAreaEngine(db_session, config=DetectionEngineConfig(max_escalation_level=1),
                                dispatcher=dispatcher)
        engine.escalate(flagged.id, "First", REVIEWER, escalate_to="emp-fin-head")
        with pytest.raises(EscalationLimitError):
            engine.escalate(flagged.id, "Second", REVIEWER, escalate_to="emp-ceo")
        assert engine.get(flagged.id).current_escalation_level == 1

    def test_input_round_trip_returns_to_review(self, engine, flagged):
        engine.assign(flagged.id, "emp-credit", REVIEWER)
        engine.request_input(flagged.id, "Was the discount approved verbally?", REVIEWER,
                             requested_from="emp-sales-mgr")
        waiting = engine.request_input(flagged.id, "Any precedent?", REVIEWER, required=False)
        assert waiting.status == "pending_input"
        assert len(waiting.inputs_required) == 2

        answered = engine.provide_input(flagged.id, 0, "Yes, by phone", Actor(id="emp-sales-mgr"))
        assert answered.status == "under_review"
        assert answered.inputs_required[0].response.value == "Yes, by phone"
        assert answered.inputs_required[1].response is None
        assert [e.action for e in answered.activity_log][-3:] == ["Input requested", "Input requested",
                                                                   "Input provided"]

    def test_input_waits_for_every_required_slot(self, engine, flagged):
        engine.request_input(flagged.id, "Question one", REVIEWER)
        engine.request_input(flagged.id, "Question two", REVIEWER)
        partial = engine.provide_input(flagged.id, 1, "Answer", REVIEWER)
        assert partial.status == "pending_input"

    def test_provide_input_validation(self, engine, flagged):
        engine.request_input(flagged.id, "Question", REVIEWER)
        with pytest.raises(InvalidInputError):
            engine.provide_input(flagged.id, 3, "Answer", REVIEWER)
        with pytest.raises(InvalidInputError):
            engine.provide_input(flagged.id, 0, "", REVIEWER)
        engine.provide_input(flagged.id, 0, "Answer", REVIEWER)
        with pytest.raises(InvalidInputError):
            engine.provide_input(flagged.id, 0, "Again", REVIEWER)

    def test_resolve_spawns_follow_up_tasks(self, engine, flagged, db_session, employee_repository):
        engine.assign(flagged.id, "emp-credit", REVIEWER)
        due = datetime(2026, 3, 10, 12, 0)
        resolved = engine.resolve(
            flagged.id,
            approach="approve",
            decision="Honour the discount once",
            resolved_by=REVIEWER,
            reasoning="Long-standing customer",
            follow_up_actions=[
                FollowUpAction(description="Update discount policy", assigned_to=Actor(id="emp-fin-officer"),
                               due_date=due),
                FollowUpAction(description="Brief sales team"),
            ],
        )

        assert resolved.status == "resolved"
        assert resolved.resolution.decision == "Honour the discount once"
        assert resolved.resolution.resolved_by.id == "emp-fin-head"
        assert resolved.activity_log[-1].action == "Resolved"
        assert employee_repository.get("emp-credit").active_task_count == 0

        actions = resolved.resolution.follow_up_actions
        assert all(a.task_id for a in actions)
        tasks = TaskRepository(db_session)
        policy = tasks.get(actions[0].task_id)
        assert policy.task_type == FOLLOW_UP_TASK_TYPE
        assert policy.source == "grey_area"
        assert policy.priority == "medium"
        assert policy.context.related_entity_id == flagged.id
        assert policy.assignment.assignee_id == "emp-fin-officer"
        assert policy.due_date == due
        assert policy.stage == "assigned"
        assert tasks.get(actions[1].task_id).stage == "pending_assignment"
        assert employee_repository.get("emp-fin-officer").active_task_count == 1

    def test_failed_follow_up_write_leaves_grey_area_open(self, engine, flagged, db_session, employee_repository,
                                                          monkeypatch):
        engine.assign(flagged.id, "emp-credit", REVIEWER)

        def store_down(tasks):
            raise RuntimeError("store down")
        monkeypatch.setattr(engine.tasks, "create_many", store_down)

        with pytest.raises(RuntimeError):
            engine.resolve(flagged.id, approach="approve", decision="Honour the discount once",
                           resolved_by=REVIEWER,
                           follow_up_actions=[FollowUpAction(description="Update discount policy",
                                                             assigned_to=Actor(id="emp-fin-officer"))])

        current = engine.get(flagged.id)
        assert current.status == "under_review"
        assert current.resolution is None
        assert employee_repository.get("emp-credit").active_task_count == 1
        assert employee_repository.get("emp-fin-officer").active_task_count == 0
        assert TaskRepository(db_session).list_for_assignee("emp-fin-officer") == []

    def test_resolve_requires_decision(self, engine, flagged):
        with pytest.raises(InvalidInputError):
            engine.resolve(flagged.id, approach="approve", decision="", resolved_by=REVIEWER)

    def test_dismiss(self, engine, flagged):
        dismissed = engine.dismiss(flagged.id, REVIEWER, reason="Within policy after all")

        assert dismissed.status == "dismissed"
        assert dismissed.resolution.approach == "no_action"
        assert dismissed.resolution.reasoning == "Dismissed as non-issue"
        assert dismissed.resolution.outcome == "not_applicable"
        assert dismissed.activity_log[-1].action == "Dismissed"

    def test_closed_grey_area_is_frozen(self, engine, flagged):
        engine.dismiss(flagged.id, REVIEWER)
        with pytest.raises(InvalidTransitionError):
            engine.assign(flagged.id, "emp-credit", REVIEWER)
        with pytest.raises(InvalidTransitionError):
            engine.resolve(flagged.id, approach="approve", decision="Late", resolved_by=REVIEWER)
        with pytest.raises(InvalidTransitionError):
            engine.provide_input(flagged.id, 0, "x", REVIEWER)
        assert len(engine.get(flagged.id).activity_log) == 2


class TestQueries:
    """Read paths used by the API."""

    def test_queries(self, engine, flagged):
        engine.assign(flagged.id, "emp-credit", REVIEWER)

        assert [g.id for g in engine.for_employee("emp-credit")] == [flagged.id]
        assert [g.id for g in engine.for_subsidiary("finishes", status="under_review")] == [flagged.id]
        assert engine.for_subsidiary("finishes", status="resolved") == []
        assert [g.id for g in engine.by_entity("order", "ord-1")] == [flagged.id]
        assert engine.overdue(flagged.resolution_deadline - timedelta(minutes=1)) == []
        assert [g.id for g in engine.overdue(flagged.resolution_deadline + timedelta(minutes=1))] == [flagged.id]

        engine.dismiss(flagged.id, REVIEWER)
        assert engine.for_employee("emp-credit") == []
        assert len(engine.for_employee("emp-credit", include_closed=True)) == 1
