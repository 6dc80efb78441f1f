"""Tests for assignment resolution against the employee directory."""

import pytest

from opsflow.engine.assignment import (
    NO_ASSIGNEE_ERROR,
    AssignmentContext,
    AssignmentOptions,
    AssignmentResolver,
    CandidateMatch,
    calculate_match_score,
    matches_by_skills,
)
from opsflow.catalog.role_profiles import DEFAULT_ROLE_PROFILES
from opsflow.models.catalog import AssignmentRule
from opsflow.models.config import EngineConfig
from opsflow.models.employee import Employee

SUBSIDIARY = "finishes"


@pytest.fixture
def resolver(employee_repository):
    return AssignmentResolver(employee_repository)


def context(**overrides):
    return AssignmentContext(**{"subsidiary_id": SUBSIDIARY, **overrides})


def rule(data):
    return AssignmentRule(**data)


class TestRoleStrategy:
    """Test role-based assignment."""

    def test_granted_role_wins(self, resolver, directory):
        result = resolver.resolve(rule({"type": "role", "value": "credit-controller"}), context())
        assert result.resolved
        assert result.assignee_id == "emp-credit"
        assert result.method == "role"
        assert result.fallback_used is False
        assert result.role_profile_id == "credit-controller"
        assert result.match_score == 100.0

    def test_inactive_holders_are_ignored(self, resolver, directory):
        result = resolver.resolve(rule({"type": "role", "value": "credit-controller"}), context())
        assert "emp-suspended" not in [c.employee_id for c in result.candidates]

    def test_slug_is_normalized(self, resolver, directory):
        result = resolver.resolve(rule({"type": "role", "value": "Credit_Controller"}), context())
        assert result.assignee_id == "emp-credit"

    def test_lower_workload_preferred(self, resolver, make_employee):
        make_employee("emp-a", access_roles=["finance-officer"], active_task_count=10)
        make_employee("emp-b", access_roles=["finance-officer"], active_task_count=2)
        result = resolver.resolve(rule({"type": "role", "value": "finance-officer"}), context())
        assert result.assignee_id == "emp-b"
        assert [c.employee_id for c in result.candidates] == ["emp-b", "emp-a"]

    def test_available_candidates_rank_first(self, resolver, make_employee):
        # finance-officer ceiling is 50: 45 is over 80% and no longer "available"
        make_employee("emp-busy", access_roles=["finance-officer"], active_task_count=45)
        make_employee("emp-titled", position_title="Finance Officer", active_task_count=1)
        result = resolver.resolve(rule({"type": "role", "value": "finance-officer"}), context(),
                                  AssignmentOptions(prefer_lower_workload=False))
        assert result.assignee_id == "emp-titled"
        assert result.candidates[1].available is False

    def test_saturated_candidates_excluded(self, resolver, make_employee):
        make_employee("emp-full", access_roles=["finance-officer"], active_task_count=50)
        result = resolver.resolve(rule({"type": "role", "value": "finance-officer"}), context())
        assert not result.resolved
        assert result.attempts[0].reason == "No available employee holds role finance-officer"

    def test_capacity_override(self, resolver, make_employee):
        make_employee("emp-a", access_roles=["finance-officer"], active_task_count=5)
        result = resolver.resolve(rule({"type": "role", "value": "finance-officer"}), context(),
                                  AssignmentOptions(capacity_override=5))
        assert not result.resolved

    def test_excluded_employees_skipped(self, resolver, directory):
        result = resolver.resolve(rule({"type": "role", "value": "credit-controller"}), context(),
                                  AssignmentOptions(exclude_employees=["emp-credit"]))
        assert not result.resolved

    def test_department_scope(self, resolver, make_employee):
        make_employee("emp-a", department_id="finance", access_roles=["finance-officer"])
        make_employee("emp-b", department_id="ops", access_roles=["finance-officer"])
        result = resolver.resolve(rule({"type": "role", "value": "finance-officer"}), context(),
                                  AssignmentOptions(department_scope="ops"))
        assert result.assignee_id == "emp-b"

    def test_other_subsidiary_not_considered(self, resolver, make_employee):
        make_employee("emp-elsewhere", subsidiary_id="other", access_roles=["finance-officer"])
        result = resolver.resolve(rule({"type": "role", "value": "finance-officer"}), context())
        assert not result.resolved


class TestDepartmentStrategy:
    """Test department-based assignment."""

    def test_head_is_preferred(self, resolver, directory):
        result = resolver.resolve(rule({"type": "department", "value": "finance"}), context())
        assert result.assignee_id == "emp-fin-head"
        assert result.role_profile_id == "department-head"

    def test_busy_head_falls_back_to_least_loaded_member(self, resolver, make_employee):
        make_employee("emp-head", department_id="ops", is_department_head=True, active_task_count=40)
        make_employee("emp-m1", department_id="ops", active_task_count=3)
        make_employee("emp-m2", department_id="ops", active_task_count=1)
        result = resolver.resolve(rule({"type": "department", "value": "ops"}), context())
        assert result.assignee_id == "emp-m2"
        assert result.role_profile_id == "department-member"
        assert result.match_score == 80.0

    def test_uses_context_department_when_rule_has_none(self, resolver, directory):
        result = resolver.resolve(rule({"type": "department"}), context(department_id="hr"))
        assert result.assignee_id == "emp-hr"

    def test_empty_department(self, resolver, directory):
        result = resolver.resolve(rule({"type": "department", "value": "legal"}), context())
        assert not result.resolved
        assert result.error == NO_ASSIGNEE_ERROR


class TestIdentityStrategies:
    """Test user, manager, creator and dynamic strategies."""

    def test_user_by_id_email_or_external_id(self, resolver, directory):
        for identifier in ("emp-credit", "EMP-CREDIT@example.com", "auth-credit"):
            result = resolver.resolve(rule({"type": "user", "value": identifier}), context())
            assert result.assignee_id == "emp-credit"

    def test_inactive_user_fails(self, resolver, directory):
        result = resolver.resolve(rule({"type": "user", "value": "emp-suspended"}), context())
        assert not result.resolved
        assert "not active" in result.attempts[0].reason

    def test_manager_of_triggering_user(self, resolver, directory):
        result = resolver.resolve(rule({"type": "manager"}), context(trigger_user_id="emp-credit"))
        assert result.assignee_id == "emp-fin-head"
        assert result.method == "manager"

    def test_manager_without_trigger_fails(self, resolver, directory):
        assert not resolver.resolve(rule({"type": "manager"}), context()).resolved

    def test_creator(self, resolver, directory):
        result = resolver.resolve(rule({"type": "creator"}), context(trigger_user_id="emp-hr"))
        assert result.assignee_id == "emp-hr"

    def test_dynamic_payload_field(self, resolver, directory):
        result = resolver.resolve(rule({"type": "dynamic", "value": "owner.id"}),
                                  context(entity_data={"owner": {"id": "emp-sales-rep"}}))
        assert result.assignee_id == "emp-sales-rep"

    def test_dynamic_defaults_to_assigned_to(self, resolver, directory):
        result = resolver.resolve(rule({"type": "dynamic"}), context(entity_data={"assignedTo": "emp-hr"}))
        assert result.assignee_id == "emp-hr"

    def test_dynamic_non_string_fails(self, resolver, directory):
        result = resolver.resolve(rule({"type": "dynamic"}), context(entity_data={"assignedTo": 42}))
        assert not result.resolved

    def test_lookup_is_cached(self, resolver, directory, employee_repository, monkeypatch):
        assert resolver.lookup_employee("emp-credit@example.com").id == "emp-credit"

        def fail(email):
            raise AssertionError("email lookup should be served from the cache")
        monkeypatch.setattr(employee_repository, "get_by_email", fail)
        assert resolver.lookup_employee("emp-credit@example.com").id == "emp-credit"

    def test_cached_identifier_moved_to_another_employee(self, resolver, make_employee):
        make_employee("emp-a", email="ops@example.com")
        result = resolver.resolve(rule({"type": "user", "value": "ops@example.com"}), context())
        assert result.assignee_id == "emp-a"

        make_employee("emp-a", email="a@example.com")
        make_employee("emp-b", email="ops@example.com")

        result = resolver.resolve(rule({"type": "user", "value": "ops@example.com"}), context())
        assert result.assignee_id == "emp-b"
        assert resolver.lookup_employee("ops@example.com").id == "emp-b"

    def test_identity_cache_is_bounded(self, resolver, make_employee, monkeypatch):
        from opsflow.engine import assignment

        monkeypatch.setattr(assignment, "IDENTITY_CACHE_SIZE", 2)
        for name in ("emp-x", "emp-y", "emp-z"):
            make_employee(name)
            resolver.lookup_employee(f"{name}@example.com")

        assert list(assignment._identity_cache) == ["emp-y@example.com", "emp-z@example.com"]


class TestFallbackChain:
    """Test fallback chain walking."""

    def test_fallback_used_when_primary_fails(self, resolver, directory):
        result = resolver.resolve(
            rule({"type": "role", "value": "sales-lead", "fallback": {"type": "manager"}}),
            context(trigger_user_id="emp-sales-rep"),
        )
        assert result.resolved
        assert result.assignee_id == "emp-sales-mgr"
        assert result.fallback_used is True
        assert result.fallback_depth == 1
        assert result.method == "manager"
        assert [a.resolved for a in result.attempts] == [False, True]

    def test_exhausted_chain(self, resolver, directory):
        result = resolver.resolve(
            rule({"type": "role", "value": "nobody", "fallback": {"type": "department", "value": "legal"}}),
            context(),
        )
        assert not result.resolved
        assert result.fallback_used is True
        assert result.method == "role"
        assert result.error == NO_ASSIGNEE_ERROR
        assert len(result.attempts) == 2

    def test_chain_cut_at_max_retries(self, employee_repository, directory):
        resolver = AssignmentResolver(employee_repository, EngineConfig(max_assignment_retries=1))
        chain = {"type": "role", "value": "r1", "fallback": {
            "type": "role", "value": "r2", "fallback": {"type": "department", "value": "finance"}}}
        result = resolver.resolve(rule(chain), context())
        assert not result.resolved
        assert len(result.attempts) == 2


class TestScoring:
    """Test role profile scoring helpers."""

    def test_rank_candidates_tie_breaks_on_score_then_id(self, resolver):
        candidates = [
            CandidateMatch(employee_id="b", name="B", current_load=1, max_load=10, match_score=50, available=True),
            CandidateMatch(employee_id="a", name="A", current_load=1, max_load=10, match_score=50, available=True),
            CandidateMatch(employee_id="c", name="C", current_load=1, max_load=10, match_score=90, available=True),
        ]
        assert [c.employee_id for c in resolver.rank_candidates(candidates)] == ["c", "a", "b"]

    def test_capacity_for(self, resolver):
        assert resolver.capacity_for("ceo") == 20
        assert resolver.capacity_for("unknown-role") == 40
        assert resolver.capacity_for("ceo", AssignmentOptions(capacity_override=3)) == 3

    def test_skills_match(self):
        profile = DEFAULT_ROLE_PROFILES["credit-controller"]
        employee = Employee(id="e", email="e@x.com", first_name="E", subsidiary_id=SUBSIDIARY,
                            skills=[{"name": "Debt Collection", "proficiency": "advanced"}])
        assert matches_by_skills(employee, profile) is True
        assert matches_by_skills(employee.model_copy(update={"skills": []}), profile) is False

    def test_match_score_title_and_skills(self):
        profile = DEFAULT_ROLE_PROFILES["credit-controller"]
        employee = Employee(id="e", email="e@x.com", first_name="E", subsidiary_id=SUBSIDIARY,
                            position_title="Senior Credit Controller",
                            skills=[{"name": "Debt Collection", "proficiency": "advanced"},
                                    {"name": "Reconciliation", "proficiency": "novice"}])
        # 50 base + 25 title + 1 of 3 skills at level
        assert calculate_match_score(employee, profile) == pytest.approx(50 + 25 + 25 / 3)
