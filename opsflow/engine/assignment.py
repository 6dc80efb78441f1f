"""Assignment resolution for opsflow.

Turns an abstract assignment rule (role, department, user, manager, creator,
dynamic payload field) into a concrete employee, walking the rule's fallback
chain until one strategy resolves.

Resolution never mutates the directory. Callers increment the assignee's
workload only after the work item has been persisted.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field

from opsflow.catalog.role_profiles import DEFAULT_ROLE_PROFILES, normalize_role_slug
from opsflow.engine.conditions import MISSING, get_nested_value
from opsflow.models.catalog import AssignmentRule, AssignmentType
from opsflow.models.config import EngineConfig
from opsflow.models.constants import AVAILABILITY_RATIO
from opsflow.models.employee import Employee, PROFICIENCY_ORDER, RoleProfile

logger = logging.getLogger(__name__)

DEFAULT_DYNAMIC_FIELD = "assignedTo"
NO_ASSIGNEE_ERROR = "No suitable assignee found"

# Advisory identifier -> employee id cache shared by resolvers in this process.
# A hit is only trusted while the re-read employee still owns the identifier.
IDENTITY_CACHE_SIZE = 1024
_identity_cache: "OrderedDict[str, str]" = OrderedDict()


def clear_identity_cache() -> None:
    """Drop every cached identifier."""
    _identity_cache.clear()


def _owns_identifier(employee: Employee, identifier: str) -> bool:
    return identifier in (employee.id, employee.external_id) or identifier.lower() == (employee.email or "").lower()


class AssignmentContext(BaseModel):
    """Where the work item lives and who triggered it."""

    subsidiary_id: str = Field(..., description="Subsidiary scope")
    department_id: Optional[str] = Field(None, description="Department scope")
    trigger_user_id: Optional[str] = Field(None, description="Identity of the triggering user")
    entity_data: Dict[str, Any] = Field(default_factory=dict, description="Payload/entity attributes for dynamic rules")


class AssignmentOptions(BaseModel):
    """Per-call tuning of candidate ranking."""

    exclude_employees: List[str] = Field(default_factory=list, description="Employee IDs never to pick")
    prefer_lower_workload: Optional[bool] = Field(None, description="Override config.workload_balancing_enabled")
    capacity_override: Optional[int] = Field(None, gt=0, description="Workload ceiling overriding role/config")
    department_scope: Optional[str] = Field(None, description="Restrict role matching to one department")


class CandidateMatch(BaseModel):
    """Ranked candidate for a role or department assignment."""

    employee_id: str
    name: str
    email: str = ""
    current_load: int = 0
    max_load: int
    match_score: float
    available: bool


class AssignmentAttempt(BaseModel):
    """One step of the fallback chain as it was tried."""

    type: str
    value: Optional[str] = None
    resolved: bool
    reason: str


class AssignmentResult(BaseModel):
    """Outcome of resolving an assignment rule."""

    resolved: bool = Field(..., description="Whether an assignee was found")
    assignee_id: Optional[str] = Field(None, description="Assignee employee ID")
    assignee_name: Optional[str] = Field(None, description="Assignee display name")
    assignee_email: Optional[str] = Field(None, description="Assignee email")
    method: str = Field(..., description="Strategy that resolved (or the primary strategy on failure)")
    fallback_used: bool = Field(False, description="True iff the primary rule did not resolve")
    fallback_depth: int = Field(0, description="Index in the chain of the resolving rule")
    role_profile_id: Optional[str] = Field(None, description="Role profile or department role used")
    match_score: Optional[float] = Field(None, description="Match score of the picked candidate")
    candidates: List[CandidateMatch] = Field(default_factory=list, description="Ranked candidates of the resolving step")
    attempts: List[AssignmentAttempt] = Field(default_factory=list, description="Every step tried, in order")
    error: Optional[str] = Field(None, description="Failure reason")


# Internal outcome of one strategy: (picked, ranked candidates, role id, reason)
_Outcome = Tuple[Optional[CandidateMatch], List[CandidateMatch], Optional[str], str]


def _candidate(employee: Employee, max_load: int, score: float) -> CandidateMatch:
    return CandidateMatch(
        employee_id=employee.id,
        name=employee.name,
        email=employee.email,
        current_load=employee.active_task_count,
        max_load=max_load,
        match_score=score,
        available=employee.active_task_count < max_load * AVAILABILITY_RATIO,
    )


def _meets_level(held: str, required: str) -> bool:
    return PROFICIENCY_ORDER.index(held) >= PROFICIENCY_ORDER.index(required)


def matches_by_skills(employee: Employee, profile: Optional[RoleProfile]) -> bool:
    """Whether an employee's skills cover a role's core skills.

    At least half of the core skills must be present, and at least half of
    those present must meet the required proficiency. A role without core
    skills matches anyone holding any skill.
    """
    if profile is None or not profile.skills or not employee.skills:
        return False
    core = [s for s in profile.skills if s.is_core]
    if not core:
        return True

    present = 0
    adequate = 0
    for role_skill in core:
        wanted = role_skill.name.lower()
        held = next(
            (s for s in employee.skills if wanted in s.name.lower() or s.name.lower() in wanted),
            None,
        )
        if held is None:
            continue
        present += 1
        if _meets_level(held.proficiency, role_skill.required_level):
            adequate += 1

    return present >= -(-len(core) // 2) and adequate >= -(-present // 2)


def calculate_match_score(employee: Employee, profile: Optional[RoleProfile]) -> float:
    """Score an employee against a role profile (50 base, +25 title, up to +25 skills)."""
    if profile is None:
        return 50.0
    score = 50.0
    if profile.title and profile.title.lower() in employee.position_title.lower():
        score += 25
    if profile.skills and employee.skills:
        matched = [
            rs for rs in profile.skills
            if any(rs.name.lower() in es.name.lower() and _meets_level(es.proficiency, rs.required_level)
                   for es in employee.skills)
        ]
        score += min(25.0, len(matched) / len(profile.skills) * 25)
    return min(100.0, score)


class AssignmentResolver:
    """Resolves assignment rules against the employee directory."""

    def __init__(self, directory, config: Optional[EngineConfig] = None,
                 role_profiles: Optional[Dict[str, RoleProfile]] = None):
        """Initialize the resolver.

        Args:
            directory: Employee directory (an EmployeeRepository or compatible)
            config: Engine configuration
            role_profiles: Role profiles keyed by slug (defaults to the standard set)
        """
        self.directory = directory
        self.config = config or EngineConfig()
        self.role_profiles = role_profiles if role_profiles is not None else DEFAULT_ROLE_PROFILES

    def resolve(self, rule: AssignmentRule, context: AssignmentContext,
                options: Optional[AssignmentOptions] = None) -> AssignmentResult:
        """Resolve a rule, trying its fallbacks in order.

        The first step that resolves wins. The chain is cut after
        ``config.max_assignment_retries`` fallback steps. Directory errors
        propagate to the caller.

        Args:
            rule: Primary assignment rule (with optional fallback chain)
            context: Assignment context
            options: Ranking options

        Returns:
            AssignmentResult, resolved or not
        """
        options = options or AssignmentOptions()
        chain = rule.chain()[: self.config.max_assignment_retries + 1]
        attempts: List[AssignmentAttempt] = []

        for depth, step in enumerate(chain):
            picked, candidates, role_id, reason = self._resolve_step(step, context, options)
            attempts.append(AssignmentAttempt(type=step.type, value=step.value, resolved=picked is not None,
                                              reason=reason))
            if picked is None:
                logger.debug(f"Assignment step {depth} ({step.type}:{step.value}) failed: {reason}")
                continue

            if depth > 0:
                logger.info(f"Assigned {picked.employee_id} via fallback {step.type} at depth {depth}")
            return AssignmentResult(
                resolved=True,
                assignee_id=picked.employee_id,
                assignee_name=picked.name,
                assignee_email=picked.email,
                method=step.type,
                fallback_used=depth > 0,
                fallback_depth=depth,
                role_profile_id=role_id,
                match_score=picked.match_score,
                candidates=candidates,
                attempts=attempts,
            )

        logger.warning(f"Assignment failed for {rule.type}:{rule.value} after {len(attempts)} step(s)")
        return AssignmentResult(
            resolved=False,
            method=rule.type,
            fallback_used=True,
            fallback_depth=len(chain) - 1,
            attempts=attempts,
            error=NO_ASSIGNEE_ERROR,
        )

    def lookup_employee(self, identifier: str) -> Optional[Employee]:
        """Find an employee by id, email or external id."""
        if not identifier:
            return None

        cached_id = _identity_cache.get(identifier)
        if cached_id:
            employee = self.directory.get(cached_id)
            if employee is not None and _owns_identifier(employee, identifier):
                _identity_cache.move_to_end(identifier)
                return employee
            logger.debug(f"Dropping stale identity cache entry {identifier} -> {cached_id}")
            _identity_cache.pop(identifier, None)

        employee = self.directory.get(identifier)
        if employee is None and "@" in identifier:
            employee = self.directory.get_by_email(identifier)
        if employee is None:
            employee = self.directory.get_by_external_id(identifier)

        if employee is not None:
            _identity_cache[identifier] = employee.id
            _identity_cache.move_to_end(identifier)
            while len(_identity_cache) > IDENTITY_CACHE_SIZE:
                _identity_cache.popitem(last=False)
        return employee

    def capacity_for(self, role_slug: Optional[str] = None, options: Optional[AssignmentOptions] = None) -> int:
        """Workload ceiling: explicit override, then the role profile, then the config default."""
        if options and options.capacity_override:
            return options.capacity_override
        profile = self.role_profiles.get(normalize_role_slug(role_slug)) if role_slug else None
        if profile and profile.max_concurrent:
            return profile.max_concurrent
        return self.config.max_tasks_per_person

    def rank_candidates(self, candidates: List[CandidateMatch],
                        options: Optional[AssignmentOptions] = None) -> List[CandidateMatch]:
        """Drop excluded or saturated candidates and order the rest.

        Available candidates (below 80% of their ceiling) come first, then
        lower workload when balancing is enabled, then higher match score.
        """
        options = options or AssignmentOptions()
        prefer_lower = options.prefer_lower_workload
        if prefer_lower is None:
            prefer_lower = self.config.workload_balancing_enabled

        eligible = [
            c for c in candidates
            if c.employee_id not in options.exclude_employees and c.current_load < c.max_load
        ]

        def sort_key(c: CandidateMatch):
            load = c.current_load if prefer_lower else 0
            return (not c.available, load, -c.match_score, c.employee_id)

        return sorted(eligible, key=sort_key)

    # Strategies

    def _resolve_step(self, rule: AssignmentRule, context: AssignmentContext,
                      options: AssignmentOptions) -> _Outcome:
        if rule.type == AssignmentType.ROLE.value:
            return self._by_role(rule.value, context, options)
        if rule.type == AssignmentType.DEPARTMENT.value:
            return self._by_department(rule.value or context.department_id, context, options)
        if rule.type == AssignmentType.USER.value:
            return self._to_user(rule.value, options)
        if rule.type == AssignmentType.MANAGER.value:
            return self._to_manager(context.trigger_user_id, options)
        if rule.type == AssignmentType.CREATOR.value:
            if not context.trigger_user_id:
                return None, [], None, "Event has no triggering user"
            return self._to_user(context.trigger_user_id, options)
        if rule.type == AssignmentType.DYNAMIC.value:
            return self._dynamic(rule.value or DEFAULT_DYNAMIC_FIELD, context, options)
        return None, [], None, f"Unknown assignment type: {rule.type}"

    def _by_role(self, role_slug: Optional[str], context: AssignmentContext,
                 options: AssignmentOptions) -> _Outcome:
        slug = normalize_role_slug(role_slug)
        if not slug:
            return None, [], None, "Role rule has no role"
        profile = self.role_profiles.get(slug)
        role_title = profile.title.lower() if profile else slug.replace("-", " ")
        ceiling = self.capacity_for(slug, options)

        matches: List[CandidateMatch] = []
        for employee in self.directory.list_active(context.subsidiary_id, options.department_scope):
            granted = slug in {normalize_role_slug(r) for r in employee.access_roles}
            title = employee.position_title.lower()
            title_match = bool(title) and (role_title in title or title in role_title)
            if not (granted or title_match or matches_by_skills(employee, profile)):
                continue
            score = 100.0 if granted else calculate_match_score(employee, profile)
            matches.append(_candidate(employee, ceiling, score))

        ranked = self.rank_candidates(matches, options)
        if not ranked:
            reason = f"No available employee holds role {slug}" if matches else f"No employee holds role {slug}"
            return None, ranked, slug, reason
        return ranked[0], ranked, slug, f"Assigned by role: {slug}"

    def _by_department(self, department_id: Optional[str], context: AssignmentContext,
                       options: AssignmentOptions) -> _Outcome:
        if not department_id:
            return None, [], None, "No department in rule or context"
        ceiling = self.capacity_for(None, options)
        members = [
            e for e in self.directory.list_active(context.subsidiary_id, department_id)
            if e.id not in options.exclude_employees
        ]
        if not members:
            return None, [], None, f"No employees in department {department_id}"

        for head in (e for e in members if e.is_department_head):
            if head.active_task_count < ceiling:
                picked = _candidate(head, ceiling, 100.0)
                return picked, [picked], "department-head", f"Assigned to department head: {department_id}"

        ranked = self.rank_candidates([_candidate(e, ceiling, 80.0) for e in members], options)
        if not ranked:
            return None, [], None, f"Every member of department {department_id} is at capacity"
        return ranked[0], ranked, "department-member", f"Assigned to department member: {department_id}"

    def _to_user(self, identifier: Optional[str], options: AssignmentOptions) -> _Outcome:
        if not identifier:
            return None, [], None, "User rule has no identity"
        employee = self.lookup_employee(identifier)
        if employee is None:
            return None, [], None, f"User {identifier} not found"
        if not employee.is_active:
            return None, [], None, f"User {identifier} is not active ({employee.employment_status})"
        if employee.id in options.exclude_employees:
            return None, [], None, f"User {identifier} is excluded"
        picked = _candidate(employee, self.capacity_for(None, options), 100.0)
        return picked, [picked], None, f"Assigned to user: {employee.id}"

    def _to_manager(self, trigger_user_id: Optional[str], options: AssignmentOptions) -> _Outcome:
        if not trigger_user_id:
            return None, [], None, "Event has no triggering user"
        employee = self.lookup_employee(trigger_user_id)
        if employee is None:
            return None, [], None, f"Triggering user {trigger_user_id} not found"
        if not employee.reporting_to:
            return None, [], None, f"User {employee.id} has no manager"
        return self._to_user(employee.reporting_to, options)

    def _dynamic(self, path: str, context: AssignmentContext, options: AssignmentOptions) -> _Outcome:
        value = get_nested_value(context.entity_data, path)
        if value is MISSING or value is None or not isinstance(value, str):
            return None, [], None, f"Payload field {path} holds no assignee"
        return self._to_user(value, options)
