"""Standard role profiles used by role-based assignment."""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Union

from opsflow.models.employee import RoleProfile

logger = logging.getLogger(__name__)


def normalize_role_slug(role_slug: str) -> str:
    """Lower-case a role slug and turn underscores into dashes."""
    return (role_slug or "").strip().lower().replace("_", "-")


def _profile(slug, title, max_concurrent, skills):
    return RoleProfile(
        slug=slug,
        title=title,
        max_concurrent=max_concurrent,
        skills=[{"name": n, "required_level": lvl, "is_core": core} for n, lvl, core in skills],
    )


DEFAULT_ROLE_PROFILES: Dict[str, RoleProfile] = {
    p.slug: p for p in [
        _profile("ceo", "Chief Executive Officer", 20, [
            ("Strategic Planning", "expert", True),
            ("Executive Leadership", "expert", True),
            ("Financial Acumen", "advanced", True),
        ]),
        _profile("cfo", "Chief Financial Officer", 25, [
            ("Financial Management", "expert", True),
            ("Financial Strategy", "expert", True),
            ("Financial Compliance", "advanced", True),
        ]),
        _profile("hr-manager", "HR Manager", 30, [
            ("People Management", "advanced", True),
            ("HR Administration", "advanced", True),
            ("Labor Law Compliance", "advanced", True),
        ]),
        _profile("project-manager", "Project Manager", 40, [
            ("Project Management", "advanced", True),
            ("Client Relations", "advanced", True),
            ("Operations Coordination", "intermediate", True),
        ]),
        _profile("finance-officer", "Finance Officer", 50, [
            ("Bookkeeping", "advanced", True),
            ("Reconciliation", "advanced", True),
            ("Documentation", "intermediate", True),
        ]),
        _profile("credit-controller", "Credit Controller", 40, [
            ("Debt Collection", "intermediate", True),
            ("Reconciliation", "intermediate", True),
            ("Customer Service", "intermediate", False),
        ]),
        _profile("sales-rep", "Sales Representative", 45, [
            ("Customer Service", "advanced", True),
            ("Sales Techniques", "intermediate", True),
            ("Documentation", "intermediate", False),
        ]),
        _profile("production-supervisor", "Production Supervisor", 50, [
            ("Production Management", "advanced", True),
            ("Quality Control", "advanced", True),
            ("Team Leadership", "intermediate", True),
        ]),
    ]
}


def load_role_profiles(path: Union[str, Path]) -> Dict[str, RoleProfile]:
    """Load role profiles from a JSON list, keyed by normalized slug."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    profiles = [RoleProfile(**item) for item in raw]
    return {normalize_role_slug(p.slug): p for p in profiles}


def default_role_profiles() -> Dict[str, RoleProfile]:
    """Profiles from `OPSFLOW_ROLE_PROFILES` if set, else the standard set."""
    path = os.getenv("OPSFLOW_ROLE_PROFILES")
    if not path:
        return DEFAULT_ROLE_PROFILES
    profiles = load_role_profiles(path)
    logger.info(f"Loaded {len(profiles)} role profiles from {path}")
    return profiles
