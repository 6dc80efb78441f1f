"""Grey area detection rule library for opsflow."""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from opsflow.models.catalog import DetectionRule

logger = logging.getLogger(__name__)

DEFAULT_DETECTION_RULES: List[dict] = [
    {
        "id": "fin_large_transaction",
        "name": "Large Transaction Review",
        "description": "Flags transactions exceeding standard approval thresholds",
        "entity_types": ["transaction", "request"],
        "condition_logic": "and",
        "conditions": [
            {"field": "amount.amount", "operator": "gt", "value": 10_000_000},
            {"field": "type", "operator": "in", "value": ["payment", "transfer", "expense"]},
        ],
        "grey_area_type": "approval-required",
        "severity": "high",
        "title_template": "Large {{type}} requires review: {{amount.amount}} UGX",
        "description_template": "Transaction of {{amount.amount}} UGX ({{amount.currency}}) exceeds standard "
                                "approval threshold. Vendor: {{vendor}}. Purpose: {{purpose}}.",
        "assign_to_roles": ["finance-manager", "cfo"],
        "sla_hours": 4,
        "priority": 100,
    },
    {
        "id": "fin_unusual_vendor",
        "name": "Unusual Vendor Payment",
        "description": "Flags payments to new or unusual vendors",
        "entity_types": ["transaction"],
        "condition_logic": "and",
        "conditions": [
            {"field": "vendor.isNew", "operator": "eq", "value": True},
            {"field": "amount.amount", "operator": "gt", "value": 1_000_000},
        ],
        "grey_area_type": "policy-exception",
        "severity": "medium",
        "title_template": "First payment to new vendor: {{vendor.name}}",
        "description_template": "First payment of {{amount.amount}} UGX to {{vendor.name}}. "
                                "Verify vendor legitimacy before approval.",
        "assign_to_roles": ["finance-officer", "procurement-manager"],
        "sla_hours": 8,
        "priority": 80,
    },
    {
        "id": "hr_salary_anomaly",
        "name": "Salary Anomaly Detection",
        "description": "Flags unusual salary variations",
        "entity_types": ["employee"],
        "condition_logic": "or",
        "conditions": [
            {"field": "salaryChange", "operator": "gt", "value": 30},
            {"field": "salaryBelowBand", "operator": "eq", "value": True},
            {"field": "salaryAboveBand", "operator": "eq", "value": True},
        ],
        "grey_area_type": "data-inconsistency",
        "severity": "high",
        "title_template": "Salary anomaly for {{employee.name}}",
        "description_template": "Salary for {{employee.name}} ({{employee.position}}) appears unusual. "
                                "Current: {{currentSalary}} UGX. Band range: {{bandMin}} - {{bandMax}} UGX.",
        "assign_to_roles": ["hr-manager", "cfo"],
        "sla_hours": 8,
        "priority": 90,
    },
    {
        "id": "hr_contract_expiring",
        "name": "Contract Expiration Alert",
        "description": "Flags contracts expiring without renewal decision",
        "entity_types": ["employee"],
        "event_types": ["hr.contract_expiring"],
        "condition_logic": "and",
        "conditions": [
            {"field": "contractExpiresInDays", "operator": "lte", "value": 30},
            {"field": "renewalDecisionMade", "operator": "eq", "value": False},
        ],
        "grey_area_type": "pending-decision",
        "severity": "high",
        "title_template": "Contract renewal decision needed: {{employee.name}}",
        "description_template": "{{employee.name}}'s contract expires on {{contractEndDate}}. "
                                "No renewal decision has been recorded.",
        "assign_to_roles": ["hr-manager"],
        "sla_hours": 72,
        "priority": 80,
    },
    {
        "id": "cust_vip_complaint",
        "name": "VIP Customer Complaint",
        "description": "Flags complaints from high-value customers",
        "entity_types": ["event"],
        "event_types": ["customer.inquiry_received"],
        "condition_logic": "and",
        "conditions": [
            {"field": "customer.tier", "operator": "in", "value": ["vip", "premium"]},
            {"field": "isComplaint", "operator": "eq", "value": True},
        ],
        "grey_area_type": "escalation-needed",
        "severity": "critical",
        "title_template": "VIP complaint: {{customer.name}}",
        "description_template": "{{customer.tier}} customer {{customer.name}} has filed a complaint. "
                                "Subject: {{subject}}.",
        "assign_to_roles": ["sales-manager", "operations-director"],
        "sla_hours": 2,
        "priority": 100,
    },
    {
        "id": "cust_credit_limit",
        "name": "Credit Limit Request",
        "description": "Flags requests to exceed credit limits",
        "entity_types": ["request"],
        "condition_logic": "and",
        "conditions": [
            {"field": "type", "operator": "eq", "value": "credit_extension"},
            {"field": "requestedAmount", "operator": "gt", "value": 5_000_000},
        ],
        "grey_area_type": "approval-required",
        "severity": "high",
        "title_template": "Credit extension request: {{customer.name}}",
        "description_template": "{{customer.name}} requests credit extension of {{requestedAmount}} UGX. "
                                "Current limit: {{currentLimit}} UGX.",
        "assign_to_roles": ["credit-controller", "cfo"],
        "sla_hours": 4,
        "priority": 85,
    },
    {
        "id": "ops_quality_failure",
        "name": "Quality Failure",
        "description": "Flags quality issues in production",
        "entity_types": ["event"],
        "event_types": ["production.quality_issue"],
        "condition_logic": "or",
        "conditions": [
            {"field": "severity", "operator": "in", "value": ["critical", "major"]},
            {"field": "affectedUnits", "operator": "gt", "value": 10},
        ],
        "grey_area_type": "escalation-needed",
        "severity": "critical",
        "title_template": "Quality issue: {{product}} - {{issue}}",
        "description_template": "{{severity}} quality issue detected in {{product}}. Issue: {{issue}}. "
                                "Affected units: {{affectedUnits}}. Root cause analysis needed.",
        "assign_to_roles": ["quality-manager", "production-supervisor"],
        "sla_hours": 2,
        "priority": 95,
    },
    {
        "id": "wf_ownership_unclear",
        "name": "Unclear Task Ownership",
        "description": "Flags tasks with no clear owner or multiple owners",
        "entity_types": ["task"],
        "condition_logic": "or",
        "conditions": [
            {"field": "hasNoOwner", "operator": "eq", "value": True},
            {"field": "hasMultipleOwners", "operator": "eq", "value": True},
        ],
        "grey_area_type": "ownership-gap",
        "severity": "medium",
        "title_template": "Ownership unclear: {{title}}",
        "description_template": "Task \"{{title}}\" has {{ownershipIssue}}. Related department: {{department}}.",
        "assign_to_roles": ["project-manager"],
        "sla_hours": 12,
        "priority": 65,
    },
]


class DetectionRuleLibrary:
    """Registry of detection rules, reloadable from JSON."""

    def __init__(self, rules: Optional[Iterable[Union[DetectionRule, dict]]] = None,
                 source_path: Optional[Union[str, Path]] = None):
        self.source_path = Path(source_path) if source_path else None
        self._rules: Dict[str, DetectionRule] = self._index(rules if rules is not None else DEFAULT_DETECTION_RULES)

    @staticmethod
    def _index(rules: Iterable[Union[DetectionRule, dict]]) -> Dict[str, DetectionRule]:
        parsed = [r if isinstance(r, DetectionRule) else DetectionRule(**r) for r in rules]
        return {r.id: r for r in parsed}

    @classmethod
    def load_from_file(cls, path: Union[str, Path]) -> "DetectionRuleLibrary":
        """Build a library from a JSON list of detection rules."""
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        library = cls(raw, source_path=path)
        logger.info(f"Loaded {len(library)} detection rules from {path}")
        return library

    def reload(self) -> None:
        """Re-read the source file (no-op for libraries built in memory)."""
        if self.source_path is None:
            return
        with open(self.source_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        self._rules = self._index(raw)
        logger.info(f"Reloaded {len(self._rules)} detection rules from {self.source_path}")

    def get(self, rule_id: str) -> Optional[DetectionRule]:
        return self._rules.get(rule_id)

    def enabled(self) -> List[DetectionRule]:
        return [r for r in self._rules.values() if r.enabled]

    def get_rules_for_entity_type(self, entity_type: str) -> List[DetectionRule]:
        """Enabled rules applicable to an entity type, highest priority first."""
        rules = [r for r in self.enabled() if entity_type in r.entity_types]
        return sorted(rules, key=lambda r: r.priority, reverse=True)

    def __len__(self) -> int:
        return len(self._rules)


def default_detection_rules() -> DetectionRuleLibrary:
    """Library from `OPSFLOW_DETECTION_RULES` if set, else the built-in rules."""
    path = os.getenv("OPSFLOW_DETECTION_RULES")
    if path:
        return DetectionRuleLibrary.load_from_file(path)
    return DetectionRuleLibrary()
