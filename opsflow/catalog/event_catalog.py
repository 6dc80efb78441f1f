"""Event catalog for opsflow.

Maps event types to the task rules and notification rules they trigger.
Definitions are plain data validated into pydantic models, so a catalog can
be swapped or reloaded from JSON without touching engine code.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from opsflow.models.catalog import EventDefinition

logger = logging.getLogger(__name__)

DEFAULT_EVENT_DEFINITIONS: List[dict] = [
    {
        "event_type": "customer.inquiry_received",
        "name": "Customer Inquiry Received",
        "description": "A potential customer has submitted an inquiry",
        "category": "customer",
        "payload_schema": {
            "required": ["customerName", "customerEmail", "inquiryType", "subject"],
            "properties": {
                "customerId": {"type": "string"},
                "customerName": {"type": "string"},
                "customerEmail": {"type": "string"},
                "customerPhone": {"type": "string"},
                "inquiryType": {"type": "string"},
                "subject": {"type": "string"},
                "message": {"type": "string"},
            },
        },
        "tasks": [
            {
                "task_type": "respond_inquiry",
                "title": "Respond to inquiry from {{payload.customerName}}",
                "description": "Review and respond to customer inquiry: {{payload.subject}}",
                "priority": "P1",
                "due_in_days": 1,
                "assign_to": {
                    "type": "role",
                    "value": "sales-rep",
                    "fallback": {"type": "department", "value": "business-development"},
                },
            },
            {
                "task_type": "create_lead",
                "title": "Create lead for {{payload.customerName}}",
                "description": "Add new lead to CRM from inquiry",
                "priority": "P2",
                "due_in_days": 1,
                "assign_to": {"type": "role", "value": "sales-admin",
                              "fallback": {"type": "department", "value": "business-development"}},
                "conditions": [{"field": "customerId", "operator": "exists", "value": False}],
            },
        ],
        "notifications": [
            {
                "channels": ["email", "in-app"],
                "recipients": [{"type": "role", "value": "sales-manager"}, {"type": "role", "value": "sales-rep"}],
                "template": "new_inquiry",
            },
        ],
    },
    {
        "event_type": "financial.payment_received",
        "name": "Payment Received",
        "description": "Payment has been received from a customer",
        "category": "financial",
        "payload_schema": {
            "required": ["paymentId", "customerId", "amount", "currency"],
            "properties": {
                "paymentId": {"type": "string"},
                "invoiceId": {"type": "string"},
                "customerId": {"type": "string"},
                "customerName": {"type": "string"},
                "amount": {"type": "number"},
                "currency": {"type": "string"},
                "reference": {"type": "string"},
            },
        },
        "tasks": [
            {
                "task_type": "reconcile_payment",
                "title": "Reconcile payment {{payload.reference}}",
                "description": "Match payment to invoice and update records",
                "priority": "P2",
                "due_in_days": 1,
                "assign_to": {"type": "role", "value": "finance-officer",
                              "fallback": {"type": "department", "value": "finance"}},
            },
            {
                "task_type": "send_receipt",
                "title": "Send receipt to {{payload.customerName}}",
                "priority": "P2",
                "due_in_days": 1,
                "assign_to": {"type": "department", "value": "finance"},
            },
        ],
        "notifications": [
            {"channels": ["in-app"], "recipients": [{"type": "role", "value": "finance-manager"}],
             "template": "payment_received"},
        ],
    },
    {
        "event_type": "financial.invoice_overdue",
        "name": "Invoice Overdue",
        "description": "An invoice has passed its due date without full payment",
        "category": "financial",
        "payload_schema": {
            "required": ["invoiceId", "customerId", "outstandingAmount", "daysOverdue"],
            "properties": {
                "invoiceId": {"type": "string"},
                "customerId": {"type": "string"},
                "customerName": {"type": "string"},
                "invoiceAmount": {"type": "number"},
                "outstandingAmount": {"type": "number"},
                "currency": {"type": "string"},
                "daysOverdue": {"type": "number"},
                "previousReminders": {"type": "number"},
            },
        },
        "tasks": [
            {
                # No due_in_days: the deadline follows the tier SLA
                "task_type": "send_reminder",
                "title": "Send payment reminder to {{payload.customerName}}",
                "description": "Invoice {{payload.invoiceId}} is {{payload.daysOverdue}} days overdue",
                "priority": "P1",
                "assign_to": {"type": "role", "value": "credit-controller",
                              "fallback": {"type": "department", "value": "finance"}},
                "conditions": [{"field": "daysOverdue", "operator": "lte", "value": 30}],
            },
            {
                "task_type": "escalate_debt",
                "title": "Escalate overdue account: {{payload.customerName}}",
                "description": "Invoice {{payload.invoiceId}} is {{payload.daysOverdue}} days overdue - escalate",
                "priority": "P0",
                "due_in_days": 1,
                "assign_to": {"type": "role", "value": "finance-manager",
                              "fallback": {"type": "role", "value": "cfo"}},
                "conditions": [{"field": "daysOverdue", "operator": "gt", "value": 30}],
            },
        ],
        "notifications": [
            {
                "channels": ["email", "in-app"],
                "recipients": [{"type": "role", "value": "credit-controller"},
                               {"type": "role", "value": "finance-manager"}],
                "template": "invoice_overdue",
            },
        ],
    },
    {
        "event_type": "hr.leave_requested",
        "name": "Leave Requested",
        "description": "An employee has requested leave",
        "category": "hr",
        "payload_schema": {
            "required": ["requestId", "employeeId", "leaveType", "startDate", "endDate", "days"],
            "properties": {
                "requestId": {"type": "string"},
                "employeeId": {"type": "string"},
                "employeeName": {"type": "string"},
                "leaveType": {"type": "string"},
                "startDate": {"type": "string"},
                "endDate": {"type": "string"},
                "days": {"type": "number"},
            },
        },
        "tasks": [
            {
                "task_type": "approve_leave",
                "title": "Approve leave request from {{payload.employeeName}}",
                "description": "{{payload.days}} days {{payload.leaveType}} from {{payload.startDate}}",
                "priority": "P2",
                "due_in_days": 2,
                "assign_to": {"type": "manager", "fallback": {"type": "role", "value": "hr-manager"}},
            },
        ],
        "notifications": [
            {"channels": ["email", "in-app"], "recipients": [{"type": "manager"}], "template": "leave_request"},
        ],
    },
    {
        "event_type": "hr.contract_expiring",
        "name": "Contract Expiring",
        "description": "An employment contract is approaching expiry",
        "category": "hr",
        "payload_schema": {
            "required": ["contractId", "employeeId", "expiryDate", "daysUntilExpiry"],
            "properties": {
                "contractId": {"type": "string"},
                "employeeId": {"type": "string"},
                "employeeName": {"type": "string"},
                "expiryDate": {"type": "string"},
                "daysUntilExpiry": {"type": "number"},
                "managerId": {"type": "string"},
            },
        },
        "tasks": [
            {
                "task_type": "review_contract_renewal",
                "title": "Review contract renewal for {{payload.employeeName}}",
                "description": "Contract expires in {{payload.daysUntilExpiry}} days",
                "priority": "P1",
                "due_in_days": 7,
                "assign_to": {"type": "dynamic", "value": "managerId",
                              "fallback": {"type": "role", "value": "hr-manager"}},
                "conditions": [{"field": "daysUntilExpiry", "operator": "lte", "value": 30}],
            },
            {
                "task_type": "prepare_renewal",
                "title": "Prepare contract renewal for {{payload.employeeName}}",
                "priority": "P2",
                "due_in_days": 14,
                "assign_to": {"type": "role", "value": "hr-manager"},
            },
        ],
    },
    {
        "event_type": "production.quality_issue",
        "name": "Quality Issue Detected",
        "description": "A quality issue has been identified during production",
        "category": "production",
        "payload_schema": {
            "required": ["issueId", "projectId", "issueType", "severity", "description"],
            "properties": {
                "issueId": {"type": "string"},
                "projectId": {"type": "string"},
                "projectName": {"type": "string"},
                "issueType": {"type": "string"},
                "severity": {"type": "string"},
                "description": {"type": "string"},
                "photos": {"type": "array"},
            },
        },
        "tasks": [
            {
                "task_type": "investigate_issue",
                "title": "Investigate quality issue on {{payload.projectName}}",
                "description": "{{payload.severity}} {{payload.issueType}}: {{payload.description}}",
                "priority": "P0",
                "due_in_days": 1,
                "assign_to": {"type": "role", "value": "quality-manager",
                              "fallback": {"type": "role", "value": "production-supervisor"}},
                "conditions": [{"field": "severity", "operator": "in", "value": ["critical", "major"]}],
            },
            {
                "task_type": "resolve_issue",
                "title": "Resolve quality issue on {{payload.projectName}}",
                "priority": "P1",
                "due_in_days": 2,
                "assign_to": {"type": "role", "value": "production-supervisor"},
            },
        ],
        "notifications": [
            {
                "channels": ["email", "in-app", "push"],
                "recipients": [{"type": "role", "value": "quality-manager"},
                               {"type": "role", "value": "production-supervisor"}],
                "template": "quality_issue",
            },
        ],
    },
]


class EventCatalog:
    """In-memory registry of event definitions.

    A catalog built from a file remembers its path; `reload()` re-reads it and
    swaps the definitions in one assignment so readers never see a half-loaded
    catalog.
    """

    def __init__(self, definitions: Optional[Iterable[Union[EventDefinition, dict]]] = None,
                 source_path: Optional[Union[str, Path]] = None):
        self.source_path = Path(source_path) if source_path else None
        self._definitions: Dict[str, EventDefinition] = self._index(definitions if definitions is not None else DEFAULT_EVENT_DEFINITIONS)

    @staticmethod
    def _index(definitions: Iterable[Union[EventDefinition, dict]]) -> Dict[str, EventDefinition]:
        parsed = [d if isinstance(d, EventDefinition) else EventDefinition(**d) for d in definitions]
        return {d.event_type: d for d in parsed}

    @classmethod
    def load_from_file(cls, path: Union[str, Path]) -> "EventCatalog":
        """Build a catalog from a JSON list of event definitions."""
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        catalog = cls(raw, source_path=path)
        logger.info(f"Loaded {len(catalog)} event definitions from {path}")
        return catalog

    def reload(self) -> None:
        """Re-read the source file (no-op for catalogs built in memory)."""
        if self.source_path is None:
            return
        with open(self.source_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        self._definitions = self._index(raw)
        logger.info(f"Reloaded {len(self._definitions)} event definitions from {self.source_path}")

    def get(self, event_type: str) -> Optional[EventDefinition]:
        """Get a definition by event type (disabled ones included)."""
        return self._definitions.get(event_type)

    def register(self, definition: EventDefinition) -> None:
        """Add or replace one definition."""
        definitions = dict(self._definitions)
        definitions[definition.event_type] = definition
        self._definitions = definitions

    def enabled(self) -> List[EventDefinition]:
        return [d for d in self._definitions.values() if d.enabled]

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, event_type: str) -> bool:
        return event_type in self._definitions


def default_event_catalog() -> EventCatalog:
    """Catalog from `OPSFLOW_EVENT_CATALOG` if set, else the built-in definitions."""
    path = os.getenv("OPSFLOW_EVENT_CATALOG")
    if path:
        return EventCatalog.load_from_file(path)
    return EventCatalog()
