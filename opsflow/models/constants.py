"""Constants for opsflow.

This module centralizes the scoring tables, thresholds and default values used
by the task and grey-area engines.
"""

# Priority scoring (higher = more urgent)
PRIORITY_SCORES = {
    "critical": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
}
MAX_PRIORITY_SCORE = 4

# Catalog rule tiers
RULE_PRIORITY_MAP = {
    "P0": "critical",
    "P1": "high",
    "P2": "medium",
    "P3": "low",
}

# Customer tier boosts
CUSTOMER_TIER_BOOST = {
    "vip": 1.0,
    "premium": 0.5,
}

# Financial impact thresholds (UGX)
HIGH_VALUE_THRESHOLD = 50_000_000
MID_VALUE_THRESHOLD = 10_000_000

# SLA proximity: deadlines closer than this get +1
SLA_PROXIMITY_HOURS = 2
ESCALATION_BOOST = 0.5

# Deadline compression by priority
PRIORITY_SLA_MULTIPLIERS = {
    "critical": 0.5,
    "high": 0.75,
    "medium": 1.0,
    "low": 1.5,
}

# Default SLA windows (hours)
DEFAULT_TASK_SLA_HOURS = {
    "critical": 4,
    "high": 8,
    "medium": 24,
    "low": 72,
}
DEFAULT_SEVERITY_SLA_HOURS = {
    "critical": 2,
    "high": 8,
    "medium": 24,
    "low": 72,
}

# Overdue tasks escalate once they are this many hours past due
OVERDUE_ESCALATION_HOURS = {
    "critical": 1,
    "high": 4,
    "medium": 12,
    "low": 48,
}

# Business hours (East Africa Time)
BUSINESS_START_HOUR = 8
BUSINESS_END_HOUR = 17
BUSINESS_TIMEZONE = "Africa/Kampala"
WORKWEEK_DAYS = (0, 1, 2, 3, 4)  # Monday..Friday

# Assignment
DEFAULT_MAX_TASKS_PER_PERSON = 40
AVAILABILITY_RATIO = 0.8  # below 80% of capacity counts as "available"
MAX_FALLBACK_DEPTH = 5
ACTIVE_EMPLOYMENT_STATUSES = ("active", "probation")

# Payload fields that may carry a monetary value
FINANCIAL_FIELDS = (
    "amount",
    "value",
    "total",
    "orderValue",
    "invoiceAmount",
    "budgetAmount",
    "transactionAmount",
)

SYSTEM_ACTOR_ID = "system"
