"""Priority calculation for opsflow.

Combines the rule tier with urgency signals into one of four tiers. The
scoring is monotone: an extra urgency signal can raise the tier, never lower
it. Same inputs always produce the same output.
"""

from typing import Any, Mapping, Optional
from pydantic import BaseModel, Field

from opsflow.models.constants import (
    CUSTOMER_TIER_BOOST,
    ESCALATION_BOOST,
    FINANCIAL_FIELDS,
    HIGH_VALUE_THRESHOLD,
    MAX_PRIORITY_SCORE,
    MID_VALUE_THRESHOLD,
    PRIORITY_SCORES,
    RULE_PRIORITY_MAP,
    SLA_PROXIMITY_HOURS,
)
from opsflow.models.task import TaskPriority

TIER_ORDER = ["low", "medium", "high", "critical"]


class PriorityFactors(BaseModel):
    """Inputs to the priority calculation."""

    base_priority: TaskPriority = Field(..., description="Tier from the rule")
    event_priority: Optional[str] = Field(None, description="Event-level priority")
    customer_tier: Optional[str] = Field(None, description="standard, premium or vip")
    financial_impact: Optional[float] = Field(None, description="Monetary amount at stake")
    sla_proximity_hours: Optional[float] = Field(None, description="Hours until the SLA is breached")
    escalation_count: int = Field(0, ge=0, description="Prior escalations")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


def calculate_task_priority(factors: PriorityFactors) -> TaskPriority:
    """Calculate a task priority tier from multiple factors.

    Scoring:
    1. Base tier score (critical=4, high=3, medium=2, low=1)
    2. Raised (never lowered) to the event's own priority score
    3. Customer tier: vip +1, premium +0.5
    4. Financial impact: > 50M +1, > 10M +0.5
    5. SLA breach under 2 hours away: +1
    6. +0.5 per prior escalation
    Clamped to 4, then mapped back by threshold.

    Args:
        factors: Priority inputs

    Returns:
        Resulting priority tier
    """
    score = float(PRIORITY_SCORES[factors.base_priority])

    if factors.event_priority in PRIORITY_SCORES:
        score = max(score, PRIORITY_SCORES[factors.event_priority])

    score += CUSTOMER_TIER_BOOST.get(factors.customer_tier or "", 0.0)

    if factors.financial_impact is not None:
        if factors.financial_impact > HIGH_VALUE_THRESHOLD:
            score += 1
        elif factors.financial_impact > MID_VALUE_THRESHOLD:
            score += 0.5

    if factors.sla_proximity_hours is not None and factors.sla_proximity_hours < SLA_PROXIMITY_HOURS:
        score += 1

    score += ESCALATION_BOOST * factors.escalation_count

    return score_to_priority(min(score, MAX_PRIORITY_SCORE))


def score_to_priority(score: float) -> TaskPriority:
    """Map a numeric score back to a tier."""
    if score >= 4:
        return TaskPriority.CRITICAL
    if score >= 3:
        return TaskPriority.HIGH
    if score >= 2:
        return TaskPriority.MEDIUM
    return TaskPriority.LOW


def map_rule_priority(rule_priority: str) -> TaskPriority:
    """Map a catalog tier (P0..P3) to a task priority; unknown tiers are medium."""
    return TaskPriority(RULE_PRIORITY_MAP.get(rule_priority, TaskPriority.MEDIUM.value))


def escalate_priority(current: str) -> TaskPriority:
    """Raise a priority one tier, capped at critical."""
    index = TIER_ORDER.index(current)
    return TaskPriority(TIER_ORDER[min(index + 1, len(TIER_ORDER) - 1)])


def extract_financial_impact(payload: Mapping[str, Any]) -> Optional[float]:
    """Find a monetary amount in a payload.

    Checks the common amount fields in order; a field may hold a number or a
    money object with an ``amount`` key.
    """
    for field in FINANCIAL_FIELDS:
        value = payload.get(field)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        if isinstance(value, Mapping):
            amount = value.get("amount")
            if isinstance(amount, (int, float)) and not isinstance(amount, bool):
                return float(amount)
    return None


def extract_customer_tier(payload: Mapping[str, Any]) -> Optional[str]:
    """Find a customer tier in a payload (``customerTier`` or ``customer.tier``)."""
    tier = payload.get("customerTier")
    if tier is None and isinstance(payload.get("customer"), Mapping):
        tier = payload["customer"].get("tier")
    return tier if isinstance(tier, str) else None
