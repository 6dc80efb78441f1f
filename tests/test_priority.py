"""Tests for task priority calculation."""

import pytest

from opsflow.engine.priority import (
    PriorityFactors,
    calculate_task_priority,
    escalate_priority,
    extract_customer_tier,
    extract_financial_impact,
    map_rule_priority,
)
from opsflow.models.task import TaskPriority


class TestCalculateTaskPriority:
    """Test the additive priority score."""

    def test_base_tier_only(self):
        assert calculate_task_priority(PriorityFactors(base_priority="medium")) == TaskPriority.MEDIUM

    def test_event_priority_raises_but_never_lowers(self):
        assert calculate_task_priority(
            PriorityFactors(base_priority="low", event_priority="high")) == TaskPriority.HIGH
        assert calculate_task_priority(
            PriorityFactors(base_priority="high", event_priority="low")) == TaskPriority.HIGH

    def test_vip_customer_boost(self):
        assert calculate_task_priority(
            PriorityFactors(base_priority="medium", customer_tier="vip")) == TaskPriority.HIGH

    def test_premium_customer_half_boost(self):
        # 2 + 0.5 stays medium; with a mid-value amount it reaches 3
        assert calculate_task_priority(
            PriorityFactors(base_priority="medium", customer_tier="premium")) == TaskPriority.MEDIUM
        assert calculate_task_priority(PriorityFactors(
            base_priority="medium", customer_tier="premium", financial_impact=20_000_000)) == TaskPriority.HIGH

    @pytest.mark.parametrize("impact,expected", [
        (60_000_000, TaskPriority.HIGH),
        (20_000_000, TaskPriority.MEDIUM),
        (1_000_000, TaskPriority.MEDIUM),
    ])
    def test_financial_impact(self, impact, expected):
        assert calculate_task_priority(PriorityFactors(base_priority="medium", financial_impact=impact)) == expected

    def test_sla_proximity_and_escalations(self):
        factors = PriorityFactors(base_priority="medium", sla_proximity_hours=1, escalation_count=2)
        assert calculate_task_priority(factors) == TaskPriority.CRITICAL

    def test_score_is_clamped(self):
        factors = PriorityFactors(base_priority="critical", customer_tier="vip", financial_impact=90_000_000)
        assert calculate_task_priority(factors) == TaskPriority.CRITICAL


    @pytest.mark.parametrize("base", ["low", "medium", "high", "critical"])
    def test_adding_urgency_never_lowers_priority(self, base):
        rank = {TaskPriority.LOW: 1, TaskPriority.MEDIUM: 2, TaskPriority.HIGH: 3, TaskPriority.CRITICAL: 4}
        steps = [
            {"event_priority": "high"},
            {"customer_tier": "premium"},
            {"customer_tier": "vip"},
            {"financial_impact": 20_000_000},
            {"financial_impact": 60_000_000},
            {"sla_proximity_hours": 1},
            {"escalation_count": 1},
            {"escalation_count": 3},
        ]
        factors = {"base_priority": base}
        previous = rank[calculate_task_priority(PriorityFactors(**factors))]
        for step in steps:
            factors.update(step)
            current = rank[calculate_task_priority(PriorityFactors(**factors))]
            assert current >= previous, step
            previous = current


class TestPriorityHelpers:
    """Test mapping and extraction helpers."""

    @pytest.mark.parametrize("rule,expected", [
        ("P0", TaskPriority.CRITICAL),
        ("P1", TaskPriority.HIGH),
        ("P2", TaskPriority.MEDIUM),
        ("P3", TaskPriority.LOW),
        ("P9", TaskPriority.MEDIUM),
    ])
    def test_map_rule_priority(self, rule, expected):
        assert map_rule_priority(rule) == expected

    def test_escalate_priority_stops_at_critical(self):
        assert escalate_priority("low") == TaskPriority.MEDIUM
        assert escalate_priority("high") == TaskPriority.CRITICAL
        assert escalate_priority("critical") == TaskPriority.CRITICAL

    def test_extract_financial_impact(self):
        assert extract_financial_impact({"invoiceAmount": 2_500_000}) == 2_500_000.0
        assert extract_financial_impact({"amount": {"amount": 10, "currency": "UGX"}}) == 10.0
        assert extract_financial_impact({"amount": "lots"}) is None
        assert extract_financial_impact({}) is None

    def test_extract_customer_tier(self):
        assert extract_customer_tier({"customerTier": "vip"}) == "vip"
        assert extract_customer_tier({"customer": {"tier": "premium"}}) == "premium"
        assert extract_customer_tier({"customer": "Acme"}) is None
