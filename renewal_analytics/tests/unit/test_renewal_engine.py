"""
Unit tests for the Renewal Scoring Engine.

Covers each factor, weighted aggregation, risk tiers,
recommendations and batch scoring.
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from renewal_analytics.core.config import Settings
from renewal_analytics.core.models import FactorImpact, InvoiceStatus, RiskLevel
from renewal_analytics.scoring.renewal_engine import RenewalScoringEngine


@pytest.fixture
def engine(test_settings):
    return RenewalScoringEngine(test_settings)


def _factor(score, name):
    return next(f for f in score.factors if f.name == name)


class TestHealthScore:
    """End-to-end score calculation."""

    def test_healthy_contract_scores_low_risk(
        self, engine, make_contract, make_invoice, make_subscription, now
    ):
        contract = make_contract()
        score = engine.calculate_health_score(
            contract, [make_invoice()], [make_subscription()], now=now
        )

        assert score.contract_id == "contract-1"
        assert score.customer_id == "customer-1"
        assert len(score.factors) == 5
        # (100*.25 + 100*.20 + 85*.15 + 90*.25 + 100*.10) / 0.95
        assert score.score == 95
        assert score.risk_level in (RiskLevel.LOW, RiskLevel.MEDIUM)
        assert score.recommendations == []

    def test_factor_order(self, engine, make_contract, now):
        score = engine.calculate_health_score(make_contract(), [], [], now=now)

        assert [f.name for f in score.factors] == [
            "Invoice Status",
            "Usage Trend",
            "Contract Value",
            "Renewal Proximity",
            "Payment History",
        ]

    def test_empty_inputs_are_neutral(self, engine, make_contract, now):
        score = engine.calculate_health_score(make_contract(), [], [], now=now)

        assert _factor(score, "Invoice Status").value == 100
        assert _factor(score, "Invoice Status").impact == FactorImpact.NEUTRAL
        assert _factor(score, "Usage Trend").value == 100
        assert _factor(score, "Payment History").value == 75
        assert 0 <= score.score <= 100

    def test_each_call_returns_new_instance(self, engine, make_contract, now):
        contract = make_contract()
        first = engine.calculate_health_score(contract, [], [], now=now)
        second = engine.calculate_health_score(contract, [], [], now=now)

        assert first is not second
        assert first.score == second.score

    def test_auto_renewal_never_lowers_score(
        self, engine, make_contract, make_invoice, now
    ):
        for days in (-5, 10, 45, 75, 200):
            manual = make_contract(
                auto_renewal=False, renewal_date=now + timedelta(days=days)
            )
            auto = make_contract(
                auto_renewal=True, renewal_date=now + timedelta(days=days)
            )

            manual_score = engine.calculate_health_score(manual, [make_invoice()], [], now=now)
            auto_score = engine.calculate_health_score(auto, [make_invoice()], [], now=now)

            assert auto_score.score >= manual_score.score


class TestInvoiceFactor:
    def test_overdue_ratio_and_amount_penalty(self, engine, make_contract, make_invoice, now):
        invoices = [
            make_invoice(id="i1", status=InvoiceStatus.OVERDUE, amount=Decimal("3000"), paid_date=None),
            make_invoice(id="i2", status=InvoiceStatus.OVERDUE, amount=Decimal("3000"), paid_date=None),
            make_invoice(id="i3"),
            make_invoice(id="i4"),
        ]

        factor = _factor(
            engine.calculate_health_score(make_contract(), invoices, [], now=now),
            "Invoice Status",
        )

        # 100 - 50% overdue - 10 for > 5,000 outstanding
        assert factor.value == 40
        assert factor.impact == FactorImpact.NEGATIVE
        assert "2 overdue invoice(s)" in factor.description
        assert "$6,000.00" in factor.description

    def test_large_overdue_amount_clamped_at_zero(self, engine, make_contract, make_invoice, now):
        invoices = [
            make_invoice(id="i1", status=InvoiceStatus.OVERDUE, amount=Decimal("20000"), paid_date=None)
        ]

        factor = _factor(
            engine.calculate_health_score(make_contract(), invoices, [], now=now),
            "Invoice Status",
        )

        assert factor.value == 0

    def test_no_overdue(self, engine, make_contract, make_invoice, now):
        factor = _factor(
            engine.calculate_health_score(make_contract(), [make_invoice()], [], now=now),
            "Invoice Status",
        )

        assert factor.value == 100
        assert factor.impact == FactorImpact.POSITIVE
        assert factor.description == "All invoices paid on time"


class TestUsageFactor:
    @pytest.mark.parametrize(
        "usage, expected_value, expected_impact",
        [
            (Decimal("900"), 100, FactorImpact.POSITIVE),
            (Decimal("500"), 70, FactorImpact.NEUTRAL),
            (Decimal("250"), 40, FactorImpact.NEGATIVE),
            (Decimal("100"), 20, FactorImpact.NEGATIVE),
        ],
    )
    def test_usage_bands(
        self, engine, make_contract, make_subscription, now, usage, expected_value, expected_impact
    ):
        subscription = make_subscription(usage_amount=usage, usage_limit=Decimal("1000"))

        factor = _factor(
            engine.calculate_health_score(make_contract(), [], [subscription], now=now),
            "Usage Trend",
        )

        assert factor.value == expected_value
        assert factor.impact == expected_impact

    def test_usage_averaged_across_subscriptions(
        self, engine, make_contract, make_subscription, now
    ):
        subscriptions = [
            make_subscription(id="s1", usage_amount=Decimal("900")),
            make_subscription(id="s2", usage_amount=Decimal("100")),
        ]

        factor = _factor(
            engine.calculate_health_score(make_contract(), [], subscriptions, now=now),
            "Usage Trend",
        )

        # average 50%
        assert factor.value == 70

    def test_missing_usage_data(self, engine, make_contract, make_subscription, now):
        subscription = make_subscription(usage_amount=None, usage_limit=None)

        factor = _factor(
            engine.calculate_health_score(make_contract(), [], [subscription], now=now),
            "Usage Trend",
        )

        assert factor.value == 75
        assert factor.description == "No usage data available"

    def test_zero_usage_limit_counts_as_zero_percent(
        self, engine, make_contract, make_subscription, now
    ):
        subscription = make_subscription(usage_amount=Decimal("10"), usage_limit=Decimal("0"))

        factor = _factor(
            engine.calculate_health_score(make_contract(), [], [subscription], now=now),
            "Usage Trend",
        )

        assert factor.value == 20


class TestContractValueFactor:
    @pytest.mark.parametrize(
        "total, expected_value, expected_impact",
        [
            ("150000", 100, FactorImpact.POSITIVE),
            ("100000", 100, FactorImpact.POSITIVE),
            ("50000", 85, FactorImpact.POSITIVE),
            ("10000", 70, FactorImpact.NEUTRAL),
            ("1000", 50, FactorImpact.NEUTRAL),
            ("999", 30, FactorImpact.NEGATIVE),
        ],
    )
    def test_value_tiers(self, engine, make_contract, now, total, expected_value, expected_impact):
        contract = make_contract(total_value=Decimal(total))

        factor = _factor(engine.calculate_health_score(contract, [], [], now=now), "Contract Value")

        assert factor.value == expected_value
        assert factor.impact == expected_impact


class TestRenewalProximityFactor:
    @pytest.mark.parametrize(
        "days, expected_value, expected_impact",
        [
            (-10, 20, FactorImpact.NEGATIVE),
            (0, 20, FactorImpact.NEGATIVE),
            (30, 40, FactorImpact.NEGATIVE),
            (60, 60, FactorImpact.NEUTRAL),
            (90, 80, FactorImpact.NEUTRAL),
            (91, 100, FactorImpact.POSITIVE),
        ],
    )
    def test_proximity_bands(
        self, engine, make_contract, now, days, expected_value, expected_impact
    ):
        contract = make_contract(auto_renewal=False, renewal_date=now + timedelta(days=days))

        factor = _factor(engine.calculate_health_score(contract, [], [], now=now), "Renewal Proximity")

        assert factor.value == expected_value
        assert factor.impact == expected_impact

    def test_auto_renewal_bonus_keeps_impact(self, engine, make_contract, now):
        contract = make_contract(auto_renewal=True, renewal_date=now + timedelta(days=20))

        factor = _factor(engine.calculate_health_score(contract, [], [], now=now), "Renewal Proximity")

        assert factor.value == 50
        assert factor.impact == FactorImpact.NEGATIVE
        assert factor.description.endswith("(Auto-renewal enabled)")

    def test_auto_renewal_bonus_capped(self, engine, make_contract, now):
        contract = make_contract(auto_renewal=True, renewal_date=now + timedelta(days=200))

        factor = _factor(engine.calculate_health_score(contract, [], [], now=now), "Renewal Proximity")

        assert factor.value == 100


class TestPaymentHistoryFactor:
    def test_late_payments_penalized(self, engine, make_contract, make_invoice, now):
        due = now - timedelta(days=60)
        invoices = [
            make_invoice(id="i1", due_date=due, paid_date=due),
            make_invoice(id="i2", due_date=due, paid_date=due + timedelta(days=10)),
        ]

        factor = _factor(
            engine.calculate_health_score(make_contract(), invoices, [], now=now),
            "Payment History",
        )

        # 50% on time - 10 avg days late * 2
        assert factor.value == 30
        assert factor.impact == FactorImpact.NEGATIVE
        assert factor.weight == 0.10

    def test_unpaid_and_undated_invoices_ignored(self, engine, make_contract, make_invoice, now):
        invoices = [
            make_invoice(id="i1", status=InvoiceStatus.SENT, paid_date=None),
            make_invoice(id="i2", status=InvoiceStatus.PAID, paid_date=None),
        ]

        factor = _factor(
            engine.calculate_health_score(make_contract(), invoices, [], now=now),
            "Payment History",
        )

        assert factor.value == 75
        assert factor.impact == FactorImpact.NEUTRAL

    def test_on_time_payments(self, engine, make_contract, make_invoice, now):
        factor = _factor(
            engine.calculate_health_score(make_contract(), [make_invoice()], [], now=now),
            "Payment History",
        )

        assert factor.value == 100
        assert factor.impact == FactorImpact.POSITIVE


class TestRiskLevel:
    @pytest.mark.parametrize(
        "score, expected",
        [
            (100, RiskLevel.LOW),
            (80, RiskLevel.LOW),
            (79, RiskLevel.MEDIUM),
            (60, RiskLevel.MEDIUM),
            (59, RiskLevel.HIGH),
            (40, RiskLevel.HIGH),
            (39, RiskLevel.CRITICAL),
            (0, RiskLevel.CRITICAL),
        ],
    )
    def test_default_bands(self, engine, score, expected):
        assert engine.determine_risk_level(score) == expected

    def test_monotonic_in_score(self, engine):
        order = [RiskLevel.CRITICAL, RiskLevel.HIGH, RiskLevel.MEDIUM, RiskLevel.LOW]
        levels = [order.index(engine.determine_risk_level(s)) for s in range(101)]

        assert levels == sorted(levels)

    def test_configurable_thresholds(self):
        engine = RenewalScoringEngine(
            Settings(_env_file=None, scoring_risk_threshold=70, scoring_critical_threshold=50)
        )

        assert engine.determine_risk_level(65) == RiskLevel.HIGH
        assert engine.determine_risk_level(45) == RiskLevel.CRITICAL


class TestWeightsAndRecommendations:
    def test_weights_need_not_sum_to_one(self, make_contract, now):
        engine = RenewalScoringEngine(
            Settings(
                _env_file=None,
                scoring_invoice_overdue_weight=1.0,
                scoring_usage_decline_weight=1.0,
                scoring_contract_value_weight=1.0,
                scoring_renewal_proximity_weight=1.0,
            )
        )

        score = engine.calculate_health_score(make_contract(), [], [], now=now)

        # (100 + 100 + 85 + 90 + 75*.1) / 4.1
        assert score.score == 93

    def test_critical_contract_recommendations(
        self, engine, make_contract, make_invoice, make_subscription, now
    ):
        contract = make_contract(
            total_value=Decimal("500"),
            auto_renewal=False,
            renewal_date=now - timedelta(days=5),
        )
        invoices = [
            make_invoice(id=f"i{i}", status=InvoiceStatus.OVERDUE, paid_date=None)
            for i in range(3)
        ]
        subscription = make_subscription(usage_amount=Decimal("100"))

        score = engine.calculate_health_score(contract, invoices, [subscription], now=now)

        assert score.risk_level == RiskLevel.CRITICAL
        assert score.score == 22
        assert score.recommendations == [
            "CRITICAL: Executive escalation required",
            "Follow up on overdue invoices immediately",
            "Consider offering payment plan options",
            "Schedule customer success check-in",
            "Offer training or onboarding refresher",
        ]

    def test_high_risk_priority_message_first(self, make_contract, now):
        engine = RenewalScoringEngine(Settings(_env_file=None, scoring_risk_threshold=99))

        score = engine.calculate_health_score(
            make_contract(renewal_date=now + timedelta(days=20), auto_renewal=False),
            [],
            [],
            now=now,
        )

        assert score.risk_level == RiskLevel.HIGH
        assert score.recommendations[0] == "HIGH PRIORITY: Immediate attention required"
        assert "Initiate renewal conversation immediately" in score.recommendations
        assert len(score.recommendations) == len(set(score.recommendations))
        assert len(score.recommendations) <= 5


class TestBatchScores:
    def test_missing_lookups_mean_empty_lists(self, engine, make_contract, make_invoice, now):
        first = make_contract(id="c1")
        second = make_contract(id="c2")

        scores = engine.calculate_batch_scores(
            [first, second],
            {"c1": [make_invoice(contract_id="c1")]},
            {},
            now=now,
        )

        assert [s.contract_id for s in scores] == ["c1", "c2"]
        assert _factor(scores[1], "Invoice Status").description == "No invoices to evaluate"

    def test_failures_are_skipped(self, engine, make_contract, now):
        contracts = [make_contract(id="good-1"), make_contract(id="bad"), make_contract(id="good-2")]
        original = engine.calculate_health_score

        def flaky(contract, *args, **kwargs):
            if contract.id == "bad":
                raise ValueError("corrupt record")
            return original(contract, *args, **kwargs)

        with patch.object(engine, "calculate_health_score", side_effect=flaky):
            scores = engine.calculate_batch_scores(contracts, {}, {}, now=now)

        assert [s.contract_id for s in scores] == ["good-1", "good-2"]
