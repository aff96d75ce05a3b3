"""
Renewal Health Scoring Engine

Scores how likely a contract is to renew from five weighted factors:
- Invoice status (overdue ratio and amount)
- Usage trend (subscription usage against limits)
- Contract value tier
- Renewal proximity (with auto-renewal bonus)
- Payment history (on-time ratio and average lateness)
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

import structlog

from renewal_analytics.core.config import Settings, settings as default_settings
from renewal_analytics.core.helpers import (
    calculate_percentage,
    clamp,
    days_between,
    format_currency,
    round_half_up,
    utcnow,
)
from renewal_analytics.core.models import (
    Contract,
    FactorImpact,
    Invoice,
    InvoiceStatus,
    RenewalHealthScore,
    RiskLevel,
    ScoreFactor,
    Subscription,
)

logger = structlog.get_logger()

INVOICE_STATUS = "Invoice Status"
USAGE_TREND = "Usage Trend"
CONTRACT_VALUE = "Contract Value"
RENEWAL_PROXIMITY = "Renewal Proximity"
PAYMENT_HISTORY = "Payment History"

PAYMENT_HISTORY_WEIGHT = 0.10
LOW_RISK_SCORE = 80
MAX_RECOMMENDATIONS = 5

RECOMMENDATIONS: Dict[str, List[str]] = {
    INVOICE_STATUS: [
        "Follow up on overdue invoices immediately",
        "Consider offering payment plan options",
    ],
    USAGE_TREND: [
        "Schedule customer success check-in",
        "Offer training or onboarding refresher",
        "Review if current plan fits customer needs",
    ],
    CONTRACT_VALUE: [
        "Identify upsell opportunities",
        "Review pricing strategy",
    ],
    RENEWAL_PROXIMITY: [
        "Initiate renewal conversation immediately",
        "Prepare renewal proposal with value summary",
    ],
    PAYMENT_HISTORY: [
        "Review credit terms with customer",
        "Set up automated payment reminders",
    ],
}


def _graded_impact(value: float) -> FactorImpact:
    if value >= 80:
        return FactorImpact.POSITIVE
    if value >= 50:
        return FactorImpact.NEUTRAL
    return FactorImpact.NEGATIVE


class RenewalScoringEngine:
    """
    Computes a 0-100 renewal health score and risk tier for a contract.

    Weights and tier thresholds come from Settings; only the payment
    history weight is fixed.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    def calculate_health_score(
        self,
        contract: Contract,
        invoices: Sequence[Invoice],
        subscriptions: Sequence[Subscription],
        now: Optional[datetime] = None,
    ) -> RenewalHealthScore:
        """
        Calculate the renewal health score for one contract.

        Args:
            contract: Contract to score
            invoices: All invoices of the contract, unfiltered
            subscriptions: Subscriptions under the contract
            now: Reference time (defaults to the current UTC time)

        Returns:
            A fresh RenewalHealthScore
        """
        now = now or utcnow()

        factors = [
            self._invoice_factor(invoices),
            self._usage_factor(subscriptions),
            self._value_factor(contract),
            self._renewal_proximity_factor(contract, now),
            self._payment_history_factor(invoices),
        ]

        score = self._weighted_score(factors)
        risk_level = self.determine_risk_level(score)
        recommendations = self._recommendations(factors, risk_level)

        logger.debug(
            "health_score_calculated",
            contract_id=contract.id,
            score=score,
            risk_level=risk_level.value,
        )

        return RenewalHealthScore(
            contract_id=contract.id,
            customer_id=contract.customer_id,
            score=score,
            risk_level=risk_level,
            factors=factors,
            recommendations=recommendations,
            calculated_at=now,
        )

    def calculate_batch_scores(
        self,
        contracts: Sequence[Contract],
        invoices_by_contract: Mapping[str, Sequence[Invoice]],
        subscriptions_by_contract: Mapping[str, Sequence[Subscription]],
        now: Optional[datetime] = None,
    ) -> List[RenewalHealthScore]:
        """
        Score many contracts. A contract that fails to score is logged and
        left out of the result; it does not stop the batch.
        """
        scores = []

        for contract in contracts:
            invoices = invoices_by_contract.get(contract.id, [])
            subscriptions = subscriptions_by_contract.get(contract.id, [])

            try:
                scores.append(
                    self.calculate_health_score(contract, invoices, subscriptions, now=now)
                )
            except Exception as e:
                logger.error(
                    "health_score_failed",
                    contract_id=contract.id,
                    error=str(e),
                    exc_info=True,
                )

        logger.info(
            "batch_scoring_completed",
            requested=len(contracts),
            scored=len(scores),
        )
        return scores

    def determine_risk_level(self, score: int) -> RiskLevel:
        if score >= LOW_RISK_SCORE:
            return RiskLevel.LOW
        if score >= self.config.scoring_risk_threshold:
            return RiskLevel.MEDIUM
        if score >= self.config.scoring_critical_threshold:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL

    # ── factors ───────────────────────────────────────────────────────────

    def _invoice_factor(self, invoices: Sequence[Invoice]) -> ScoreFactor:
        weight = self.config.scoring_invoice_overdue_weight

        if not invoices:
            return ScoreFactor(
                name=INVOICE_STATUS,
                weight=weight,
                value=100,
                impact=FactorImpact.NEUTRAL,
                description="No invoices to evaluate",
            )

        overdue = [inv for inv in invoices if inv.status == InvoiceStatus.OVERDUE]
        overdue_amount = sum((inv.amount for inv in overdue), Decimal(0))

        value = 100 - (len(overdue) / len(invoices)) * 100
        if overdue_amount > 10000:
            value -= 20
        elif overdue_amount > 5000:
            value -= 10
        value = clamp(value, 0, 100)

        if overdue:
            description = (
                f"{len(overdue)} overdue invoice(s) totaling {format_currency(overdue_amount)}"
            )
        else:
            description = "All invoices paid on time"

        return ScoreFactor(
            name=INVOICE_STATUS,
            weight=weight,
            value=value,
            impact=_graded_impact(value),
            description=description,
        )

    def _usage_factor(self, subscriptions: Sequence[Subscription]) -> ScoreFactor:
        weight = self.config.scoring_usage_decline_weight

        if not subscriptions:
            return ScoreFactor(
                name=USAGE_TREND,
                weight=weight,
                value=100,
                impact=FactorImpact.NEUTRAL,
                description="No subscriptions to evaluate",
            )

        with_usage = [sub for sub in subscriptions if sub.has_usage_data]
        if not with_usage:
            return ScoreFactor(
                name=USAGE_TREND,
                weight=weight,
                value=75,
                impact=FactorImpact.NEUTRAL,
                description="No usage data available",
            )

        percentages = [
            calculate_percentage(sub.usage_amount, sub.usage_limit) for sub in with_usage
        ]
        avg_usage = sum(percentages) / len(percentages)

        # High usage means good engagement
        if avg_usage >= 70:
            value, impact, label = 100, FactorImpact.POSITIVE, "High engagement"
        elif avg_usage >= 40:
            value, impact, label = 70, FactorImpact.NEUTRAL, "Moderate engagement"
        elif avg_usage >= 20:
            value, impact, label = 40, FactorImpact.NEGATIVE, "Low engagement"
        else:
            value, impact, label = 20, FactorImpact.NEGATIVE, "Very low engagement"

        description = f"{label}: {avg_usage:.0f}% average usage"
        if value == 20:
            description += " - churn risk"

        return ScoreFactor(
            name=USAGE_TREND,
            weight=weight,
            value=value,
            impact=impact,
            description=description,
        )

    def _value_factor(self, contract: Contract) -> ScoreFactor:
        total = contract.total_value
        amount = format_currency(total, contract.currency)

        if total >= 100000:
            value, impact, label = 100, FactorImpact.POSITIVE, "Enterprise contract"
        elif total >= 50000:
            value, impact, label = 85, FactorImpact.POSITIVE, "Large contract"
        elif total >= 10000:
            value, impact, label = 70, FactorImpact.NEUTRAL, "Mid-tier contract"
        elif total >= 1000:
            value, impact, label = 50, FactorImpact.NEUTRAL, "Small contract"
        else:
            value, impact, label = 30, FactorImpact.NEGATIVE, "Micro contract"

        return ScoreFactor(
            name=CONTRACT_VALUE,
            weight=self.config.scoring_contract_value_weight,
            value=value,
            impact=impact,
            description=f"{label}: {amount}",
        )

    def _renewal_proximity_factor(self, contract: Contract, now: datetime) -> ScoreFactor:
        days = days_between(now, contract.renewal_date)

        if days <= 0:
            value, impact = 20, FactorImpact.NEGATIVE
            description = "Contract has passed renewal date!"
        elif days <= 30:
            value, impact = 40, FactorImpact.NEGATIVE
            description = f"Urgent: {days} days until renewal"
        elif days <= 60:
            value, impact = 60, FactorImpact.NEUTRAL
            description = f"Approaching: {days} days until renewal"
        elif days <= 90:
            value, impact = 80, FactorImpact.NEUTRAL
            description = f"{days} days until renewal"
        else:
            value, impact = 100, FactorImpact.POSITIVE
            description = f"{days} days until renewal - plenty of time"

        # Bonus never changes the impact band
        if contract.auto_renewal:
            value = min(value + 10, 100)
            description += " (Auto-renewal enabled)"

        return ScoreFactor(
            name=RENEWAL_PROXIMITY,
            weight=self.config.scoring_renewal_proximity_weight,
            value=value,
            impact=impact,
            description=description,
        )

    def _payment_history_factor(self, invoices: Sequence[Invoice]) -> ScoreFactor:
        paid = [
            inv for inv in invoices
            if inv.status == InvoiceStatus.PAID and inv.paid_date is not None
        ]

        if not paid:
            return ScoreFactor(
                name=PAYMENT_HISTORY,
                weight=PAYMENT_HISTORY_WEIGHT,
                value=75,
                impact=FactorImpact.NEUTRAL,
                description="No payment history available",
            )

        total_days_late = 0
        late_count = 0
        for invoice in paid:
            days_late = days_between(invoice.due_date, invoice.paid_date)
            if days_late > 0:
                total_days_late += days_late
                late_count += 1

        avg_days_late = total_days_late / late_count if late_count else 0
        on_time_ratio = (len(paid) - late_count) / len(paid)

        value = clamp(on_time_ratio * 100 - avg_days_late * 2, 0, 100)
        impact = _graded_impact(value)

        if impact == FactorImpact.POSITIVE:
            description = f"Excellent payment history: {on_time_ratio * 100:.0f}% on-time"
        elif impact == FactorImpact.NEUTRAL:
            description = f"Average payment history: {avg_days_late:.0f} avg days late"
        else:
            description = f"Poor payment history: {avg_days_late:.0f} avg days late"

        return ScoreFactor(
            name=PAYMENT_HISTORY,
            weight=PAYMENT_HISTORY_WEIGHT,
            value=value,
            impact=impact,
            description=description,
        )

    # ── aggregation ───────────────────────────────────────────────────────

    @staticmethod
    def _weighted_score(factors: Sequence[ScoreFactor]) -> int:
        """Weighted mean of factor values, normalized by the total weight."""
        total_weight = sum(f.weight for f in factors)
        if total_weight <= 0:
            return 50
        weighted = sum(f.value * f.weight for f in factors) / total_weight
        return int(clamp(round_half_up(weighted), 0, 100))

    @staticmethod
    def _recommendations(
        factors: Sequence[ScoreFactor], risk_level: RiskLevel
    ) -> List[str]:
        recommendations: List[str] = []

        for factor in factors:
            if factor.impact == FactorImpact.NEGATIVE:
                recommendations.extend(RECOMMENDATIONS.get(factor.name, []))

        if risk_level == RiskLevel.CRITICAL:
            recommendations.insert(0, "CRITICAL: Executive escalation required")
            recommendations.append("Consider retention offer or discount")
        elif risk_level == RiskLevel.HIGH:
            recommendations.insert(0, "HIGH PRIORITY: Immediate attention required")

        return list(dict.fromkeys(recommendations))[:MAX_RECOMMENDATIONS]
