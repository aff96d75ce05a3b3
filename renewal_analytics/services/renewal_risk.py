"""
Renewal Risk Service

Flags contracts at risk of not renewing. Each detector collects the
indicators that fired and their score contributions; a risk is raised
only when enough indicators agree (``risk_min_indicators``, default 2).
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

import structlog

from renewal_analytics.core.config import Settings, settings as default_settings
from renewal_analytics.core.helpers import days_between, is_within_days, utcnow
from renewal_analytics.core.models import (
    Contract,
    FactorImpact,
    Invoice,
    InvoiceStatus,
    RenewalHealthScore,
    RenewalRisk,
    RiskIndicator,
    RiskLevel,
    RiskStatus,
    RiskSummary,
    RiskType,
)
from renewal_analytics.scoring.renewal_engine import CONTRACT_VALUE, USAGE_TREND
from renewal_analytics.storage.risk_store import InMemoryRiskRepository, RiskRepository

logger = structlog.get_logger()

MAX_RISK_SCORE = 100
LOW_USAGE_FACTOR = 50
DOWNGRADE_CONTRACT_VALUE = 50000
MANUAL_RENEWAL_WINDOW_DAYS = 90
PRICE_SENSITIVE_CONTRACT_VALUE = 25000
FREQUENT_LATE_RATIO = 0.5
LARGE_CONTRACT_LATE_RATIO = 0.3


class _Evidence:
    """Indicators fired by one detector and their summed score."""

    def __init__(self):
        self.indicators: List[RiskIndicator] = []
        self.score = 0

    def add(self, name: str, value, threshold, points: int) -> None:
        self.indicators.append(
            RiskIndicator(name=name, value=value, threshold=threshold, exceeded=True)
        )
        self.score += points


class RenewalRiskService:
    """Detects churn, downgrade, late renewal and price sensitivity risks."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        repository: Optional[RiskRepository] = None,
    ):
        self.config = config or default_settings
        self.repository = repository if repository is not None else InMemoryRiskRepository()

    def analyze_renewal_risks(
        self,
        contract: Contract,
        health_score: RenewalHealthScore,
        invoices: Sequence[Invoice],
        now: Optional[datetime] = None,
    ) -> List[RenewalRisk]:
        """
        Run every risk detector for a contract.

        Args:
            contract: Contract under review
            health_score: Score previously calculated for the contract
            invoices: Invoices of the contract, unfiltered
            now: Reference time (defaults to the current UTC time)

        Returns:
            Risks flagged by this run (also stored in the repository)
        """
        now = now or utcnow()

        candidates = [
            (RiskType.CHURN, self._churn_evidence(health_score, invoices)),
            (RiskType.DOWNGRADE, self._downgrade_evidence(contract, health_score)),
            (RiskType.LATE_RENEWAL, self._late_renewal_evidence(contract, invoices, now)),
            (RiskType.PRICE_SENSITIVITY, self._price_sensitivity_evidence(contract, invoices)),
        ]

        risks = [
            self._flag(contract, risk_type, evidence, now)
            for risk_type, evidence in candidates
            if len(evidence.indicators) >= self.config.risk_min_indicators
        ]

        self.repository.add_many(risks)

        logger.info(
            "renewal_risk_analysis_completed",
            contract_id=contract.id,
            risk_count=len(risks),
            risk_types=[r.risk_type.value for r in risks],
        )
        return risks

    @staticmethod
    def _flag(
        contract: Contract, risk_type: RiskType, evidence: _Evidence, now: datetime
    ) -> RenewalRisk:
        return RenewalRisk(
            contract_id=contract.id,
            customer_id=contract.customer_id,
            risk_type=risk_type,
            risk_score=min(evidence.score, MAX_RISK_SCORE),
            indicators=evidence.indicators,
            flagged_at=now,
            status=RiskStatus.NEW,
        )

    # ── detectors ─────────────────────────────────────────────────────────

    def _churn_evidence(
        self, health_score: RenewalHealthScore, invoices: Sequence[Invoice]
    ) -> _Evidence:
        cfg = self.config
        evidence = _Evidence()

        if health_score.score <= cfg.risk_health_score_churn:
            evidence.add("Low Health Score", health_score.score, cfg.risk_health_score_churn, 40)

        overdue = [inv for inv in invoices if inv.status == InvoiceStatus.OVERDUE]
        if len(overdue) >= cfg.risk_overdue_invoices_churn:
            evidence.add(
                "Multiple Overdue Invoices", len(overdue), cfg.risk_overdue_invoices_churn, 30
            )

        overdue_amount = sum((inv.amount for inv in overdue), Decimal(0))
        if overdue_amount >= Decimal(str(cfg.risk_overdue_amount_churn)):
            evidence.add(
                "High Overdue Amount", overdue_amount, cfg.risk_overdue_amount_churn, 30
            )

        if health_score.risk_level == RiskLevel.CRITICAL:
            evidence.add("Critical Risk Level", "CRITICAL", "HIGH or below", 20)

        negative = [f for f in health_score.factors if f.impact == FactorImpact.NEGATIVE]
        if len(negative) >= 2:
            evidence.add("Multiple Negative Factors", len(negative), 2, 10)

        return evidence

    def _downgrade_evidence(
        self, contract: Contract, health_score: RenewalHealthScore
    ) -> _Evidence:
        cfg = self.config
        evidence = _Evidence()

        # Concerning, but not low enough to count as churn
        if cfg.risk_health_score_churn < health_score.score <= cfg.risk_health_score_downgrade:
            evidence.add(
                "Moderate Health Score", health_score.score, cfg.risk_health_score_downgrade, 40
            )

        usage = _find_factor(health_score, USAGE_TREND)
        if usage is not None and usage.value < LOW_USAGE_FACTOR:
            evidence.add("Low Product Usage", usage.value, LOW_USAGE_FACTOR, 35)

        if contract.total_value > DOWNGRADE_CONTRACT_VALUE:
            value_factor = _find_factor(health_score, CONTRACT_VALUE)
            if value_factor is not None and value_factor.impact != FactorImpact.POSITIVE:
                evidence.add(
                    "Large Contract Value at Risk",
                    contract.total_value,
                    DOWNGRADE_CONTRACT_VALUE,
                    25,
                )

        return evidence

    def _late_renewal_evidence(
        self, contract: Contract, invoices: Sequence[Invoice], now: datetime
    ) -> _Evidence:
        cfg = self.config
        evidence = _Evidence()
        days_until_renewal = days_between(now, contract.renewal_date)

        if days_until_renewal <= cfg.risk_days_until_renewal_urgent:
            evidence.add(
                "Renewal Imminent", days_until_renewal, cfg.risk_days_until_renewal_urgent, 40
            )
        elif days_until_renewal <= cfg.risk_days_until_renewal_soon:
            evidence.add(
                "Renewal Approaching", days_until_renewal, cfg.risk_days_until_renewal_soon, 25
            )

        outstanding = [
            inv for inv in invoices
            if inv.status not in (InvoiceStatus.PAID, InvoiceStatus.VOID)
        ]
        if outstanding:
            evidence.add("Outstanding Invoices", len(outstanding), 0, 25)

        if not contract.auto_renewal and is_within_days(
            contract.renewal_date, MANUAL_RENEWAL_WINDOW_DAYS, now=now
        ):
            evidence.add("Manual Renewal Required", "No auto-renewal", "Auto-renewal enabled", 20)

        return evidence

    def _price_sensitivity_evidence(
        self, contract: Contract, invoices: Sequence[Invoice]
    ) -> _Evidence:
        evidence = _Evidence()

        paid = [
            inv for inv in invoices
            if inv.status == InvoiceStatus.PAID and inv.paid_date is not None
        ]
        late_count = sum(1 for inv in paid if days_between(inv.due_date, inv.paid_date) > 0)
        late_ratio = late_count / len(paid) if paid else 0

        # Consistently late payments can point at budget pressure
        if late_ratio > FREQUENT_LATE_RATIO:
            evidence.add(
                "Frequent Late Payments",
                f"{late_ratio * 100:.0f}%",
                f"{FREQUENT_LATE_RATIO * 100:.0f}%",
                35,
            )

        if contract.total_value > PRICE_SENSITIVE_CONTRACT_VALUE and late_ratio > LARGE_CONTRACT_LATE_RATIO:
            evidence.add(
                "Payment Pressure on Large Contract",
                contract.total_value,
                PRICE_SENSITIVE_CONTRACT_VALUE,
                30,
            )

        partial = [inv for inv in invoices if inv.status == InvoiceStatus.PARTIAL]
        if partial:
            evidence.add("History of Partial Payments", len(partial), 0, 25)

        return evidence

    # ── queries ───────────────────────────────────────────────────────────

    def get_risks(self) -> List[RenewalRisk]:
        return self.repository.list()

    def get_risks_by_customer(self, customer_id: str) -> List[RenewalRisk]:
        return self.repository.list(lambda risk: risk.customer_id == customer_id)

    def get_risks_by_contract(self, contract_id: str) -> List[RenewalRisk]:
        return self.repository.list(lambda risk: risk.contract_id == contract_id)

    def get_risks_by_type(self, risk_type: RiskType) -> List[RenewalRisk]:
        return self.repository.list(lambda risk: risk.risk_type == risk_type)

    def get_active_risks(self) -> List[RenewalRisk]:
        return self.repository.list(lambda risk: risk.status != RiskStatus.RESOLVED)

    def update_risk_status(self, risk_id: str, status: RiskStatus) -> bool:
        status = RiskStatus(status)
        updated = self.repository.set_status(risk_id, status)
        if updated:
            logger.info("risk_status_updated", risk_id=risk_id, status=status.value)
        return updated

    def get_risk_summary(self) -> RiskSummary:
        risks = self.repository.list()

        by_type = {risk_type: 0 for risk_type in RiskType}
        by_status = {status: 0 for status in RiskStatus}
        for risk in risks:
            by_type[risk.risk_type] += 1
            by_status[risk.status] += 1

        average = sum(r.risk_score for r in risks) / len(risks) if risks else 0.0

        return RiskSummary(
            total=len(risks),
            by_type=by_type,
            by_status=by_status,
            average_score=average,
        )


def _find_factor(health_score: RenewalHealthScore, name: str):
    return next((f for f in health_score.factors if f.name == name), None)
