"""
Underbilling Detector

Compares what a contract and its subscriptions imply should have been
billed against the invoices actually issued:
- Usage overage that was never invoiced
- Invoices missing for the billing frequency
- Invoices priced below the subscription rate
- Latest invoice below the subscribed total
"""

from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import structlog

from renewal_analytics.core.helpers import days_between, iso_date, utcnow
from renewal_analytics.core.models import (
    AlertSeverity,
    BillingFrequency,
    Contract,
    Invoice,
    InvoiceStatus,
    Subscription,
    UnderbillingAlert,
    UnderbillingType,
)
from renewal_analytics.storage.alert_store import AlertRepository, InMemoryAlertRepository

logger = structlog.get_logger()

# days per period, periods per contract value
BILLING_PERIODS = {
    BillingFrequency.MONTHLY: (30, 12),
    BillingFrequency.QUARTERLY: (90, 4),
    BillingFrequency.ANNUALLY: (365, 1),
}

RATE_TOLERANCE = Decimal("0.9")
RATE_MIN_DIFFERENCE = Decimal(100)
QUANTITY_TOLERANCE = Decimal("0.05")


def calculate_severity(amount: Decimal) -> AlertSeverity:
    if amount >= 10000:
        return AlertSeverity.HIGH
    if amount >= 1000:
        return AlertSeverity.MEDIUM
    return AlertSeverity.LOW


class UnderbillingDetector:
    """
    Runs the underbilling rules for a contract and keeps every alert it
    raises in its repository for later queries and resolution.
    """

    def __init__(self, repository: Optional[AlertRepository] = None):
        self.repository = repository if repository is not None else InMemoryAlertRepository()

    def detect_underbilling(
        self,
        contract: Contract,
        invoices: Sequence[Invoice],
        subscriptions: Sequence[Subscription],
        now: Optional[datetime] = None,
    ) -> List[UnderbillingAlert]:
        """
        Run all underbilling rules for a contract.

        Args:
            contract: Contract under review
            invoices: Invoices of the contract, most recent first
            subscriptions: Subscriptions under the contract
            now: Reference time (defaults to the current UTC time)

        Returns:
            Alerts raised by this run (also stored in the repository)
        """
        now = now or utcnow()

        alerts = []
        alerts.extend(self._detect_usage_overage(contract, subscriptions, now))
        alerts.extend(self._detect_missing_invoices(contract, invoices, now))
        alerts.extend(self._detect_rate_mismatches(subscriptions, invoices, now))
        alerts.extend(self._detect_quantity_mismatches(subscriptions, invoices, now))

        self.repository.add_many(alerts)

        logger.info(
            "underbilling_detection_completed",
            contract_id=contract.id,
            alert_count=len(alerts),
        )
        return alerts

    # ── rules ─────────────────────────────────────────────────────────────

    def _detect_usage_overage(
        self, contract: Contract, subscriptions: Sequence[Subscription], now: datetime
    ) -> List[UnderbillingAlert]:
        alerts = []

        for sub in subscriptions:
            if not sub.has_usage_data or sub.usage_amount <= sub.usage_limit:
                continue

            if sub.quantity <= 0:
                logger.warning(
                    "usage_overage_unpriced",
                    subscription_id=sub.id,
                    quantity=str(sub.quantity),
                )
                continue

            overage = sub.usage_amount - sub.usage_limit
            overage_value = overage * (sub.unit_price / sub.quantity)

            alerts.append(
                UnderbillingAlert(
                    contract_id=contract.id,
                    customer_id=contract.customer_id,
                    type=UnderbillingType.USAGE_OVERAGE,
                    expected_amount=overage_value,
                    actual_amount=Decimal(0),  # never billed
                    difference=overage_value,
                    period=f"{iso_date(sub.start_date)} to {iso_date(sub.end_date)}",
                    severity=calculate_severity(overage_value),
                    detected_at=now,
                )
            )

            logger.warning(
                "usage_overage_detected",
                subscription_id=sub.id,
                overage=str(overage),
                estimated_value=str(overage_value),
            )

        return alerts

    def _detect_missing_invoices(
        self, contract: Contract, invoices: Sequence[Invoice], now: datetime
    ) -> List[UnderbillingAlert]:
        if contract.billing_frequency not in BILLING_PERIODS:
            # One-time billing has no cadence to check against
            return []

        period_days, periods_per_value = BILLING_PERIODS[contract.billing_frequency]
        contract_days = days_between(contract.start_date, now)
        expected_count = max(contract_days // period_days, 0)
        per_period = contract.total_value / periods_per_value

        billed = [
            inv for inv in invoices
            if inv.status not in (InvoiceStatus.VOID, InvoiceStatus.DRAFT)
        ]

        if expected_count == 0 or len(billed) >= expected_count:
            return []

        missing_count = expected_count - len(billed)
        missing_amount = per_period * missing_count

        logger.warning(
            "missing_invoices_detected",
            contract_id=contract.id,
            expected_count=expected_count,
            actual_count=len(billed),
            missing_amount=str(missing_amount),
        )

        return [
            UnderbillingAlert(
                contract_id=contract.id,
                customer_id=contract.customer_id,
                type=UnderbillingType.MISSING_INVOICE,
                expected_amount=missing_amount,
                actual_amount=Decimal(0),
                difference=missing_amount,
                period=f"Since {iso_date(contract.start_date)}",
                severity=calculate_severity(missing_amount),
                detected_at=now,
            )
        ]

    def _detect_rate_mismatches(
        self,
        subscriptions: Sequence[Subscription],
        invoices: Sequence[Invoice],
        now: datetime,
    ) -> List[UnderbillingAlert]:
        alerts = []

        for sub in subscriptions:
            minimum = sub.total_price * RATE_TOLERANCE

            for invoice in invoices:
                if invoice.contract_id != sub.contract_id:
                    continue
                if invoice.created_at < sub.start_date:
                    continue
                if invoice.status == InvoiceStatus.VOID or invoice.amount >= minimum:
                    continue

                difference = sub.total_price - invoice.amount
                if difference <= RATE_MIN_DIFFERENCE:
                    continue

                alerts.append(
                    UnderbillingAlert(
                        contract_id=sub.contract_id,
                        customer_id=sub.customer_id,
                        type=UnderbillingType.RATE_MISMATCH,
                        expected_amount=sub.total_price,
                        actual_amount=invoice.amount,
                        difference=difference,
                        period=invoice.invoice_number,
                        severity=calculate_severity(difference),
                        detected_at=now,
                    )
                )

        return alerts

    def _detect_quantity_mismatches(
        self,
        subscriptions: Sequence[Subscription],
        invoices: Sequence[Invoice],
        now: datetime,
    ) -> List[UnderbillingAlert]:
        alerts = []

        by_contract: Dict[str, List[Subscription]] = OrderedDict()
        for sub in subscriptions:
            by_contract.setdefault(sub.contract_id, []).append(sub)

        for contract_id, subs in by_contract.items():
            expected_total = sum((s.total_price for s in subs), Decimal(0))

            # Invoices arrive most recent first
            latest = next((inv for inv in invoices if inv.contract_id == contract_id), None)
            if latest is None:
                continue

            tolerance = expected_total * QUANTITY_TOLERANCE
            if abs(latest.amount - expected_total) <= tolerance or latest.amount >= expected_total:
                continue

            difference = expected_total - latest.amount
            alerts.append(
                UnderbillingAlert(
                    contract_id=contract_id,
                    customer_id=subs[0].customer_id,
                    type=UnderbillingType.QUANTITY_MISMATCH,
                    expected_amount=expected_total,
                    actual_amount=latest.amount,
                    difference=difference,
                    period=latest.invoice_number,
                    severity=calculate_severity(difference),
                    detected_at=now,
                )
            )

        return alerts

    # ── queries ───────────────────────────────────────────────────────────

    def get_alerts(self) -> List[UnderbillingAlert]:
        return self.repository.list()

    def get_alerts_by_customer(self, customer_id: str) -> List[UnderbillingAlert]:
        return self.repository.list(lambda alert: alert.customer_id == customer_id)

    def get_alerts_by_contract(self, contract_id: str) -> List[UnderbillingAlert]:
        return self.repository.list(lambda alert: alert.contract_id == contract_id)

    def get_unresolved_alerts(self) -> List[UnderbillingAlert]:
        return self.repository.list(lambda alert: not alert.resolved)

    def resolve_alert(self, alert_id: str) -> bool:
        """Mark an alert resolved. Returns False if no alert has that id."""
        resolved = self.repository.mark_resolved(alert_id)
        if resolved:
            logger.info("alert_resolved", alert_id=alert_id)
        return resolved
