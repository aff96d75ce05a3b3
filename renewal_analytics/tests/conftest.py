import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from renewal_analytics.core.config import Settings
from renewal_analytics.core.models import (
    BillingFrequency,
    Contract,
    ContractStatus,
    FactorImpact,
    Invoice,
    InvoiceStatus,
    RenewalHealthScore,
    RiskLevel,
    ScoreFactor,
    Subscription,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed reference time so day counts are deterministic."""
    return NOW


@pytest.fixture
def test_settings():
    """Settings with defaults only (ignores any local .env)."""
    return Settings(_env_file=None)


@pytest.fixture
def make_contract():
    def _make(**overrides):
        data = dict(
            id="contract-1",
            customer_id="customer-1",
            customer_name="Test Customer",
            contract_number="CTR-001",
            start_date=NOW - timedelta(days=365),
            end_date=NOW + timedelta(days=365),
            renewal_date=NOW + timedelta(days=90),
            total_value=Decimal("50000"),
            currency="USD",
            status=ContractStatus.ACTIVE,
            billing_frequency=BillingFrequency.MONTHLY,
            auto_renewal=True,
            terms="Annual",
            created_at=NOW - timedelta(days=365),
            updated_at=NOW,
        )
        data.update(overrides)
        return Contract(**data)

    return _make


@pytest.fixture
def make_invoice():
    def _make(**overrides):
        data = dict(
            id="invoice-1",
            contract_id="contract-1",
            invoice_number="INV-001",
            customer_id="customer-1",
            amount=Decimal("5000"),
            currency="USD",
            due_date=NOW - timedelta(days=30),
            paid_date=NOW - timedelta(days=30),
            status=InvoiceStatus.PAID,
            created_at=NOW - timedelta(days=45),
        )
        data.update(overrides)
        return Invoice(**data)

    return _make


@pytest.fixture
def make_subscription():
    def _make(**overrides):
        data = dict(
            id="sub-1",
            contract_id="contract-1",
            customer_id="customer-1",
            product_id="prod-1",
            product_name="Platform Seats",
            quantity=Decimal("1"),
            unit_price=Decimal("1000"),
            total_price=Decimal("1000"),
            usage_amount=Decimal("700"),
            usage_limit=Decimal("1000"),
            start_date=NOW - timedelta(days=365),
            end_date=NOW + timedelta(days=365),
        )
        data.update(overrides)
        return Subscription(**data)

    return _make


@pytest.fixture
def make_health_score():
    def _make(**overrides):
        data = dict(
            contract_id="contract-1",
            customer_id="customer-1",
            score=75,
            risk_level=RiskLevel.MEDIUM,
            factors=[
                ScoreFactor(
                    name="Invoice Status",
                    weight=0.25,
                    value=80,
                    impact=FactorImpact.POSITIVE,
                    description="Good",
                ),
                ScoreFactor(
                    name="Usage Trend",
                    weight=0.20,
                    value=70,
                    impact=FactorImpact.NEUTRAL,
                    description="Moderate",
                ),
            ],
            recommendations=[],
            calculated_at=NOW,
        )
        data.update(overrides)
        return RenewalHealthScore(**data)

    return _make
