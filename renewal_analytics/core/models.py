from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import AfterValidator, BaseModel, Field, model_validator
from typing_extensions import Annotated

from renewal_analytics.core.helpers import as_utc, generate_id, utcnow

UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


class ContractStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    RENEWED = "renewed"


class BillingFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"
    ONE_TIME = "one_time"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    VOID = "void"
    PARTIAL = "partial"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FactorImpact(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class UnderbillingType(str, Enum):
    USAGE_OVERAGE = "usage_overage"
    MISSING_INVOICE = "missing_invoice"
    RATE_MISMATCH = "rate_mismatch"
    QUANTITY_MISMATCH = "quantity_mismatch"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskType(str, Enum):
    CHURN = "churn"
    DOWNGRADE = "downgrade"
    LATE_RENEWAL = "late_renewal"
    PRICE_SENSITIVITY = "price_sensitivity"


class RiskStatus(str, Enum):
    NEW = "new"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


# ── Input records ─────────────────────────────────────────────────────────────


class Contract(BaseModel):
    id: str
    customer_id: str
    customer_name: str
    contract_number: str
    start_date: UTCDateTime
    end_date: UTCDateTime
    renewal_date: UTCDateTime  # independent of end_date
    total_value: Decimal
    currency: str = "USD"
    status: ContractStatus = ContractStatus.ACTIVE
    billing_frequency: BillingFrequency
    auto_renewal: bool = False
    terms: str = ""
    created_at: UTCDateTime = Field(default_factory=utcnow)
    updated_at: UTCDateTime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_term_bounds(self) -> "Contract":
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class InvoiceLineItem(BaseModel):
    id: str = Field(default_factory=generate_id)
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal


class Invoice(BaseModel):
    id: str = Field(default_factory=generate_id)
    contract_id: str
    invoice_number: str
    customer_id: str
    amount: Decimal
    currency: str = "USD"
    due_date: UTCDateTime
    paid_date: Optional[UTCDateTime] = None  # not cross-checked against status
    status: InvoiceStatus
    line_items: List[InvoiceLineItem] = Field(default_factory=list)
    created_at: UTCDateTime = Field(default_factory=utcnow)


class Subscription(BaseModel):
    id: str = Field(default_factory=generate_id)
    contract_id: str
    customer_id: str
    product_id: str
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    usage_amount: Optional[Decimal] = None
    usage_limit: Optional[Decimal] = None
    start_date: UTCDateTime
    end_date: UTCDateTime
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE

    @property
    def has_usage_data(self) -> bool:
        return self.usage_amount is not None and self.usage_limit is not None


# ── Derived records ───────────────────────────────────────────────────────────


class ScoreFactor(BaseModel):
    name: str
    weight: float
    value: float = Field(ge=0, le=100)
    impact: FactorImpact
    description: str


class RenewalHealthScore(BaseModel):
    contract_id: str
    customer_id: str
    score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    factors: List[ScoreFactor] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    calculated_at: UTCDateTime = Field(default_factory=utcnow)


class UnderbillingAlert(BaseModel):
    """A gap between what the contract implies and what was invoiced."""

    id: str = Field(default_factory=generate_id)
    contract_id: str
    customer_id: str
    type: UnderbillingType
    expected_amount: Decimal
    actual_amount: Decimal
    difference: Decimal = Field(description="expected_amount - actual_amount")
    period: str = Field(description="Free-text label of the billing period")
    severity: AlertSeverity
    detected_at: UTCDateTime = Field(default_factory=utcnow)
    resolved: bool = False


class RiskIndicator(BaseModel):
    name: str
    value: Union[int, float, Decimal, str]
    threshold: Union[int, float, Decimal, str]
    exceeded: bool = True


class RenewalRisk(BaseModel):
    id: str = Field(default_factory=generate_id)
    contract_id: str
    customer_id: str
    risk_type: RiskType
    risk_score: int = Field(ge=0, le=100)
    indicators: List[RiskIndicator] = Field(default_factory=list)
    flagged_at: UTCDateTime = Field(default_factory=utcnow)
    status: RiskStatus = RiskStatus.NEW


class RiskSummary(BaseModel):
    total: int
    by_type: Dict[RiskType, int]
    by_status: Dict[RiskStatus, int]
    average_score: float
