"""Renewal health scoring, underbilling detection and renewal risk flagging."""

from renewal_analytics.scoring.renewal_engine import RenewalScoringEngine
from renewal_analytics.services.renewal_risk import RenewalRiskService
from renewal_analytics.services.underbilling_detector import UnderbillingDetector

__all__ = [
    "RenewalScoringEngine",
    "RenewalRiskService",
    "UnderbillingDetector",
]
