"""Score a JSON portfolio, detect underbilling and flag renewal risks"""

import argparse
import json
from collections import defaultdict
from pathlib import Path

import structlog

from renewal_analytics.core.config import settings
from renewal_analytics.core.logging import configure_logging
from renewal_analytics.core.models import Contract, Invoice, Subscription
from renewal_analytics.scoring.renewal_engine import RenewalScoringEngine
from renewal_analytics.services.renewal_risk import RenewalRiskService
from renewal_analytics.services.underbilling_detector import UnderbillingDetector

logger = structlog.get_logger()


def load_portfolio(path: Path):
    with open(path) as f:
        data = json.load(f)

    contracts = [Contract(**c) for c in data.get("contracts", [])]

    invoices_by_contract = defaultdict(list)
    for raw in data.get("invoices", []):
        invoice = Invoice(**raw)
        invoices_by_contract[invoice.contract_id].append(invoice)

    subscriptions_by_contract = defaultdict(list)
    for raw in data.get("subscriptions", []):
        subscription = Subscription(**raw)
        subscriptions_by_contract[subscription.contract_id].append(subscription)

    return contracts, dict(invoices_by_contract), dict(subscriptions_by_contract)


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "portfolio",
        type=Path,
        nargs="?",
        default=Path(__file__).parent.parent / "renewal_analytics/tests/fixtures/portfolio.json",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level, json_logs=settings.log_json)

    contracts, invoices_by_contract, subscriptions_by_contract = load_portfolio(args.portfolio)
    logger.info("portfolio_loaded", contracts=len(contracts), path=str(args.portfolio))

    engine = RenewalScoringEngine()
    detector = UnderbillingDetector()
    risk_service = RenewalRiskService()

    scores = engine.calculate_batch_scores(contracts, invoices_by_contract, subscriptions_by_contract)
    contracts_by_id = {c.id: c for c in contracts}

    for score in scores:
        contract = contracts_by_id[score.contract_id]
        invoices = invoices_by_contract.get(contract.id, [])
        subscriptions = subscriptions_by_contract.get(contract.id, [])

        detector.detect_underbilling(contract, invoices, subscriptions)
        risk_service.analyze_renewal_risks(contract, score, invoices)

    print("\nHealth scores")
    print("-" * 60)
    for score in sorted(scores, key=lambda s: s.score):
        customer = contracts_by_id[score.contract_id].customer_name
        print(f"{score.score:>3}  {score.risk_level.value:<8}  {customer}")
        for recommendation in score.recommendations:
            print(f"       - {recommendation}")

    alerts = detector.get_unresolved_alerts()
    print(f"\nUnderbilling alerts: {len(alerts)}")
    print("-" * 60)
    for alert in alerts:
        print(
            f"{alert.severity.value:<6}  {alert.type.value:<18}  "
            f"{alert.contract_id}  {alert.difference:,.2f}  ({alert.period})"
        )

    summary = risk_service.get_risk_summary()
    print(f"\nRenewal risks: {summary.total} (average score {summary.average_score:.1f})")
    print("-" * 60)
    for risk_type, count in summary.by_type.items():
        print(f"{risk_type.value:<18} {count}")


if __name__ == "__main__":
    main()
