"""Generate a synthetic contract portfolio (contracts, invoices, subscriptions) as JSON"""

import argparse
import json
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path

from faker import Faker

fake = Faker()

FREQUENCIES = ["monthly", "quarterly", "annually", "one_time"]
PERIOD_DAYS = {"monthly": 30, "quarterly": 90, "annually": 365, "one_time": 0}

PRODUCTS = [
    ("prod-seats", "Platform Seats"),
    ("prod-api", "API Calls"),
    ("prod-storage", "Storage (GB)"),
    ("prod-support", "Premium Support"),
]


def _iso(value: datetime) -> str:
    return value.isoformat()


def generate_contract(index: int, now: datetime) -> dict:
    start = now - timedelta(days=random.randint(30, 900))
    end = start + timedelta(days=random.choice([365, 730, 1095]))
    renewal = now + timedelta(days=random.randint(-20, 240))

    return {
        "id": f"contract-{index:04d}",
        "customer_id": f"customer-{index:04d}",
        "customer_name": fake.company(),
        "contract_number": f"CTR-{now.year}-{index:04d}",
        "start_date": _iso(start),
        "end_date": _iso(end),
        "renewal_date": _iso(renewal),
        "total_value": round(random.choice([800, 5000, 25000, 60000, 150000]) * random.uniform(0.8, 1.2), 2),
        "currency": "USD",
        "status": "active",
        "billing_frequency": random.choice(FREQUENCIES),
        "auto_renewal": random.random() < 0.5,
        "terms": fake.sentence(nb_words=8),
    }


def generate_invoices(contract: dict, now: datetime) -> list:
    start = datetime.fromisoformat(contract["start_date"])
    period = PERIOD_DAYS[contract["billing_frequency"]] or 365
    periods = max((now - start).days // period, 1)
    per_period = contract["total_value"] / max(365 // period, 1)

    invoices = []
    # Occasionally skip periods so missing-invoice alerts show up
    for i in range(periods - random.choice([0, 0, 0, 1, 2])):
        created = start + timedelta(days=i * period)
        due = created + timedelta(days=30)
        status = random.choice(["paid", "paid", "paid", "overdue", "sent", "partial", "void"])
        paid_date = None
        if status == "paid":
            paid_date = _iso(due + timedelta(days=random.randint(-5, 25)))

        invoices.append(
            {
                "id": fake.uuid4(),
                "contract_id": contract["id"],
                "invoice_number": f"INV-{contract['id'][-4:]}-{i + 1:03d}",
                "customer_id": contract["customer_id"],
                "amount": round(per_period * random.uniform(0.7, 1.0), 2),
                "currency": "USD",
                "due_date": _iso(due),
                "paid_date": paid_date,
                "status": status,
                "line_items": [],
                "created_at": _iso(created),
            }
        )

    # Most recent first
    invoices.reverse()
    return invoices


def generate_subscriptions(contract: dict) -> list:
    subscriptions = []
    for product_id, product_name in random.sample(PRODUCTS, k=random.randint(1, 3)):
        quantity = random.randint(1, 50)
        unit_price = round(random.uniform(10, 400), 2)
        limit = random.choice([None, 1000, 5000, 10000])

        subscriptions.append(
            {
                "id": fake.uuid4(),
                "contract_id": contract["id"],
                "customer_id": contract["customer_id"],
                "product_id": product_id,
                "product_name": product_name,
                "quantity": quantity,
                "unit_price": unit_price,
                "total_price": round(quantity * unit_price, 2),
                "usage_amount": round(limit * random.uniform(0.05, 1.4)) if limit else None,
                "usage_limit": limit,
                "start_date": contract["start_date"],
                "end_date": contract["end_date"],
                "status": "active",
            }
        )
    return subscriptions


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--contracts", type=int, default=25)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument(
        "--output",
        type=Path,
        default=Path(__file__).parent.parent / "renewal_analytics/tests/fixtures/portfolio.json",
    )
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)
        Faker.seed(args.seed)

    now = datetime.now(timezone.utc)
    portfolio = {"contracts": [], "invoices": [], "subscriptions": []}

    for index in range(1, args.contracts + 1):
        contract = generate_contract(index, now)
        portfolio["contracts"].append(contract)
        portfolio["invoices"].extend(generate_invoices(contract, now))
        portfolio["subscriptions"].extend(generate_subscriptions(contract))

    args.output.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output, "w") as f:
        json.dump(portfolio, f, indent=2)

    print(
        f"Generated {len(portfolio['contracts'])} contracts, "
        f"{len(portfolio['invoices'])} invoices and "
        f"{len(portfolio['subscriptions'])} subscriptions in {args.output}"
    )


if __name__ == "__main__":
    main()
