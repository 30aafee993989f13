#!/usr/bin/env python3
"""
Seed a synthetic transaction history into the in-memory store and print the
predictive insights generated for it.
"""
import asyncio
import os
import random
import sys
from datetime import datetime, timedelta
from decimal import Decimal

# Allow running from a source checkout
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from finlytics.config import get_settings
from finlytics.infrastructure import InMemoryTransactionStore
from finlytics.logging_config import configure_logging
from finlytics.models.financial import (
    AccountRef,
    CategoryRef,
    PredictiveQuery,
    TransactionSample,
    TransactionType,
)
from finlytics.services import PredictiveAnalyticsService
from finlytics.utils.exceptions import AppException

DEMO_USER_ID = "demo-user-id-12345"

CATEGORIES = [
    ("cat-groceries", "Groceries", 45.0),
    ("cat-transport", "Transport", 12.0),
    ("cat-dining", "Dining Out", 30.0),
    ("cat-utilities", "Utilities", 80.0),
]


def build_history(store: InMemoryTransactionStore, start: datetime, days: int) -> int:
    """Generate daily expenses and twice-monthly income before ``start``."""
    rng = random.Random(42)
    count = 0

    for category_id, name, _ in CATEGORIES:
        store.add_category(DEMO_USER_ID, CategoryRef(id=category_id, name=name))
    store.add_category(DEMO_USER_ID, CategoryRef(id="cat-salary", name="Salary"))
    store.add_account(DEMO_USER_ID, AccountRef(id="acc-main", name="Main account", balance=Decimal("2500.00")))
    store.add_account(DEMO_USER_ID, AccountRef(id="acc-savings", name="Savings", balance=Decimal("8000.00")))

    for offset in range(days, 0, -1):
        day = start - timedelta(days=offset)

        for category_id, name, base in CATEGORIES:
            if rng.random() < 0.6:
                amount = base * rng.uniform(0.6, 1.4)
                if day.weekday() >= 5:
                    amount *= 1.3
                count += 1
                store.add_transaction(TransactionSample(
                    id=f"txn-{count:05d}",
                    user_id=DEMO_USER_ID,
                    date=day.replace(hour=rng.randint(8, 21)),
                    amount=Decimal(f"{amount:.2f}"),
                    type=TransactionType.EXPENSE,
                    category_id=category_id,
                    category_name=name,
                    account_id="acc-main"
                ))

        if day.day in (1, 15):
            count += 1
            store.add_transaction(TransactionSample(
                id=f"txn-{count:05d}",
                user_id=DEMO_USER_ID,
                date=day.replace(hour=9),
                amount=Decimal("2100.00"),
                type=TransactionType.INCOME,
                category_id="cat-salary",
                category_name="Salary",
                account_id="acc-main"
            ))

    return count


async def main():
    """Run every analysis for the demo user."""
    settings = get_settings()
    configure_logging(settings)

    start = datetime(2024, 7, 1)
    store = InMemoryTransactionStore()
    seeded = build_history(store, start, days=settings.prediction_lookback_days)
    print(f"🌱 Seeded {seeded} transactions for {DEMO_USER_ID}")

    # A few large purchases inside the window for anomaly detection
    for index, amount in enumerate(["950.00", "1200.00", "870.00"]):
        store.add_transaction(TransactionSample(
            id=f"txn-spike-{index}",
            user_id=DEMO_USER_ID,
            date=start + timedelta(days=2, hours=index),
            amount=Decimal(amount),
            type=TransactionType.EXPENSE,
            category_id="cat-dining",
            category_name="Dining Out",
            account_id="acc-main"
        ))

    service = PredictiveAnalyticsService(store, settings)
    query = PredictiveQuery(user_id=DEMO_USER_ID, start_date=start, end_date=start + timedelta(days=30))

    try:
        prediction = await service.predict_spending(query)
        print(f"📈 Predicted spend: {prediction.total_predicted_amount:.2f} "
              f"({prediction.methodology}, {prediction.confidence} confidence)")

        cash_flow = await service.generate_cash_flow_prediction(query)
        print(f"💶 Projected ending balance: {cash_flow.predictions.projected_ending_balance:.2f}")

        insights = await service.get_predictive_insights(query)
        print(f"💡 {insights.summary.total_insights} insights, "
              f"{insights.summary.critical_insights} critical")
        for insight in insights.insights:
            print(f"   [{insight.priority}] {insight.title}")
        for risk in insights.risks:
            print(f"   ⚠️  {risk.type}: {risk.description}")

        model = await service.train_model(DEMO_USER_ID, "spending_prediction", {"algorithm": "hybrid"})
        print(f"🤖 Registered model {model.name} ({model.status})")

    except AppException as e:
        print(f"❌ {e.code}: {e.message}")
        for detail in e.details:
            print(f"   {detail}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
