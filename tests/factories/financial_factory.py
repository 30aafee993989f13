"""
Factories for financial input models.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Sequence

import factory
from faker import Faker

from finlytics.models.financial import (
    AccountRef,
    CategoryRef,
    TransactionSample,
    TransactionType,
)

fake = Faker()

TEST_USER_ID = "test_user_123"


class CategoryRefFactory(factory.Factory):
    """Factory for category references."""

    class Meta:
        model = CategoryRef

    id = factory.Sequence(lambda n: f"cat_{n:06d}")
    name = factory.Faker("word")


class AccountRefFactory(factory.Factory):
    """Factory for account references."""

    class Meta:
        model = AccountRef

    id = factory.Sequence(lambda n: f"acc_{n:06d}")
    name = factory.Faker("company")
    balance = factory.LazyFunction(lambda: Decimal(fake.random_int(min=0, max=1000000)) / 100)
    is_active = True


class TransactionSampleFactory(factory.Factory):
    """Factory for transaction samples."""

    class Meta:
        model = TransactionSample

    id = factory.Sequence(lambda n: f"txn_{n:06d}")
    user_id = TEST_USER_ID
    date = factory.LazyFunction(
        lambda: datetime(2024, 6, 1, 12) + timedelta(days=fake.random_int(min=0, max=29))
    )
    amount = factory.LazyFunction(lambda: Decimal(fake.random_int(min=500, max=20000)) / 100)
    type = TransactionType.EXPENSE
    category_id = "cat_groceries"
    category_name = "Groceries"
    account_id = "acc_main"
    is_deleted = False


class ExpenseSampleFactory(TransactionSampleFactory):
    """Factory for expense samples."""

    type = TransactionType.EXPENSE


class IncomeSampleFactory(TransactionSampleFactory):
    """Factory for income samples."""

    type = TransactionType.INCOME
    category_id = "cat_salary"
    category_name = "Salary"
    amount = factory.LazyFunction(lambda: Decimal(fake.random_int(min=100000, max=500000)) / 100)


def daily_series(
    amounts: Sequence[float],
    start: datetime,
    factory_class=ExpenseSampleFactory,
    **kwargs
) -> List[TransactionSample]:
    """One sample per consecutive day starting at ``start``, at noon."""
    base = start.replace(hour=12, minute=0, second=0, microsecond=0)
    return [
        factory_class(date=base + timedelta(days=index), amount=Decimal(str(amount)), **kwargs)
        for index, amount in enumerate(amounts)
    ]


def history_before(
    amounts: Sequence[float],
    end: datetime,
    factory_class=ExpenseSampleFactory,
    **kwargs
) -> List[TransactionSample]:
    """Consecutive daily samples whose last day is the day before ``end``."""
    start = end - timedelta(days=len(amounts))
    return daily_series(amounts, start, factory_class=factory_class, **kwargs)
