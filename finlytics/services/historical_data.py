"""
Historical data loading and grouping.
Fetches transaction samples from the injected data source and derives the
daily, cash-flow and category views the engines work on.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import pandas as pd
import structlog

from ..infrastructure.data_source import TransactionDataSource
from ..models.financial import (
    CashFlowBucket,
    CategoryBucket,
    DailyBucket,
    PredictiveQuery,
    TransactionFilter,
    TransactionSample,
    TransactionType,
)
from ..utils.exceptions import InsufficientDataError

logger = structlog.get_logger()


class HistoricalDataLoader:
    """Loads transaction history for a query."""

    def __init__(self, data_source: TransactionDataSource):
        self.data_source = data_source

    @staticmethod
    def history_window(reference: datetime, lookback_days: int) -> Tuple[datetime, datetime]:
        """Half-open window of ``lookback_days`` ending at ``reference``."""
        return reference - timedelta(days=lookback_days), reference

    async def load_transactions(
        self,
        user_id: str,
        date_from: datetime,
        date_to: datetime,
        transaction_type: Optional[TransactionType] = None,
        end_inclusive: bool = False,
        query: Optional[PredictiveQuery] = None
    ) -> List[TransactionSample]:
        """Fetch samples in the range sorted by date.

        When a query is given its category and account restrictions apply.
        """
        tx_filter = TransactionFilter(
            user_id=user_id,
            date_from=date_from,
            date_to=date_to,
            type=transaction_type,
            end_inclusive=end_inclusive,
            category_ids=query.categories if query else None,
            account_ids=query.accounts if query else None
        )

        samples = await self.data_source.find_transactions(tx_filter)
        samples = sorted((s for s in samples if not s.is_deleted), key=lambda s: s.date)

        logger.debug(
            "Historical transactions loaded",
            user_id=user_id,
            transaction_type=transaction_type,
            date_from=date_from.isoformat(),
            date_to=date_to.isoformat(),
            count=len(samples)
        )
        return samples

    async def load_history(
        self,
        query: PredictiveQuery,
        lookback_days: int,
        transaction_type: Optional[TransactionType] = None
    ) -> List[TransactionSample]:
        """Fetch the samples in the lookback window preceding the query period."""
        date_from, date_to = self.history_window(query.start_date, lookback_days)
        return await self.load_transactions(
            user_id=query.user_id,
            date_from=date_from,
            date_to=date_to,
            transaction_type=transaction_type,
            query=query
        )

    @staticmethod
    def group_by_day(samples: List[TransactionSample]) -> List[DailyBucket]:
        """Daily totals for days with at least one transaction, ascending.

        Days without transactions are not filled in.
        """
        if not samples:
            return []

        frame = pd.DataFrame({
            "date": [s.day for s in samples],
            "amount": [s.value for s in samples],
        })
        grouped = frame.groupby("date", sort=True)["amount"].agg(["sum", "count"])

        return [
            DailyBucket(date=date, amount=float(row["sum"]), count=int(row["count"]))
            for date, row in grouped.iterrows()
        ]

    @staticmethod
    def group_cash_flow_by_day(samples: List[TransactionSample]) -> List[CashFlowBucket]:
        """Daily inflows and outflows. Income is an inflow, everything else an outflow."""
        if not samples:
            return []

        frame = pd.DataFrame({
            "date": [s.day for s in samples],
            "inflows": [s.value if s.type == TransactionType.INCOME else 0.0 for s in samples],
            "outflows": [0.0 if s.type == TransactionType.INCOME else s.value for s in samples],
        })
        grouped = frame.groupby("date", sort=True)[["inflows", "outflows"]].sum()

        return [
            CashFlowBucket(
                date=date,
                inflows=float(row["inflows"]),
                outflows=float(row["outflows"]),
                net_flow=float(row["inflows"] - row["outflows"])
            )
            for date, row in grouped.iterrows()
        ]

    @staticmethod
    def group_by_category(samples: List[TransactionSample]) -> Dict[str, CategoryBucket]:
        """Group samples by category in order of first appearance."""
        groups: Dict[str, CategoryBucket] = {}
        for sample in samples:
            bucket = groups.get(sample.category_id)
            if bucket is None:
                bucket = CategoryBucket(
                    category_id=sample.category_id,
                    category_name=sample.category_name or "Unknown"
                )
                groups[sample.category_id] = bucket
            bucket.amount += sample.value
            bucket.count += 1
            bucket.transactions.append(sample)
        return groups

    @staticmethod
    def group_by_month(samples: List[TransactionSample]) -> Dict[str, float]:
        """Totals keyed by ``YYYY-MM``, ascending."""
        if not samples:
            return {}
        frame = pd.DataFrame({
            "month": [s.date.strftime("%Y-%m") for s in samples],
            "amount": [s.value for s in samples],
        })
        totals = frame.groupby("month", sort=True)["amount"].sum()
        return {month: float(amount) for month, amount in totals.items()}

    @staticmethod
    def require_minimum(size: int, minimum: int, message: str) -> None:
        """Raise when fewer than ``minimum`` data points are available."""
        if size < minimum:
            raise InsufficientDataError(message=message, required=minimum, available=size)
