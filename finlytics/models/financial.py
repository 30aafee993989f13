"""
Financial input models: transaction samples, query contract and derived buckets.
"""
import math
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .base import FrozenModel


class TransactionType(str, Enum):
    """Types of transactions."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class ModelType(str, Enum):
    """Kinds of predictive models a query can target."""
    SPENDING_PREDICTION = "spending_prediction"
    ANOMALY_DETECTION = "anomaly_detection"
    FORECASTING = "forecasting"
    TREND_ANALYSIS = "trend_analysis"
    BUDGET_PREDICTION = "budget_prediction"


class TransactionSample(FrozenModel):
    """Read-only projection of a stored transaction."""

    id: str
    user_id: str
    date: datetime
    amount: Decimal = Field(..., ge=0)
    type: TransactionType
    category_id: str
    category_name: str = Field(default="Unknown")
    account_id: Optional[str] = None
    is_deleted: bool = False

    @property
    def value(self) -> float:
        """Amount as a float for numeric work."""
        return float(self.amount)

    @property
    def day(self) -> str:
        """Calendar day in YYYY-MM-DD form."""
        return self.date.date().isoformat()


class CategoryRef(FrozenModel):
    """Category id/name pair."""

    id: str
    name: str


class AccountRef(FrozenModel):
    """Account with its current balance."""

    id: str
    name: str
    balance: Decimal = Field(default=Decimal("0.00"))
    is_active: bool = True


class TransactionFilter(FrozenModel):
    """Filter accepted by the transaction data source.

    The date range is half-open ``[date_from, date_to)`` unless
    ``end_inclusive`` is set. Deleted transactions are never returned.
    """

    user_id: str
    date_from: datetime
    date_to: datetime
    type: Optional[TransactionType] = None
    end_inclusive: bool = False
    category_ids: Optional[List[str]] = None
    account_ids: Optional[List[str]] = None

    def matches(self, sample: TransactionSample) -> bool:
        """Check whether a sample satisfies this filter."""
        if sample.is_deleted or sample.user_id != self.user_id:
            return False
        if self.type is not None and sample.type != self.type:
            return False
        if sample.date < self.date_from:
            return False
        if self.end_inclusive:
            if sample.date > self.date_to:
                return False
        elif sample.date >= self.date_to:
            return False
        if self.category_ids and sample.category_id not in self.category_ids:
            return False
        if self.account_ids and sample.account_id not in self.account_ids:
            return False
        return True


class PredictiveQuery(BaseModel):
    """Input contract shared by every analytics entry point."""

    model_config = ConfigDict(protected_namespaces=())

    user_id: str = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime
    categories: Optional[List[str]] = None
    transaction_types: Optional[List[TransactionType]] = None
    accounts: Optional[List[str]] = None
    include_recurring: bool = True
    confidence_threshold: Optional[float] = Field(default=None, ge=0, le=1)
    model_type: Optional[ModelType] = None
    algorithm: Optional[str] = None

    @field_validator("categories", "accounts")
    @classmethod
    def validate_ids(cls, v):
        """Drop blank ids; an empty list means no restriction."""
        if v is None:
            return v
        cleaned = [item.strip() for item in v if item and item.strip()]
        return cleaned or None

    @model_validator(mode="after")
    def validate_period(self):
        """Validate that the period is not empty."""
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

    @property
    def period_days(self) -> int:
        """Number of whole or partial days in the period."""
        seconds = (self.end_date - self.start_date).total_seconds()
        return max(1, math.ceil(seconds / 86400))


class DailyBucket(FrozenModel):
    """Total spend for one calendar day with at least one transaction."""

    date: str
    amount: float
    count: int


class CashFlowBucket(FrozenModel):
    """Inflows and outflows for one calendar day."""

    date: str
    inflows: float = 0.0
    outflows: float = 0.0
    net_flow: float = 0.0


class CategoryBucket(BaseModel):
    """Transactions of one category in chronological order."""

    category_id: str
    category_name: str = "Unknown"
    amount: float = 0.0
    count: int = 0
    transactions: List[TransactionSample] = Field(default_factory=list)
