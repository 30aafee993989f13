"""
Pydantic models for analytics inputs and reports.
"""
from .financial import (
    AccountRef,
    CategoryRef,
    ModelType,
    PredictiveQuery,
    TransactionFilter,
    TransactionSample,
    TransactionType,
)
from .predictive import (
    AnomalyDetection,
    CashFlowPrediction,
    FinancialForecast,
    PredictiveInsights,
    PredictiveModel,
    SpendingPrediction,
    TrendAnalysis,
)

__all__ = [
    "AccountRef",
    "CategoryRef",
    "ModelType",
    "PredictiveQuery",
    "TransactionFilter",
    "TransactionSample",
    "TransactionType",
    "AnomalyDetection",
    "CashFlowPrediction",
    "FinancialForecast",
    "PredictiveInsights",
    "PredictiveModel",
    "SpendingPrediction",
    "TrendAnalysis",
]
