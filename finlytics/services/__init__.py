"""
Predictive analytics services.
"""
from .anomaly_detection import AnomalyDetectionEngine
from .financial_forecasting import FinancialForecastingEngine
from .historical_data import HistoricalDataLoader
from .predictive_analytics import PredictiveAnalyticsService, get_predictive_analytics_service
from .spending_prediction import SpendingPredictionEngine
from .trend_analysis import TrendAnalysisEngine

__all__ = [
    "AnomalyDetectionEngine",
    "FinancialForecastingEngine",
    "HistoricalDataLoader",
    "PredictiveAnalyticsService",
    "SpendingPredictionEngine",
    "TrendAnalysisEngine",
    "get_predictive_analytics_service",
]
