"""
Predictive analytics report models.

Every report is produced fresh per call and never persisted: spending
predictions, anomaly detections, trend analyses, financial and cash-flow
forecasts, and the aggregated insight feed.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field

from .base import ReportModel
from ..utils.clock import utc_now
from ..utils.constants import Severity


class ConfidenceLevel(str, Enum):
    """Coarse confidence buckets."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PredictionMethod(str, Enum):
    """Spending prediction methodologies."""
    LINEAR_REGRESSION = "linear_regression"
    TIME_SERIES = "time_series"
    SEASONAL_DECOMPOSITION = "seasonal_decomposition"
    HYBRID = "hybrid"


class AnomalyType(str, Enum):
    """Kinds of detected anomalies."""
    SPENDING_SPIKE = "spending_spike"
    UNUSUAL_CATEGORY = "unusual_category"
    TIMING_ANOMALY = "timing_anomaly"
    AMOUNT_ANOMALY = "amount_anomaly"


class TrendDirection(str, Enum):
    """Direction of a fitted trend."""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    VOLATILE = "volatile"


class TrendStrength(str, Enum):
    """Strength of a fitted trend."""
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


class InsightPriority(str, Enum):
    """Priority of an aggregated insight."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Period(ReportModel):
    """Date range a report covers."""

    start_date: datetime
    end_date: datetime


class Recommendation(ReportModel):
    """Suggested follow-up action."""

    action: str
    priority: str
    expected_impact: str
    effort: Optional[str] = None


# Spending prediction

class PredictionFactor(ReportModel):
    """Explanatory factor attached to a daily prediction."""

    factor: str
    impact: float
    weight: float


class DailyPrediction(ReportModel):
    """Predicted spend for a single day."""

    date: str
    predicted_amount: float = Field(..., ge=0)
    confidence: float = Field(..., ge=0, le=1)
    factors: List[PredictionFactor] = Field(default_factory=list)


class PredictionAccuracy(ReportModel):
    """Accuracy proxies reported with a prediction."""

    historical_accuracy: float
    last_prediction_accuracy: float
    trend_accuracy: float


class RiskFactor(ReportModel):
    """Advisory risk attached to a prediction or forecast."""

    factor: str
    impact: Severity
    probability: float = Field(..., ge=0, le=1)
    description: str
    mitigation: Optional[str] = None


class SpendingPrediction(ReportModel):
    """Projected daily spend over the requested period."""

    period: Period
    predictions: List[DailyPrediction] = Field(default_factory=list)
    total_predicted_amount: float
    average_daily_prediction: float
    confidence: ConfidenceLevel
    methodology: PredictionMethod
    accuracy: PredictionAccuracy
    risk_factors: List[RiskFactor] = Field(default_factory=list)


class PredictiveModel(ReportModel):
    """Descriptor recorded for a model training request."""

    model_config = ConfigDict(protected_namespaces=(), use_enum_values=True, validate_default=True)

    id: str
    name: str
    type: str
    algorithm: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    training_data: Dict[str, Any] = Field(default_factory=dict)
    performance: Dict[str, Any] = Field(default_factory=dict)
    status: str = "ready"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_trained: datetime = Field(default_factory=utc_now)


# Anomaly detection

class AnomalyData(ReportModel):
    """Expected versus observed values behind an anomaly."""

    expected_value: float
    actual_value: float
    deviation: float
    deviation_percentage: float
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    date: Optional[datetime] = None


class Anomaly(ReportModel):
    """A single statistical deviation from historical norms."""

    id: str
    type: AnomalyType
    severity: Severity
    confidence: float = Field(..., ge=0, le=1)
    detected_at: datetime = Field(default_factory=utc_now)
    transaction_id: Optional[str] = None
    description: str
    data: AnomalyData
    explanation: str
    recommendations: List[Recommendation] = Field(default_factory=list)


class AnomalySummary(ReportModel):
    """Aggregate counts over the emitted anomalies."""

    total_anomalies: int = 0
    critical_anomalies: int = 0
    high_severity_anomalies: int = 0
    medium_severity_anomalies: int = 0
    low_severity_anomalies: int = 0
    average_confidence: float = 0.0
    detection_accuracy: float = 0.0


class DetectionModelInfo(ReportModel):
    """Description of the detectors that produced a report."""

    algorithm: str = "hybrid"
    parameters: Dict[str, Any] = Field(default_factory=dict)
    training_data_size: int = 0
    last_trained: datetime = Field(default_factory=utc_now)


class AnomalyDetection(ReportModel):
    """Anomaly report for a query window."""

    period: Period
    anomalies: List[Anomaly] = Field(default_factory=list)
    summary: AnomalySummary = Field(default_factory=AnomalySummary)
    model: DetectionModelInfo = Field(default_factory=DetectionModelInfo)


# Trend analysis

class TrendSummary(ReportModel):
    """Direction, strength and confidence of a fit."""

    direction: TrendDirection
    strength: TrendStrength
    confidence: float = Field(..., ge=0, le=1)
    description: Optional[str] = None


class TrendDataPoint(ReportModel):
    """Observed value and change relative to the previous point."""

    period: str
    amount: float
    change: float
    percentage_change: float


class SeasonalPattern(ReportModel):
    """Calendar-month seasonality summary."""

    has_seasonality: bool = False
    peak_months: List[str] = Field(default_factory=list)
    low_months: List[str] = Field(default_factory=list)
    seasonal_strength: float = 0.0


class CategoryForecast(ReportModel):
    """One-step-ahead projection for a category."""

    next_period_prediction: float
    confidence: float = Field(..., ge=0, le=1)
    trend: str


class CategoryTrend(ReportModel):
    """Trend record for a single category."""

    category_id: str
    category_name: str
    trend: TrendSummary
    data: List[TrendDataPoint] = Field(default_factory=list)
    seasonal_pattern: SeasonalPattern = Field(default_factory=SeasonalPattern)
    forecast: CategoryForecast


class WeeklyPatternEntry(ReportModel):
    """Average spend for a weekday."""

    day: str
    average_amount: float
    frequency: int
    trend: TrendDirection = TrendDirection.STABLE


class MonthlyPatternEntry(ReportModel):
    """Average daily spend for a calendar month."""

    month: str
    average_amount: float
    trend: TrendDirection = TrendDirection.STABLE


class SpendingPatterns(ReportModel):
    """Weekly, monthly and seasonal summaries."""

    weekly_pattern: List[WeeklyPatternEntry] = Field(default_factory=list)
    monthly_pattern: List[MonthlyPatternEntry] = Field(default_factory=list)
    seasonal_pattern: SeasonalPattern = Field(default_factory=SeasonalPattern)


class TrendInsight(ReportModel):
    """Rule-based observation derived from trends."""

    type: str
    priority: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    recommendations: List[Recommendation] = Field(default_factory=list)


class Methodology(ReportModel):
    """Algorithm label, parameters and accuracy proxy."""

    algorithm: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    training_period: Optional[Period] = None
    accuracy: float


class TrendAnalysis(ReportModel):
    """Aggregate and per-category trend report."""

    analysis_period: Period
    overall_trend: TrendSummary
    category_trends: List[CategoryTrend] = Field(default_factory=list)
    spending_patterns: SpendingPatterns
    insights: List[TrendInsight] = Field(default_factory=list)
    methodology: Methodology


# Financial forecasting

class KeyAssumption(ReportModel):
    """Assumption behind a forecast scenario."""

    assumption: str
    impact: float
    confidence: float


class BaseScenario(ReportModel):
    """Linear projection of historical monthly averages."""

    projected_income: float
    projected_expenses: float
    projected_net_worth: float
    projected_savings: float
    confidence: ConfidenceLevel
    confidence_score: float = Field(..., ge=0, le=1)


class ForecastScenario(ReportModel):
    """Canned variation of the base scenario."""

    name: str
    probability: float = Field(..., ge=0, le=1)
    projected_income: float
    projected_expenses: float
    projected_net_worth: float
    projected_savings: float
    key_assumptions: List[KeyAssumption] = Field(default_factory=list)


class CategoryProjection(ReportModel):
    """Projected spend for one expense category."""

    category_id: str
    category_name: str
    projected_amount: float
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    trend: str
    factors: List[PredictionFactor] = Field(default_factory=list)


class MonthlyProjection(ReportModel):
    """Projected income and expenses for one month."""

    month: str
    projected_income: float
    projected_expenses: float
    projected_net_worth: float
    projected_savings: float
    confidence: float


class FinancialForecast(ReportModel):
    """Income, expense and net-worth projection with scenarios."""

    forecast_period: Period
    base_scenario: BaseScenario
    scenarios: List[ForecastScenario] = Field(default_factory=list)
    category_forecasts: List[CategoryProjection] = Field(default_factory=list)
    monthly_projections: List[MonthlyProjection] = Field(default_factory=list)
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    methodology: Methodology


class CashFlowTotals(ReportModel):
    """Projected inflows and outflows over the horizon."""

    projected_inflows: float
    projected_outflows: float
    projected_net_cash_flow: float
    projected_ending_balance: float
    confidence: ConfidenceLevel


class CashFlowMonth(ReportModel):
    """Projected cash flow for one month."""

    month: str
    projected_inflows: float
    projected_outflows: float
    projected_net_cash_flow: float
    projected_balance: float
    confidence: float


class CashFlowCategoryProjection(ReportModel):
    """Projected inflows and outflows for one category."""

    category_id: str
    category_name: str
    projected_inflows: float
    projected_outflows: float
    projected_net_amount: float
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM


class CashFlowScenario(ReportModel):
    """Canned variation of the projected ending balance."""

    name: str
    probability: float = Field(..., ge=0, le=1)
    projected_ending_balance: float
    key_assumptions: List[str] = Field(default_factory=list)


class CashFlowPrediction(ReportModel):
    """Daily-average cash-flow projection."""

    prediction_period: Period
    current_balance: float
    predictions: CashFlowTotals
    monthly_projections: List[CashFlowMonth] = Field(default_factory=list)
    category_projections: List[CashFlowCategoryProjection] = Field(default_factory=list)
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    scenarios: List[CashFlowScenario] = Field(default_factory=list)
    methodology: Methodology


# Aggregated insights

class Insight(ReportModel):
    """Prioritized, expiring observation for the user."""

    id: str
    type: str
    priority: InsightPriority
    title: str
    description: str
    data: Dict[str, Any] = Field(default_factory=dict)
    recommendations: List[Recommendation] = Field(default_factory=list)
    created_at: datetime
    expires_at: Optional[datetime] = None


class InsightSummary(ReportModel):
    """Insight counts by priority."""

    total_insights: int = 0
    high_priority_insights: int = 0
    critical_insights: int = 0


class TrendItem(ReportModel):
    """Flattened category trend."""

    category_id: str
    category_name: str
    trend: TrendDirection
    strength: TrendStrength
    confidence: float
    description: str


class RiskItem(ReportModel):
    """Risk surfaced from anomalies or forecasts."""

    type: str
    severity: Severity
    description: str
    probability: float
    impact: float
    mitigation: Optional[str] = None


class Opportunity(ReportModel):
    """Savings or budget opportunity."""

    type: str
    potential: str
    description: str
    expected_benefit: float
    effort: str
    action: str


class PredictiveInsights(ReportModel):
    """Merged feed built from all four engines."""

    summary: InsightSummary = Field(default_factory=InsightSummary)
    insights: List[Insight] = Field(default_factory=list)
    trends: List[TrendItem] = Field(default_factory=list)
    risks: List[RiskItem] = Field(default_factory=list)
    opportunities: List[Opportunity] = Field(default_factory=list)
