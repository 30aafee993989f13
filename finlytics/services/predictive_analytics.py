"""
Predictive analytics service.
Public entry points for every engine, plus the aggregated insight feed that
combines spending prediction, anomaly detection, financial forecasting and
trend analysis into prioritized, expiring insights.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog

from .anomaly_detection import AnomalyDetectionEngine
from .financial_forecasting import FinancialForecastingEngine
from .historical_data import HistoricalDataLoader
from .spending_prediction import SpendingPredictionEngine
from .trend_analysis import TrendAnalysisEngine
from ..config import Settings, get_settings
from ..infrastructure.data_source import TransactionDataSource
from ..infrastructure.firestore import get_firestore_source
from ..models.financial import ModelType, PredictiveQuery
from ..models.predictive import (
    AnomalyDetection,
    CashFlowPrediction,
    ConfidenceLevel,
    FinancialForecast,
    Insight,
    InsightPriority,
    InsightSummary,
    Opportunity,
    PredictiveInsights,
    PredictiveModel,
    Recommendation,
    RiskItem,
    SpendingPrediction,
    TrendAnalysis,
    TrendDirection,
    TrendItem,
    TrendStrength,
)
from ..utils.clock import utc_now
from ..utils.constants import Severity
from ..utils.exceptions import ValidationError

logger = structlog.get_logger()

SAVING_OPPORTUNITY_RATE = 0.1
SAVING_OPPORTUNITY_MINIMUM = 100

RISK_IMPACT_SCORES = {
    Severity.HIGH: 0.8,
    Severity.MEDIUM: 0.5,
}


class PredictiveAnalyticsService:
    """Entry point for all predictive analytics."""

    def __init__(self, data_source: TransactionDataSource, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.loader = HistoricalDataLoader(data_source)
        self.spending_prediction = SpendingPredictionEngine(self.loader, self.settings)
        self.anomaly_detection = AnomalyDetectionEngine(self.loader, self.settings)
        self.financial_forecasting = FinancialForecastingEngine(self.loader, self.settings)
        self.trend_analysis = TrendAnalysisEngine(self.loader, self.settings)

        logger.info("Predictive analytics service initialized")

    async def predict_spending(self, query: PredictiveQuery) -> SpendingPrediction:
        return await self.spending_prediction.predict_spending(query)

    async def detect_anomalies(self, query: PredictiveQuery) -> AnomalyDetection:
        return await self.anomaly_detection.detect_anomalies(query)

    async def generate_financial_forecast(self, query: PredictiveQuery) -> FinancialForecast:
        return await self.financial_forecasting.generate_financial_forecast(query)

    async def generate_cash_flow_prediction(self, query: PredictiveQuery) -> CashFlowPrediction:
        return await self.financial_forecasting.generate_cash_flow_prediction(query)

    async def analyze_trends(self, query: PredictiveQuery) -> TrendAnalysis:
        return await self.trend_analysis.analyze_trends(query)

    async def train_model(
        self,
        user_id: str,
        model_type: str,
        parameters: Optional[Dict[str, Any]] = None
    ) -> PredictiveModel:
        """Register a model. Only spending prediction models are supported."""
        try:
            if model_type != ModelType.SPENDING_PREDICTION.value:
                raise ValidationError(
                    message=f"Unsupported model type: {model_type}",
                    details=[f"Supported model types: {ModelType.SPENDING_PREDICTION.value}"]
                )
            return await self.spending_prediction.train_model(user_id, model_type, parameters or {})

        except Exception as e:
            logger.error("Model training request failed", user_id=user_id, model_type=model_type, error=str(e))
            raise

    async def get_predictive_insights(self, query: PredictiveQuery) -> PredictiveInsights:
        """Run the four engines concurrently and merge their results.

        The first engine failure aborts the whole call.
        """
        try:
            logger.info("Generating predictive insights", user_id=query.user_id)

            tasks = [
                asyncio.ensure_future(self.spending_prediction.predict_spending(query)),
                asyncio.ensure_future(self.anomaly_detection.detect_anomalies(query)),
                asyncio.ensure_future(self.financial_forecasting.generate_financial_forecast(query)),
                asyncio.ensure_future(self.trend_analysis.analyze_trends(query)),
            ]
            try:
                prediction, detection, forecast, trends = await asyncio.gather(*tasks)
            except Exception:
                # Siblings still running are cancelled and drained
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

            now = utc_now()
            insights = self.generate_insights(prediction, detection, forecast, trends, query, now)

            result = PredictiveInsights(
                summary=InsightSummary(
                    total_insights=len(insights),
                    high_priority_insights=sum(
                        1 for i in insights
                        if i.priority in (InsightPriority.HIGH, InsightPriority.CRITICAL)
                    ),
                    critical_insights=sum(1 for i in insights if i.priority == InsightPriority.CRITICAL)
                ),
                insights=insights,
                trends=self.extract_trends(trends),
                risks=self.extract_risks(detection, forecast),
                opportunities=self.extract_opportunities(prediction, forecast)
            )

            logger.info(
                "Predictive insights generated",
                user_id=query.user_id,
                total_insights=result.summary.total_insights,
                critical_insights=result.summary.critical_insights
            )
            return result

        except Exception as e:
            logger.error("Predictive insights failed", user_id=query.user_id, error=str(e))
            raise

    def generate_insights(
        self,
        prediction: SpendingPrediction,
        detection: AnomalyDetection,
        forecast: FinancialForecast,
        trends: TrendAnalysis,
        query: PredictiveQuery,
        now: datetime
    ) -> List[Insight]:
        insights: List[Insight] = []
        user_id = query.user_id

        if prediction.confidence == ConfidenceLevel.HIGH and prediction.total_predicted_amount > 0:
            monthly_projection = prediction.average_daily_prediction * 30
            insights.append(Insight(
                id=f"spending_prediction_{user_id}",
                type="prediction",
                priority=InsightPriority.HIGH,
                title="Spending Prediction Available",
                description=(
                    f"Based on historical data, your projected spending is ${monthly_projection:.2f} "
                    f"per month with {prediction.confidence} confidence."
                ),
                data={
                    "total_predicted_amount": prediction.total_predicted_amount,
                    "average_daily_prediction": prediction.average_daily_prediction,
                    "confidence": prediction.confidence,
                    "methodology": prediction.methodology,
                },
                recommendations=[Recommendation(
                    action="Review predicted spending against your budget",
                    priority="high",
                    expected_impact="Better budget planning and control",
                    effort="low"
                )],
                created_at=now,
                expires_at=now + timedelta(days=7)
            ))

        critical = [a for a in detection.anomalies if a.severity == Severity.CRITICAL]
        high = [a for a in detection.anomalies if a.severity == Severity.HIGH]
        if critical:
            insights.append(Insight(
                id=f"critical_anomalies_{user_id}",
                type="anomaly",
                priority=InsightPriority.CRITICAL,
                title="Critical Spending Anomalies Detected",
                description=(
                    f"{len(critical)} critical spending anomalies detected that require immediate attention."
                ),
                data={
                    "anomalies": [a.model_dump() for a in critical],
                    "total_anomalies": detection.summary.total_anomalies,
                },
                recommendations=[r for a in critical for r in a.recommendations],
                created_at=now,
                expires_at=now + timedelta(days=1)
            ))
        elif high:
            insights.append(Insight(
                id=f"high_anomalies_{user_id}",
                type="anomaly",
                priority=InsightPriority.HIGH,
                title="High Priority Spending Anomalies",
                description=f"{len(high)} high priority spending anomalies detected.",
                data={
                    "anomalies": [a.model_dump() for a in high],
                    "total_anomalies": detection.summary.total_anomalies,
                },
                recommendations=[r for a in high for r in a.recommendations],
                created_at=now,
                expires_at=now + timedelta(days=3)
            ))

        base = forecast.base_scenario
        if base.confidence == ConfidenceLevel.HIGH:
            scenarios = [s.model_dump() for s in forecast.scenarios]
            if base.projected_net_worth < 0:
                insights.append(Insight(
                    id=f"negative_net_worth_{user_id}",
                    type="risk",
                    priority=InsightPriority.CRITICAL,
                    title="Projected Negative Net Worth",
                    description=(
                        "Based on current trends, your projected net worth is negative: "
                        f"${abs(base.projected_net_worth):.2f}."
                    ),
                    data={
                        "projected_net_worth": base.projected_net_worth,
                        "projected_savings": base.projected_savings,
                        "scenarios": scenarios,
                    },
                    recommendations=[
                        Recommendation(
                            action="Immediately review and reduce expenses",
                            priority="critical",
                            expected_impact="Prevent negative net worth",
                            effort="high"
                        ),
                        Recommendation(
                            action="Increase income sources",
                            priority="high",
                            expected_impact="Improve financial position",
                            effort="high"
                        ),
                    ],
                    created_at=now,
                    expires_at=now + timedelta(days=1)
                ))
            elif base.projected_savings < 0:
                insights.append(Insight(
                    id=f"negative_savings_{user_id}",
                    type="risk",
                    priority=InsightPriority.HIGH,
                    title="Projected Negative Savings",
                    description="Based on current trends, you may not be able to save money in the forecast period.",
                    data={
                        "projected_net_worth": base.projected_net_worth,
                        "projected_savings": base.projected_savings,
                        "scenarios": scenarios,
                    },
                    recommendations=[Recommendation(
                        action="Review budget allocations",
                        priority="high",
                        expected_impact="Enable savings",
                        effort="medium"
                    )],
                    created_at=now,
                    expires_at=now + timedelta(days=7)
                ))

        overall = trends.overall_trend
        if overall.direction == TrendDirection.INCREASING and overall.strength == TrendStrength.STRONG:
            insights.append(Insight(
                id=f"increasing_trend_{user_id}",
                type="trend",
                priority=InsightPriority.HIGH,
                title="Strong Increasing Spending Trend",
                description=(
                    "Your spending shows a strong increasing trend. "
                    "Consider reviewing your budget and spending habits."
                ),
                data={
                    "direction": overall.direction,
                    "strength": overall.strength,
                    "confidence": overall.confidence,
                },
                recommendations=[
                    Recommendation(
                        action="Implement spending controls",
                        priority="high",
                        expected_impact="Control spending growth",
                        effort="medium"
                    ),
                    Recommendation(
                        action="Review and adjust budget categories",
                        priority="medium",
                        expected_impact="Better budget alignment",
                        effort="low"
                    ),
                ],
                created_at=now,
                expires_at=now + timedelta(days=14)
            ))

        high_impact = [r for r in forecast.risk_factors if r.impact == Severity.HIGH]
        if high_impact:
            insights.append(Insight(
                id=f"high_impact_risks_{user_id}",
                type="risk",
                priority=InsightPriority.HIGH,
                title="High Impact Financial Risks Identified",
                description=f"{len(high_impact)} high impact financial risks have been identified in your forecast.",
                data={
                    "risks": [r.model_dump() for r in high_impact],
                    "total_risks": len(forecast.risk_factors),
                },
                recommendations=[
                    Recommendation(
                        action=risk.mitigation or f"Address {risk.factor}",
                        priority="high",
                        expected_impact="Risk mitigation",
                        effort="medium"
                    )
                    for risk in high_impact
                ],
                created_at=now,
                expires_at=now + timedelta(days=7)
            ))

        return insights

    @staticmethod
    def extract_trends(trends: TrendAnalysis) -> List[TrendItem]:
        return [
            TrendItem(
                category_id=ct.category_id,
                category_name=ct.category_name,
                trend=ct.trend.direction,
                strength=ct.trend.strength,
                confidence=ct.trend.confidence,
                description=(
                    f"Category {ct.category_name} shows {ct.trend.direction} trend "
                    f"with {ct.trend.strength} strength"
                )
            )
            for ct in trends.category_trends
        ]

    @staticmethod
    def extract_risks(detection: AnomalyDetection, forecast: FinancialForecast) -> List[RiskItem]:
        risks = []

        if detection.summary.critical_anomalies > 0:
            risks.append(RiskItem(
                type="spending_risk",
                severity=Severity.CRITICAL,
                description=f"{detection.summary.critical_anomalies} critical spending anomalies detected",
                probability=1.0,
                impact=0.9
            ))

        for risk in forecast.risk_factors:
            severity = Severity(risk.impact) if risk.impact in (Severity.HIGH, Severity.MEDIUM) else Severity.LOW
            risks.append(RiskItem(
                type="forecast_risk",
                severity=severity,
                description=risk.description,
                probability=risk.probability,
                impact=RISK_IMPACT_SCORES.get(severity, 0.3),
                mitigation=risk.mitigation
            ))

        return risks

    @staticmethod
    def extract_opportunities(prediction: SpendingPrediction, forecast: FinancialForecast) -> List[Opportunity]:
        opportunities = []

        if prediction.confidence == ConfidenceLevel.HIGH:
            potential_savings = prediction.total_predicted_amount * SAVING_OPPORTUNITY_RATE
            if potential_savings > SAVING_OPPORTUNITY_MINIMUM:
                opportunities.append(Opportunity(
                    type="saving_opportunity",
                    potential="medium",
                    description=f"Potential savings of ${potential_savings:.2f} through spending optimization",
                    expected_benefit=potential_savings,
                    effort="medium",
                    action="Implement spending controls and budget optimization"
                ))

        if forecast.base_scenario.projected_savings > 0:
            opportunities.append(Opportunity(
                type="budget_optimization",
                potential="high",
                description="Current budget allows for savings - consider investment opportunities",
                expected_benefit=forecast.base_scenario.projected_savings,
                effort="low",
                action="Explore investment options for surplus funds"
            ))

        return opportunities


# Global service instance
_predictive_analytics_service: Optional[PredictiveAnalyticsService] = None


def get_predictive_analytics_service(
    data_source: Optional[TransactionDataSource] = None
) -> PredictiveAnalyticsService:
    """Get the global predictive analytics service, backed by Firestore by default."""
    global _predictive_analytics_service
    if _predictive_analytics_service is None:
        _predictive_analytics_service = PredictiveAnalyticsService(data_source or get_firestore_source())
    return _predictive_analytics_service
