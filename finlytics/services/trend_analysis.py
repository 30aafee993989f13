"""
Trend analysis engine.
Fits linear trends to six months of expense history, overall and per
category, and summarizes weekly, monthly and seasonal spending patterns.
"""
import math
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

import structlog

from . import statistics as stats
from .historical_data import HistoricalDataLoader
from ..config import Settings, get_settings
from ..models.financial import DailyBucket, PredictiveQuery, TransactionType
from ..models.predictive import (
    CategoryForecast,
    CategoryTrend,
    Methodology,
    MonthlyPatternEntry,
    Period,
    Recommendation,
    SeasonalPattern,
    SpendingPatterns,
    TrendAnalysis,
    TrendDataPoint,
    TrendDirection,
    TrendInsight,
    TrendStrength,
    TrendSummary,
    WeeklyPatternEntry,
)
from ..utils.constants import MONTH_NAMES, WEEKDAY_NAMES

logger = structlog.get_logger()

MIN_DAILY_POINTS = 14
MIN_CATEGORY_POINTS = 3
MIN_SEASONAL_POINTS = 28
STABLE_SLOPE = 0.01
SEASONAL_STRENGTH_THRESHOLD = 0.2
METHOD_SEASONALITY_THRESHOLD = 0.3
METHOD_TREND_THRESHOLD = 0.1
CONFIDENCE_THRESHOLD = 0.7


def classify_trend(slope: float, strength: float):
    """Map a slope and clamped R-squared to a direction and strength label."""
    if abs(slope) < STABLE_SLOPE:
        direction = TrendDirection.STABLE
    elif slope > 0:
        direction = TrendDirection.INCREASING if strength > 0.5 else TrendDirection.VOLATILE
    else:
        direction = TrendDirection.DECREASING if strength > 0.5 else TrendDirection.VOLATILE

    if strength > 0.7:
        level = TrendStrength.STRONG
    elif strength > 0.4:
        level = TrendStrength.MODERATE
    else:
        level = TrendStrength.WEAK

    return direction, level


def seasonal_pattern(amounts: Sequence[float], dates: Sequence[date]) -> SeasonalPattern:
    """Calendar-month seasonality over paired amounts and dates."""
    if len(amounts) < MIN_SEASONAL_POINTS:
        return SeasonalPattern()

    by_month: Dict[int, List[float]] = {}
    for amount, day in zip(amounts, dates):
        by_month.setdefault(day.month, []).append(amount)

    averages = {month: stats.mean(values) for month, values in by_month.items()}
    ranked = sorted(averages.items(), key=lambda item: item[1], reverse=True)

    strength = stats.coefficient_of_variation(list(averages.values()))
    if math.isinf(strength):
        strength = 0.0

    return SeasonalPattern(
        has_seasonality=strength > SEASONAL_STRENGTH_THRESHOLD,
        peak_months=[MONTH_NAMES[month - 1] for month, _ in ranked[:2]],
        low_months=[MONTH_NAMES[month - 1] for month, _ in ranked[-2:]],
        seasonal_strength=stats.round_money(strength)
    )


class TrendAnalysisEngine:
    """Analyzes spending trends and patterns."""

    def __init__(self, loader: HistoricalDataLoader, settings: Optional[Settings] = None):
        self.loader = loader
        self.settings = settings or get_settings()

    async def analyze_trends(self, query: PredictiveQuery) -> TrendAnalysis:
        try:
            logger.info(
                "Starting trend analysis",
                user_id=query.user_id,
                start_date=query.start_date.isoformat(),
                end_date=query.end_date.isoformat()
            )

            samples = await self.loader.load_history(
                query, self.settings.trend_lookback_days, TransactionType.EXPENSE
            )
            daily = self.loader.group_by_day(samples)
            self.loader.require_minimum(
                len(daily),
                MIN_DAILY_POINTS,
                "Insufficient historical data for trend analysis. Need at least 14 days of data."
            )

            overall_trend = self.analyze_overall_trend(daily)

            categories = await self.loader.data_source.find_categories(query.user_id)
            category_names = {category.id: category.name for category in categories}
            category_trends = []
            for category_id, bucket in self.loader.group_by_category(samples).items():
                category_trends.append(self.analyze_category_trend(
                    category_id,
                    category_names.get(category_id, bucket.category_name),
                    [t.value for t in bucket.transactions],
                    [t.date for t in bucket.transactions]
                ))

            spending_patterns = self.analyze_spending_patterns(daily)
            insights = self.generate_insights(overall_trend, category_trends, spending_patterns)

            history_from, history_to = self.loader.history_window(
                query.start_date, self.settings.trend_lookback_days
            )
            methodology = self.select_methodology(daily, Period(start_date=history_from, end_date=history_to))

            analysis = TrendAnalysis(
                analysis_period=Period(start_date=query.start_date, end_date=query.end_date),
                overall_trend=overall_trend,
                category_trends=category_trends,
                spending_patterns=spending_patterns,
                insights=insights,
                methodology=methodology
            )

            logger.info(
                "Trend analysis completed",
                user_id=query.user_id,
                direction=overall_trend.direction,
                strength=overall_trend.strength,
                category_count=len(category_trends)
            )
            return analysis

        except Exception as e:
            logger.error("Trend analysis failed", user_id=query.user_id, error=str(e))
            raise

    @staticmethod
    def analyze_overall_trend(daily: List[DailyBucket]) -> TrendSummary:
        amounts = [bucket.amount for bucket in daily]
        fit = stats.linear_regression(amounts)
        strength = stats.clamp(fit.r_squared)
        confidence = strength * min(1.0, len(amounts) / 30)
        direction, level = classify_trend(fit.slope, strength)

        return TrendSummary(
            direction=direction,
            strength=level,
            confidence=confidence,
            description=(
                f"Spending shows a {level.value} {direction.value} trend "
                f"with a slope of {fit.slope:.4f}."
            )
        )

    @staticmethod
    def analyze_category_trend(
        category_id: str,
        category_name: str,
        amounts: List[float],
        dates: List[datetime]
    ) -> CategoryTrend:
        if len(amounts) < MIN_CATEGORY_POINTS:
            return CategoryTrend(
                category_id=category_id,
                category_name=category_name,
                trend=TrendSummary(
                    direction=TrendDirection.STABLE,
                    strength=TrendStrength.WEAK,
                    confidence=0.3
                ),
                data=[],
                seasonal_pattern=SeasonalPattern(),
                forecast=CategoryForecast(next_period_prediction=0, confidence=0.3, trend="stable")
            )

        fit = stats.linear_regression(amounts)
        strength = stats.clamp(fit.r_squared)
        confidence = strength * min(1.0, len(amounts) / 30)
        direction, level = classify_trend(fit.slope, strength)

        data = []
        for index, amount in enumerate(amounts):
            change = amount - amounts[index - 1] if index > 0 else 0.0
            previous = amounts[index - 1] if index > 0 else 0.0
            percentage = change / previous * 100 if previous else 0.0
            data.append(TrendDataPoint(
                period=dates[index].date().isoformat(),
                amount=stats.round_money(amount),
                change=stats.round_money(change),
                percentage_change=stats.round_money(percentage)
            ))

        if fit.slope > STABLE_SLOPE:
            outlook = "continuing"
        elif fit.slope < -STABLE_SLOPE:
            outlook = "reversing"
        else:
            outlook = "stabilizing"

        return CategoryTrend(
            category_id=category_id,
            category_name=category_name,
            trend=TrendSummary(direction=direction, strength=level, confidence=confidence),
            data=data,
            seasonal_pattern=seasonal_pattern(amounts, [d.date() for d in dates]),
            forecast=CategoryForecast(
                next_period_prediction=stats.round_money(max(0.0, fit.slope + amounts[-1])),
                confidence=stats.round_money(confidence),
                trend=outlook
            )
        )

    @staticmethod
    def analyze_spending_patterns(daily: List[DailyBucket]) -> SpendingPatterns:
        days = [date.fromisoformat(bucket.date) for bucket in daily]

        weekday_totals: Dict[int, List[float]] = {}
        month_totals: Dict[str, List[float]] = {}
        for bucket, day in zip(daily, days):
            weekday_totals.setdefault(day.weekday(), []).append(bucket.amount)
            month_totals.setdefault(bucket.date[:7], []).append(bucket.amount)

        weekly = [
            WeeklyPatternEntry(
                day=name.capitalize(),
                average_amount=stats.round_money(stats.mean(weekday_totals.get(index, []))),
                frequency=len(weekday_totals.get(index, []))
            )
            for index, name in enumerate(WEEKDAY_NAMES)
        ]
        monthly = [
            MonthlyPatternEntry(month=month, average_amount=stats.round_money(stats.mean(values)))
            for month, values in sorted(month_totals.items())
        ]

        return SpendingPatterns(
            weekly_pattern=weekly,
            monthly_pattern=monthly,
            seasonal_pattern=seasonal_pattern([bucket.amount for bucket in daily], days)
        )

    @staticmethod
    def generate_insights(
        overall_trend: TrendSummary,
        category_trends: List[CategoryTrend],
        spending_patterns: SpendingPatterns
    ) -> List[TrendInsight]:
        insights = []

        if (overall_trend.direction == TrendDirection.INCREASING
                and overall_trend.strength == TrendStrength.STRONG):
            insights.append(TrendInsight(
                type="trend",
                priority="high",
                message="Strong increasing spending trend detected. Consider reviewing budget allocations.",
                data={"direction": overall_trend.direction, "strength": overall_trend.strength},
                recommendations=[Recommendation(
                    action="Review and adjust budget categories",
                    priority="high",
                    expected_impact="Better control over spending growth"
                )]
            ))

        growing = [
            ct for ct in category_trends
            if ct.trend.direction == TrendDirection.INCREASING and ct.trend.strength == TrendStrength.STRONG
        ]
        if growing:
            insights.append(TrendInsight(
                type="pattern",
                priority="medium",
                message=f"{len(growing)} categories showing strong increasing trends.",
                data={"categories": [ct.category_name for ct in growing]},
                recommendations=[Recommendation(
                    action="Monitor high-growth categories closely",
                    priority="medium",
                    expected_impact="Early detection of budget overruns"
                )]
            ))

        seasonal = spending_patterns.seasonal_pattern
        if seasonal.has_seasonality:
            insights.append(TrendInsight(
                type="pattern",
                priority="low",
                message=f"Seasonal spending patterns detected. Peak months: {', '.join(seasonal.peak_months)}",
                data=seasonal.model_dump(),
                recommendations=[Recommendation(
                    action="Plan for seasonal variations in budget",
                    priority="low",
                    expected_impact="Better seasonal budget planning"
                )]
            ))

        return insights

    @staticmethod
    def select_methodology(daily: List[DailyBucket], training_period: Period) -> Methodology:
        amounts = [bucket.amount for bucket in daily]

        if len(amounts) < 30:
            algorithm = "linear_regression"
        else:
            has_seasonality = stats.detect_seasonality(amounts, threshold=METHOD_SEASONALITY_THRESHOLD)
            has_trend = stats.detect_trend(amounts, threshold=METHOD_TREND_THRESHOLD)
            if has_seasonality:
                algorithm = "seasonal_decomposition"
            elif has_trend:
                algorithm = "exponential_smoothing"
            else:
                algorithm = "linear_regression"

        time_window = 0
        if daily:
            first = date.fromisoformat(daily[0].date)
            last = date.fromisoformat(daily[-1].date)
            time_window = (last - first).days

        return Methodology(
            algorithm=algorithm,
            parameters={
                "data_points": len(amounts),
                "time_window": time_window,
                "confidence_threshold": CONFIDENCE_THRESHOLD,
            },
            training_period=training_period,
            accuracy=max(0.1, 1 - stats.coefficient_of_variation(amounts))
        )
