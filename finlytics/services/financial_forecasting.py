"""
Financial forecasting engine.
Projects income, expenses and savings from monthly historical averages, and
cash flow from daily average inflows and outflows.
"""
import math
from datetime import datetime, timedelta
from typing import List, Optional

import pandas as pd
import structlog

from . import statistics as stats
from .historical_data import HistoricalDataLoader
from ..config import Settings, get_settings
from ..models.financial import CashFlowBucket, PredictiveQuery, TransactionSample, TransactionType
from ..models.predictive import (
    BaseScenario,
    CashFlowCategoryProjection,
    CashFlowMonth,
    CashFlowPrediction,
    CashFlowScenario,
    CashFlowTotals,
    CategoryProjection,
    ConfidenceLevel,
    FinancialForecast,
    ForecastScenario,
    KeyAssumption,
    Methodology,
    MonthlyProjection,
    Period,
    PredictionFactor,
    RiskFactor,
)
from ..utils.constants import DEFAULT_SMOOTHING_ALPHA, SCENARIO_PROBABILITIES, Severity

logger = structlog.get_logger()

MIN_HISTORY_RECORDS = 30
MIN_CASH_FLOW_DAYS = 30
BASE_SAVINGS_RATE = 0.2
CONSISTENCY_RISK_THRESHOLD = 0.8
MONTHLY_SEASONALITY_THRESHOLD = 0.3
TREND_THRESHOLD = 0.01
CATEGORY_TREND_THRESHOLD = 0.1
PROJECTION_CONFIDENCE = 0.7
CONFIDENCE_THRESHOLD = 0.7
CASH_FLOW_VOLATILITY_THRESHOLD = 0.5


def months_between(start: datetime, end: datetime) -> int:
    """Calendar months touched by ``[start, end]``, counting both ends."""
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def forecast_confidence(score: float) -> ConfidenceLevel:
    if score > 0.8:
        return ConfidenceLevel.HIGH
    if score > 0.6:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def consistency(samples: List[TransactionSample]) -> float:
    """``1 - CV`` of transaction amounts, floored at 0; 0.5 below 3 samples."""
    if len(samples) < 3:
        return 0.5
    return max(0.0, 1 - stats.coefficient_of_variation([s.value for s in samples]))


def monthly_average(samples: List[TransactionSample]) -> float:
    """Total amount spread over the months the samples themselves span."""
    if not samples:
        return 0.0
    total = sum(s.value for s in samples)
    dates = [s.date for s in samples]
    return total / max(1, months_between(min(dates), max(dates)))


class FinancialForecastingEngine:
    """Generates financial and cash-flow forecasts."""

    def __init__(self, loader: HistoricalDataLoader, settings: Optional[Settings] = None):
        self.loader = loader
        self.settings = settings or get_settings()

    async def generate_financial_forecast(self, query: PredictiveQuery) -> FinancialForecast:
        try:
            logger.info(
                "Starting financial forecast",
                user_id=query.user_id,
                start_date=query.start_date.isoformat(),
                end_date=query.end_date.isoformat()
            )

            samples = await self.loader.load_history(query, self.settings.forecast_lookback_days)
            self.loader.require_minimum(
                len(samples),
                MIN_HISTORY_RECORDS,
                "Insufficient historical data for accurate forecasting. Need at least 30 days of data."
            )

            income = [s for s in samples if s.type == TransactionType.INCOME]
            expenses = [s for s in samples if s.type == TransactionType.EXPENSE]
            history_from, history_to = self.loader.history_window(
                query.start_date, self.settings.forecast_lookback_days
            )
            training_period = Period(start_date=history_from, end_date=history_to)

            base_scenario = self.calculate_base_scenario(income, expenses, query)
            forecast = FinancialForecast(
                forecast_period=Period(start_date=query.start_date, end_date=query.end_date),
                base_scenario=base_scenario,
                scenarios=self.generate_scenarios(base_scenario),
                category_forecasts=self.generate_category_forecasts(expenses, training_period, query),
                monthly_projections=self.generate_monthly_projections(income, expenses, query),
                risk_factors=self.identify_risk_factors(income, expenses),
                methodology=self.select_methodology(income, expenses, training_period, query)
            )

            logger.info(
                "Financial forecast completed",
                user_id=query.user_id,
                projected_income=base_scenario.projected_income,
                projected_expenses=base_scenario.projected_expenses,
                projected_net_worth=base_scenario.projected_net_worth
            )
            return forecast

        except Exception as e:
            logger.error("Financial forecast failed", user_id=query.user_id, error=str(e))
            raise

    @staticmethod
    def calculate_base_scenario(
        income: List[TransactionSample],
        expenses: List[TransactionSample],
        query: PredictiveQuery
    ) -> BaseScenario:
        months = months_between(query.start_date, query.end_date)
        projected_income = monthly_average(income) * months
        projected_expenses = monthly_average(expenses) * months
        projected_net = projected_income - projected_expenses

        score = (consistency(income) + consistency(expenses)) / 2

        return BaseScenario(
            projected_income=stats.round_money(projected_income),
            projected_expenses=stats.round_money(projected_expenses),
            projected_net_worth=stats.round_money(projected_net),
            projected_savings=stats.round_money(projected_net * BASE_SAVINGS_RATE),
            confidence=forecast_confidence(score),
            confidence_score=score
        )

    @staticmethod
    def generate_scenarios(base: BaseScenario) -> List[ForecastScenario]:
        optimistic_net = base.projected_income * 1.2 - base.projected_expenses * 0.9
        pessimistic_net = base.projected_income * 0.9 - base.projected_expenses * 1.2

        return [
            ForecastScenario(
                name="optimistic",
                probability=SCENARIO_PROBABILITIES["optimistic"],
                projected_income=stats.round_money(base.projected_income * 1.2),
                projected_expenses=stats.round_money(base.projected_expenses * 0.9),
                projected_net_worth=stats.round_money(optimistic_net),
                projected_savings=stats.round_money(optimistic_net * 0.25),
                key_assumptions=[
                    KeyAssumption(assumption="Income increases by 20%", impact=0.3, confidence=0.6),
                    KeyAssumption(assumption="Expenses decrease by 10%", impact=0.2, confidence=0.7),
                    KeyAssumption(assumption="No major unexpected expenses", impact=0.1, confidence=0.8),
                ]
            ),
            ForecastScenario(
                name="realistic",
                probability=SCENARIO_PROBABILITIES["realistic"],
                projected_income=base.projected_income,
                projected_expenses=base.projected_expenses,
                projected_net_worth=base.projected_net_worth,
                projected_savings=base.projected_savings,
                key_assumptions=[
                    KeyAssumption(assumption="Historical trends continue", impact=0.4, confidence=0.8),
                    KeyAssumption(assumption="No major changes in spending patterns", impact=0.3, confidence=0.7),
                    KeyAssumption(assumption="Stable income source", impact=0.3, confidence=0.8),
                ]
            ),
            ForecastScenario(
                name="pessimistic",
                probability=SCENARIO_PROBABILITIES["pessimistic"],
                projected_income=stats.round_money(base.projected_income * 0.9),
                projected_expenses=stats.round_money(base.projected_expenses * 1.2),
                projected_net_worth=stats.round_money(pessimistic_net),
                projected_savings=stats.round_money(pessimistic_net * 0.1),
                key_assumptions=[
                    KeyAssumption(assumption="Income decreases by 10%", impact=0.3, confidence=0.5),
                    KeyAssumption(assumption="Expenses increase by 20%", impact=0.2, confidence=0.6),
                    KeyAssumption(assumption="Unexpected major expenses", impact=0.1, confidence=0.4),
                ]
            ),
        ]

    def generate_category_forecasts(
        self,
        expenses: List[TransactionSample],
        training_period: Period,
        query: PredictiveQuery
    ) -> List[CategoryProjection]:
        # The history window is half-open; its last instant is just before the end
        history_months = months_between(
            training_period.start_date,
            training_period.end_date - timedelta(microseconds=1)
        )
        forecast_months = months_between(query.start_date, query.end_date)

        forecasts = []
        for category_id, bucket in self.loader.group_by_category(expenses).items():
            avg_monthly = bucket.amount / history_months
            direction, impact = self._category_trend(bucket.transactions)
            forecasts.append(CategoryProjection(
                category_id=category_id,
                category_name=bucket.category_name,
                projected_amount=stats.round_money(avg_monthly * forecast_months),
                confidence=ConfidenceLevel.MEDIUM,
                trend=direction,
                factors=[
                    PredictionFactor(factor="historical_average", impact=avg_monthly, weight=0.7),
                    PredictionFactor(factor="trend_adjustment", impact=impact, weight=0.3),
                ]
            ))
        return forecasts

    @staticmethod
    def _category_trend(transactions: List[TransactionSample]):
        """Compare the average of the later half of transactions with the earlier half."""
        if len(transactions) < 2:
            return "stable", 0.0

        ordered = sorted(transactions, key=lambda t: t.date)
        middle = len(ordered) // 2
        first_avg = stats.mean([t.value for t in ordered[:middle]])
        second_avg = stats.mean([t.value for t in ordered[middle:]])
        if first_avg == 0:
            return "stable", 0.0

        change = (second_avg - first_avg) / first_avg
        if change > CATEGORY_TREND_THRESHOLD:
            return "increasing", change
        if change < -CATEGORY_TREND_THRESHOLD:
            return "decreasing", change
        return "stable", change

    @staticmethod
    def generate_monthly_projections(
        income: List[TransactionSample],
        expenses: List[TransactionSample],
        query: PredictiveQuery
    ) -> List[MonthlyProjection]:
        avg_income = monthly_average(income)
        avg_expenses = monthly_average(expenses)
        net = avg_income - avg_expenses
        first_month = pd.Period(year=query.start_date.year, month=query.start_date.month, freq="M")

        return [
            MonthlyProjection(
                month=str(first_month + offset),
                projected_income=stats.round_money(avg_income),
                projected_expenses=stats.round_money(avg_expenses),
                projected_net_worth=stats.round_money(net),
                projected_savings=stats.round_money(net * BASE_SAVINGS_RATE),
                confidence=PROJECTION_CONFIDENCE
            )
            for offset in range(months_between(query.start_date, query.end_date))
        ]

    def identify_risk_factors(
        self,
        income: List[TransactionSample],
        expenses: List[TransactionSample]
    ) -> List[RiskFactor]:
        risk_factors = []

        income_consistency = consistency(income)
        if income_consistency < CONSISTENCY_RISK_THRESHOLD:
            risk_factors.append(RiskFactor(
                factor="income_volatility",
                impact=Severity.HIGH,
                probability=stats.clamp(1 - income_consistency),
                description="Income shows high volatility, making predictions less reliable",
                mitigation="Consider building emergency fund and diversifying income sources"
            ))

        expense_consistency = consistency(expenses)
        if expense_consistency < CONSISTENCY_RISK_THRESHOLD:
            risk_factors.append(RiskFactor(
                factor="expense_volatility",
                impact=Severity.MEDIUM,
                probability=stats.clamp(1 - expense_consistency),
                description="Expenses show high volatility, making budget planning difficult",
                mitigation="Implement stricter budget controls and expense tracking"
            ))

        if self._has_monthly_seasonality(expenses):
            risk_factors.append(RiskFactor(
                factor="seasonal_variations",
                impact=Severity.MEDIUM,
                probability=0.7,
                description="Spending patterns show seasonal variations that may not be captured in forecasts",
                mitigation="Adjust forecasts for seasonal factors and plan accordingly"
            ))

        return risk_factors

    def _has_monthly_seasonality(self, expenses: List[TransactionSample]) -> bool:
        if len(expenses) < 28:
            return False
        totals = self.loader.group_by_month(expenses)
        if len(totals) < 3:
            return False
        variation = stats.coefficient_of_variation(list(totals.values()))
        return variation > MONTHLY_SEASONALITY_THRESHOLD

    def select_methodology(
        self,
        income: List[TransactionSample],
        expenses: List[TransactionSample],
        training_period: Period,
        query: PredictiveQuery
    ) -> Methodology:
        has_seasonality = self._has_monthly_seasonality(expenses)
        has_trend = stats.detect_trend([s.value for s in expenses], threshold=TREND_THRESHOLD)

        if has_seasonality and has_trend:
            algorithm = "arima"
        elif has_trend:
            algorithm = "exponential_smoothing"
        elif has_seasonality:
            algorithm = "seasonal_decomposition"
        else:
            algorithm = "linear_regression"

        return Methodology(
            algorithm=algorithm,
            parameters={
                "historical_period": months_between(
                    training_period.start_date,
                    training_period.end_date - timedelta(microseconds=1)
                ),
                "forecast_period": months_between(query.start_date, query.end_date),
                "confidence_threshold": CONFIDENCE_THRESHOLD,
            },
            training_period=training_period,
            accuracy=(consistency(income) + consistency(expenses)) / 2
        )

    async def generate_cash_flow_prediction(self, query: PredictiveQuery) -> CashFlowPrediction:
        try:
            logger.info(
                "Starting cash flow prediction",
                user_id=query.user_id,
                start_date=query.start_date.isoformat(),
                end_date=query.end_date.isoformat()
            )

            samples = await self.loader.load_history(query, self.settings.cash_flow_lookback_days)
            buckets = self.loader.group_cash_flow_by_day(samples)
            self.loader.require_minimum(
                len(buckets),
                MIN_CASH_FLOW_DAYS,
                "Insufficient historical data for accurate cash flow prediction. Need at least 30 days of data."
            )

            current_balance = await self.get_current_balance(query)
            score = self.cash_flow_confidence(buckets)
            days = query.period_days

            avg_inflows = stats.mean([b.inflows for b in buckets])
            avg_outflows = stats.mean([b.outflows for b in buckets])
            projected_net = (avg_inflows - avg_outflows) * days

            totals = CashFlowTotals(
                projected_inflows=stats.round_money(avg_inflows * days),
                projected_outflows=stats.round_money(avg_outflows * days),
                projected_net_cash_flow=stats.round_money(projected_net),
                projected_ending_balance=stats.round_money(current_balance + projected_net),
                confidence=forecast_confidence(score)
            )

            history_from, history_to = self.loader.history_window(
                query.start_date, self.settings.cash_flow_lookback_days
            )
            prediction = CashFlowPrediction(
                prediction_period=Period(start_date=query.start_date, end_date=query.end_date),
                current_balance=stats.round_money(current_balance),
                predictions=totals,
                monthly_projections=self.generate_cash_flow_monthly_projections(
                    avg_inflows, avg_outflows, current_balance, query
                ),
                category_projections=self.generate_cash_flow_category_projections(
                    samples, len(buckets), days
                ),
                risk_factors=self.identify_cash_flow_risk_factors(buckets),
                scenarios=self.generate_cash_flow_scenarios(totals),
                methodology=Methodology(
                    algorithm="exponential_smoothing",
                    parameters={
                        "alpha": DEFAULT_SMOOTHING_ALPHA,
                        "historical_days": len(buckets),
                        "forecast_days": days,
                    },
                    training_period=Period(start_date=history_from, end_date=history_to),
                    accuracy=score
                )
            )

            logger.info(
                "Cash flow prediction completed",
                user_id=query.user_id,
                projected_inflows=totals.projected_inflows,
                projected_outflows=totals.projected_outflows,
                projected_net_cash_flow=totals.projected_net_cash_flow
            )
            return prediction

        except Exception as e:
            logger.error("Cash flow prediction failed", user_id=query.user_id, error=str(e))
            raise

    async def get_current_balance(self, query: PredictiveQuery) -> float:
        """Sum of active account balances, limited to the query's accounts if given."""
        accounts = await self.loader.data_source.find_accounts(query.user_id)
        return sum(
            float(account.balance)
            for account in accounts
            if account.is_active and (not query.accounts or account.id in query.accounts)
        )

    @staticmethod
    def cash_flow_confidence(buckets: List[CashFlowBucket]) -> float:
        if len(buckets) < 7:
            return 0.5
        variation = stats.coefficient_of_variation([b.net_flow for b in buckets], absolute_mean=True)
        return max(0.1, 1 - variation)

    @staticmethod
    def generate_cash_flow_monthly_projections(
        avg_inflows: float,
        avg_outflows: float,
        current_balance: float,
        query: PredictiveQuery
    ) -> List[CashFlowMonth]:
        first_month = pd.Period(year=query.start_date.year, month=query.start_date.month, freq="M")
        balance = current_balance

        projections = []
        for offset in range(months_between(query.start_date, query.end_date)):
            month = first_month + offset
            days_in_month = month.days_in_month
            net = (avg_inflows - avg_outflows) * days_in_month
            balance += net
            projections.append(CashFlowMonth(
                month=str(month),
                projected_inflows=stats.round_money(avg_inflows * days_in_month),
                projected_outflows=stats.round_money(avg_outflows * days_in_month),
                projected_net_cash_flow=stats.round_money(net),
                projected_balance=stats.round_money(balance),
                confidence=PROJECTION_CONFIDENCE
            ))
        return projections

    def generate_cash_flow_category_projections(
        self,
        samples: List[TransactionSample],
        history_days: int,
        forecast_days: int
    ) -> List[CashFlowCategoryProjection]:
        projections = []
        for category_id, bucket in self.loader.group_by_category(samples).items():
            inflows = sum(t.value for t in bucket.transactions if t.type == TransactionType.INCOME)
            outflows = bucket.amount - inflows
            scale = forecast_days / history_days
            projections.append(CashFlowCategoryProjection(
                category_id=category_id,
                category_name=bucket.category_name,
                projected_inflows=stats.round_money(inflows * scale),
                projected_outflows=stats.round_money(outflows * scale),
                projected_net_amount=stats.round_money((inflows - outflows) * scale),
                confidence=ConfidenceLevel.MEDIUM
            ))
        return projections

    @staticmethod
    def identify_cash_flow_risk_factors(buckets: List[CashFlowBucket]) -> List[RiskFactor]:
        risk_factors = []
        volatility = stats.coefficient_of_variation([b.net_flow for b in buckets], absolute_mean=True)

        if volatility > CASH_FLOW_VOLATILITY_THRESHOLD:
            label = "unbounded" if math.isinf(volatility) else f"{volatility * 100:.1f}%"
            risk_factors.append(RiskFactor(
                factor="cash_flow_volatility",
                impact=Severity.HIGH,
                probability=min(1.0, volatility),
                description=f"Cash flow shows high volatility ({label} coefficient of variation)",
                mitigation="Maintain higher cash reserves and implement better cash flow management"
            ))
        return risk_factors

    @staticmethod
    def generate_cash_flow_scenarios(totals: CashFlowTotals) -> List[CashFlowScenario]:
        ending = totals.projected_ending_balance
        return [
            CashFlowScenario(
                name="optimistic",
                probability=SCENARIO_PROBABILITIES["optimistic"],
                projected_ending_balance=stats.round_money(ending * 1.2),
                key_assumptions=["Higher than expected income", "Lower than expected expenses"]
            ),
            CashFlowScenario(
                name="realistic",
                probability=SCENARIO_PROBABILITIES["realistic"],
                projected_ending_balance=ending,
                key_assumptions=["Historical patterns continue", "No major changes"]
            ),
            CashFlowScenario(
                name="pessimistic",
                probability=SCENARIO_PROBABILITIES["pessimistic"],
                projected_ending_balance=stats.round_money(ending * 0.8),
                key_assumptions=["Lower than expected income", "Higher than expected expenses"]
            ),
        ]
