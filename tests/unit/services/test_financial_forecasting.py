"""
Unit tests for the financial forecasting engine.
"""
from datetime import datetime
from decimal import Decimal

import pytest

from factories.financial_factory import (
    AccountRefFactory,
    ExpenseSampleFactory,
    IncomeSampleFactory,
    history_before,
)
from finlytics.models.financial import PredictiveQuery
from finlytics.models.predictive import ConfidenceLevel
from finlytics.services.financial_forecasting import (
    FinancialForecastingEngine,
    consistency,
    forecast_confidence,
    monthly_average,
    months_between,
)
from finlytics.services.historical_data import HistoricalDataLoader
from finlytics.utils.exceptions import InsufficientDataError


@pytest.fixture
def engine(store, test_settings):
    """Forecasting engine over the in-memory store."""
    return FinancialForecastingEngine(HistoricalDataLoader(store), test_settings)


def _seed_salary(store, *days):
    for day in days:
        store.add_transaction(IncomeSampleFactory(date=datetime(2024, 6, day, 12), amount=Decimal("3000.00")))


@pytest.mark.unit
class TestForecastHelpers:
    """Test forecasting helpers."""

    def test_months_between(self):
        """Test both ends count."""
        assert months_between(datetime(2024, 7, 1), datetime(2024, 7, 31)) == 1
        assert months_between(datetime(2024, 7, 1), datetime(2024, 8, 1)) == 2
        assert months_between(datetime(2023, 11, 15), datetime(2024, 2, 1)) == 4

    def test_monthly_average_uses_sample_span(self):
        """Test totals are spread over the months the samples touch."""
        samples = [
            ExpenseSampleFactory(date=datetime(2024, 5, 20), amount=Decimal("100")),
            ExpenseSampleFactory(date=datetime(2024, 6, 20), amount=Decimal("300")),
        ]

        assert monthly_average(samples) == pytest.approx(200.0)
        assert monthly_average([]) == 0.0

    def test_consistency(self):
        """Test consistency scores."""
        assert consistency([]) == 0.5
        assert consistency([ExpenseSampleFactory(), ExpenseSampleFactory()]) == 0.5
        assert consistency([ExpenseSampleFactory(amount=Decimal("10")) for _ in range(3)]) == 1.0

        erratic = [ExpenseSampleFactory(amount=Decimal(v)) for v in ("1", "1", "1", "100")]
        assert consistency(erratic) == 0.0

    def test_forecast_confidence(self):
        """Test confidence buckets."""
        assert forecast_confidence(0.81) == ConfidenceLevel.HIGH
        assert forecast_confidence(0.8) == ConfidenceLevel.MEDIUM
        assert forecast_confidence(0.6) == ConfidenceLevel.LOW


class TestFinancialForecast:
    """Test end-to-end financial forecasts."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_insufficient_history(self, store, engine, query):
        """Test fewer than 30 historical records."""
        store.add_transactions(history_before([50.0] * 29, query.start_date))

        with pytest.raises(InsufficientDataError) as exc_info:
            await engine.generate_financial_forecast(query)

        assert "accurate forecasting" in exc_info.value.message
        assert exc_info.value.available == 29

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_forecast(self, store, engine, query):
        """Test base scenario, scenarios and projections."""
        store.add_transactions(history_before([50.0] * 40, query.start_date))
        _seed_salary(store, 1, 15)

        forecast = await engine.generate_financial_forecast(query)

        base = forecast.base_scenario
        assert base.projected_income == pytest.approx(6000.0)
        assert base.projected_expenses == pytest.approx(1000.0)
        assert base.projected_net_worth == pytest.approx(5000.0)
        assert base.projected_savings == pytest.approx(1000.0)
        assert base.confidence_score == pytest.approx(0.75)
        assert base.confidence == ConfidenceLevel.MEDIUM

        assert [s.name for s in forecast.scenarios] == ["optimistic", "realistic", "pessimistic"]
        assert sum(s.probability for s in forecast.scenarios) == pytest.approx(1.0)
        optimistic, realistic, pessimistic = forecast.scenarios
        assert optimistic.projected_income == pytest.approx(7200.0)
        assert optimistic.projected_net_worth == pytest.approx(6300.0)
        assert optimistic.projected_savings == pytest.approx(1575.0)
        assert realistic.projected_net_worth == base.projected_net_worth
        assert pessimistic.projected_expenses == pytest.approx(1200.0)
        assert pessimistic.projected_savings == pytest.approx(420.0)

        assert len(forecast.category_forecasts) == 1
        groceries = forecast.category_forecasts[0]
        assert groceries.category_id == "cat_groceries"
        assert groceries.projected_amount == pytest.approx(166.67)
        assert groceries.trend == "stable"

        assert [m.month for m in forecast.monthly_projections] == ["2024-07"]
        assert forecast.monthly_projections[0].projected_income == pytest.approx(6000.0)

        assert [r.factor for r in forecast.risk_factors] == ["income_volatility"]
        assert forecast.risk_factors[0].probability == pytest.approx(0.5)

        assert forecast.methodology.algorithm == "linear_regression"
        assert forecast.methodology.parameters["historical_period"] == 12
        assert forecast.methodology.parameters["forecast_period"] == 1
        assert forecast.methodology.accuracy == pytest.approx(0.75)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_forecast_is_repeatable(self, store, engine, query):
        """Test identical history yields identical forecasts."""
        store.add_transactions(history_before([40.0 + (i % 4) * 10 for i in range(40)], query.start_date))
        _seed_salary(store, 1, 15)

        first = await engine.generate_financial_forecast(query)
        second = await engine.generate_financial_forecast(query)

        assert first.model_dump() == second.model_dump()

    @pytest.mark.unit
    def test_category_trend_halves(self, engine):
        """Test later spending above the earlier half."""
        samples = [
            ExpenseSampleFactory(date=datetime(2024, 6, day, 12), amount=Decimal(amount))
            for day, amount in [(1, "10"), (2, "10"), (3, "20"), (4, "20")]
        ]

        assert engine._category_trend(samples) == ("increasing", pytest.approx(1.0))
        assert engine._category_trend(samples[:1]) == ("stable", 0.0)


class TestCashFlowPrediction:
    """Test end-to-end cash flow predictions."""

    @pytest.fixture
    def seeded_store(self, store, query):
        store.add_transactions(history_before([50.0] * 60, query.start_date))
        _seed_salary(store, 1, 15)
        store.add_account(query.user_id, AccountRefFactory(id="acc_main", balance=Decimal("2500.00")))
        store.add_account(query.user_id, AccountRefFactory(id="acc_savings", balance=Decimal("8000.00")))
        store.add_account(query.user_id, AccountRefFactory(id="acc_old", balance=Decimal("999.00"), is_active=False))
        return store

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_insufficient_history(self, store, engine, query):
        """Test fewer than 30 days with cash flow."""
        store.add_transactions(history_before([50.0] * 20, query.start_date))

        with pytest.raises(InsufficientDataError) as exc_info:
            await engine.generate_cash_flow_prediction(query)

        assert "cash flow prediction" in exc_info.value.message

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cash_flow_prediction(self, seeded_store, engine, query):
        """Test totals, ending balance and scenarios."""
        prediction = await engine.generate_cash_flow_prediction(query)

        assert prediction.current_balance == pytest.approx(10500.0)

        totals = prediction.predictions
        assert totals.projected_inflows == pytest.approx(3000.0)
        assert totals.projected_outflows == pytest.approx(1500.0)
        assert totals.projected_net_cash_flow == pytest.approx(1500.0)
        assert totals.projected_ending_balance == pytest.approx(12000.0)
        assert totals.confidence == ConfidenceLevel.LOW

        assert [s.projected_ending_balance for s in prediction.scenarios] == pytest.approx([14400.0, 12000.0, 9600.0])
        assert sum(s.probability for s in prediction.scenarios) == pytest.approx(1.0)

        assert len(prediction.monthly_projections) == 1
        july = prediction.monthly_projections[0]
        assert july.month == "2024-07"
        assert july.projected_inflows == pytest.approx(3100.0)
        assert july.projected_net_cash_flow == pytest.approx(1550.0)
        assert july.projected_balance == pytest.approx(12050.0)

        by_category = {p.category_id: p for p in prediction.category_projections}
        assert by_category["cat_groceries"].projected_outflows == pytest.approx(1500.0)
        assert by_category["cat_salary"].projected_inflows == pytest.approx(3000.0)
        assert by_category["cat_salary"].projected_net_amount == pytest.approx(3000.0)

        assert [r.factor for r in prediction.risk_factors] == ["cash_flow_volatility"]
        assert prediction.risk_factors[0].probability == 1.0

        assert prediction.methodology.algorithm == "exponential_smoothing"
        assert prediction.methodology.parameters == {"alpha": 0.3, "historical_days": 60, "forecast_days": 30}
        assert prediction.methodology.accuracy == pytest.approx(0.1)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cash_flow_prediction_is_repeatable(self, seeded_store, engine, query):
        """Test identical history yields identical cash flow predictions."""
        first = await engine.generate_cash_flow_prediction(query)
        second = await engine.generate_cash_flow_prediction(query)

        assert first.model_dump() == second.model_dump()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_balance_limited_to_query_accounts(self, seeded_store, engine):
        """Test the current balance only counts requested accounts."""
        query = PredictiveQuery(
            user_id="test_user_123",
            start_date=datetime(2024, 7, 1),
            end_date=datetime(2024, 7, 31),
            accounts=["acc_main", "acc_old"]
        )

        assert await engine.get_current_balance(query) == pytest.approx(2500.0)

    @pytest.mark.unit
    def test_cash_flow_confidence_short_history(self, engine):
        """Test fewer than a week of buckets."""
        assert engine.cash_flow_confidence([]) == 0.5
