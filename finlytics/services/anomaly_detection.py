"""
Anomaly detection engine.

Flags expense transactions in the query window that deviate from the
window's own statistics:

- amount anomalies: z-score above 1, plus IQR fences for anything missed
- timing anomalies: z-score above 2 inside a weekday/hour bucket
- category anomalies: category totals against a trailing 90-day baseline
- spending spikes: runs of 3 or more transactions above mean + 1.5 sigma
"""
from datetime import timedelta
from typing import Dict, List, Optional

import structlog

from . import statistics as stats
from .historical_data import HistoricalDataLoader
from ..config import Settings, get_settings
from ..models.financial import PredictiveQuery, TransactionSample, TransactionType
from ..models.predictive import (
    Anomaly,
    AnomalyData,
    AnomalyDetection,
    AnomalySummary,
    AnomalyType,
    DetectionModelInfo,
    Period,
    Recommendation,
)
from ..utils.constants import SEVERITY_RANK, WEEKDAY_NAMES, Severity

logger = structlog.get_logger()

AMOUNT_Z_THRESHOLD = 1.0
IQR_MULTIPLIER = 1.5
IQR_CONFIDENCE = 0.6
TIMING_Z_THRESHOLD = 2.0
TIMING_MIN_SAMPLES = 3
CATEGORY_MIN_BASELINE = 5
CATEGORY_DEVIATION_THRESHOLD = 50.0
SPIKE_SIGMA = 1.5
SPIKE_MIN_RUN = 3
SPIKE_MIN_TRANSACTIONS = 5
DETECTION_ACCURACY = 0.85


def _percentage(deviation: float, base: float) -> float:
    if base == 0:
        return 0.0
    return deviation / base * 100


def _signed(value: float) -> str:
    return f"{'+' if value > 0 else ''}{value:.1f}"


class AnomalyDetectionEngine:
    """Detects unusual expense transactions in a query window."""

    def __init__(self, loader: HistoricalDataLoader, settings: Optional[Settings] = None):
        self.loader = loader
        self.settings = settings or get_settings()

    async def detect_anomalies(self, query: PredictiveQuery) -> AnomalyDetection:
        """Run every detector over the query window and rank the results."""
        try:
            logger.info(
                "Starting anomaly detection",
                user_id=query.user_id,
                start_date=query.start_date.isoformat(),
                end_date=query.end_date.isoformat()
            )

            transactions = await self.loader.load_transactions(
                user_id=query.user_id,
                date_from=query.start_date,
                date_to=query.end_date,
                transaction_type=TransactionType.EXPENSE,
                end_inclusive=True,
                query=query
            )

            if not transactions:
                logger.info("No transactions in window", user_id=query.user_id)
                return self._empty_detection(query)

            anomalies: List[Anomaly] = []
            anomalies.extend(self.detect_amount_anomalies(transactions))
            anomalies.extend(self.detect_timing_anomalies(transactions))
            anomalies.extend(await self.detect_category_anomalies(transactions, query))
            anomalies.extend(self.detect_pattern_anomalies(transactions))

            anomalies.sort(key=lambda a: (-SEVERITY_RANK[Severity(a.severity)], -a.confidence))

            detection = AnomalyDetection(
                period=Period(start_date=query.start_date, end_date=query.end_date),
                anomalies=anomalies,
                summary=self.summarize(anomalies),
                model=DetectionModelInfo(
                    algorithm="hybrid",
                    parameters={
                        "z_score_threshold": 2.5,
                        "iqr_multiplier": IQR_MULTIPLIER,
                        "time_window": 7,
                        "min_transactions": 10,
                    },
                    training_data_size=len(transactions)
                )
            )

            logger.info(
                "Anomaly detection completed",
                user_id=query.user_id,
                total_anomalies=detection.summary.total_anomalies,
                critical_anomalies=detection.summary.critical_anomalies
            )
            return detection

        except Exception as e:
            logger.error("Anomaly detection failed", user_id=query.user_id, error=str(e))
            raise

    def detect_amount_anomalies(self, transactions: List[TransactionSample]) -> List[Anomaly]:
        anomalies: List[Anomaly] = []
        amounts = [t.value for t in transactions]
        if len(amounts) < 3:
            return anomalies

        mean = stats.mean(amounts)
        std = stats.std_dev(amounts)
        flagged = set()

        if std > 0:
            for transaction in transactions:
                z_score = abs(transaction.value - mean) / std
                if z_score <= AMOUNT_Z_THRESHOLD:
                    continue

                if z_score > 4:
                    severity = Severity.CRITICAL
                elif z_score > 3:
                    severity = Severity.HIGH
                else:
                    severity = Severity.MEDIUM
                deviation = transaction.value - mean
                deviation_pct = _percentage(deviation, mean)

                flagged.add(transaction.id)
                anomalies.append(Anomaly(
                    id=f"amount_anomaly_{transaction.id}",
                    type=AnomalyType.AMOUNT_ANOMALY,
                    severity=severity,
                    confidence=min(0.95, z_score / 5),
                    transaction_id=transaction.id,
                    description=(
                        f"Unusual transaction amount: ${transaction.value:.2f} "
                        f"({_signed(deviation_pct)}% from average)"
                    ),
                    data=self._transaction_data(transaction, mean, deviation, deviation_pct),
                    explanation=(
                        f"This transaction amount is {z_score:.1f} standard deviations from the mean, "
                        "indicating an unusual spending pattern."
                    ),
                    recommendations=[Recommendation(
                        action="Review transaction details",
                        priority="high" if severity == Severity.CRITICAL else "medium",
                        expected_impact="Verify if this is a legitimate expense or potential error"
                    )]
                ))

        sorted_amounts = sorted(amounts)
        q1 = stats.percentile(sorted_amounts, 25)
        q3 = stats.percentile(sorted_amounts, 75)
        iqr = q3 - q1
        lower_bound = q1 - IQR_MULTIPLIER * iqr
        upper_bound = q3 + IQR_MULTIPLIER * iqr

        for transaction in transactions:
            if lower_bound <= transaction.value <= upper_bound or transaction.id in flagged:
                continue

            deviation = transaction.value - mean
            flagged.add(transaction.id)
            anomalies.append(Anomaly(
                id=f"iqr_anomaly_{transaction.id}",
                type=AnomalyType.AMOUNT_ANOMALY,
                severity=Severity.LOW,
                confidence=IQR_CONFIDENCE,
                transaction_id=transaction.id,
                description=f"Transaction outside normal range: ${transaction.value:.2f}",
                data=self._transaction_data(transaction, mean, deviation, _percentage(deviation, mean)),
                explanation="This transaction falls outside the interquartile range (IQR) of normal spending amounts.",
                recommendations=[Recommendation(
                    action="Monitor spending patterns",
                    priority="low",
                    expected_impact="Track if this becomes a recurring pattern"
                )]
            ))

        return anomalies

    def detect_timing_anomalies(self, transactions: List[TransactionSample]) -> List[Anomaly]:
        anomalies: List[Anomaly] = []

        buckets: Dict[str, List[TransactionSample]] = {}
        for transaction in transactions:
            key = f"{WEEKDAY_NAMES[transaction.date.weekday()]}_{transaction.date.hour}"
            buckets.setdefault(key, []).append(transaction)

        for key, bucket in buckets.items():
            if len(bucket) < TIMING_MIN_SAMPLES:
                continue

            amounts = [t.value for t in bucket]
            mean = stats.mean(amounts)
            std = stats.std_dev(amounts)
            if std == 0:
                continue

            day, hour = key.split("_")
            for transaction in bucket:
                z_score = abs(transaction.value - mean) / std
                if z_score <= TIMING_Z_THRESHOLD:
                    continue

                deviation = transaction.value - mean
                anomalies.append(Anomaly(
                    id=f"timing_anomaly_{transaction.id}",
                    type=AnomalyType.TIMING_ANOMALY,
                    severity=Severity.HIGH if z_score > 3 else Severity.MEDIUM,
                    confidence=min(0.9, z_score / 4),
                    transaction_id=transaction.id,
                    description=f"Unusual spending for {day} at {hour}:00 - ${transaction.value:.2f}",
                    data=self._transaction_data(transaction, mean, deviation, _percentage(deviation, mean)),
                    explanation=(
                        f"This transaction amount is unusually high for {day} at {hour}:00 "
                        "compared to historical patterns."
                    ),
                    recommendations=[Recommendation(
                        action="Review spending habits",
                        priority="medium",
                        expected_impact="Identify if this timing pattern is intentional or accidental"
                    )]
                ))

        return anomalies

    async def detect_category_anomalies(
        self,
        transactions: List[TransactionSample],
        query: PredictiveQuery
    ) -> List[Anomaly]:
        anomalies: List[Anomaly] = []

        baseline = await self.loader.load_transactions(
            user_id=query.user_id,
            date_from=query.end_date - timedelta(days=self.settings.category_baseline_days),
            date_to=query.end_date,
            transaction_type=TransactionType.EXPENSE,
            end_inclusive=True,
            query=query
        )

        current_groups = self.loader.group_by_category(transactions)
        baseline_groups = self.loader.group_by_category(baseline)

        for category_id, current in current_groups.items():
            historical = baseline_groups.get(category_id)
            if historical is None or historical.count < CATEGORY_MIN_BASELINE:
                continue

            expected = historical.amount / historical.count * current.count
            if expected == 0:
                continue

            deviation = current.amount - expected
            deviation_pct = deviation / expected * 100
            if abs(deviation_pct) <= CATEGORY_DEVIATION_THRESHOLD:
                continue

            severe = abs(deviation_pct) > 100
            anomalies.append(Anomaly(
                id=f"category_anomaly_{category_id}",
                type=AnomalyType.UNUSUAL_CATEGORY,
                severity=Severity.HIGH if severe else Severity.MEDIUM,
                confidence=min(0.9, abs(deviation_pct) / 200),
                description=(
                    f"Unusual spending in category: {current.category_name} - ${current.amount:.2f} "
                    f"({_signed(deviation_pct)}% from expected)"
                ),
                data=AnomalyData(
                    expected_value=expected,
                    actual_value=current.amount,
                    deviation=deviation,
                    deviation_percentage=deviation_pct,
                    category_id=category_id,
                    category_name=current.category_name,
                    date=query.end_date
                ),
                explanation=(
                    f"Spending in this category is {abs(deviation_pct):.1f}% "
                    f"{'higher' if deviation > 0 else 'lower'} than expected based on historical patterns."
                ),
                recommendations=[Recommendation(
                    action="Review category spending",
                    priority="high" if severe else "medium",
                    expected_impact="Identify if this is a temporary spike or a new spending pattern"
                )]
            ))

        return anomalies

    def detect_pattern_anomalies(self, transactions: List[TransactionSample]) -> List[Anomaly]:
        anomalies: List[Anomaly] = []
        ordered = sorted(transactions, key=lambda t: t.date)
        amounts = [t.value for t in ordered]
        if len(amounts) < SPIKE_MIN_TRANSACTIONS:
            return anomalies

        mean = stats.mean(amounts)
        std = stats.std_dev(amounts)
        if std == 0:
            return anomalies
        threshold = mean + SPIKE_SIGMA * std

        runs = []
        start: Optional[int] = None
        for index, amount in enumerate(amounts):
            if amount > threshold:
                if start is None:
                    start = index
            elif start is not None:
                runs.append((start, index))
                start = None
        if start is not None:
            runs.append((start, len(amounts)))

        for begin, end in runs:
            run_length = end - begin
            if run_length < SPIKE_MIN_RUN:
                continue

            spike = ordered[begin:end]
            total = sum(t.value for t in spike)
            expected = mean * run_length
            if run_length >= 5:
                severity = Severity.CRITICAL
            elif run_length >= 4:
                severity = Severity.HIGH
            else:
                severity = Severity.MEDIUM

            anomalies.append(Anomaly(
                id=f"spending_spike_{spike[0].id}",
                type=AnomalyType.SPENDING_SPIKE,
                severity=severity,
                confidence=min(0.95, run_length / 10),
                description=(
                    f"Spending spike detected: {run_length} consecutive high-amount transactions "
                    f"totaling ${total:.2f}"
                ),
                data=AnomalyData(
                    expected_value=expected,
                    actual_value=total,
                    deviation=total - expected,
                    deviation_percentage=_percentage(total - expected, expected),
                    category_name="Multiple Categories",
                    date=spike[0].date
                ),
                explanation=f"Detected {run_length} consecutive transactions significantly above average spending.",
                recommendations=[Recommendation(
                    action="Review recent spending patterns",
                    priority="high" if run_length >= 5 else "medium",
                    expected_impact="Identify the cause of the spending spike and take corrective action if needed"
                )]
            ))

        return anomalies

    @staticmethod
    def summarize(anomalies: List[Anomaly]) -> AnomalySummary:
        if not anomalies:
            return AnomalySummary()

        counts = {severity: 0 for severity in Severity}
        for anomaly in anomalies:
            counts[Severity(anomaly.severity)] += 1
        average_confidence = sum(a.confidence for a in anomalies) / len(anomalies)

        return AnomalySummary(
            total_anomalies=len(anomalies),
            critical_anomalies=counts[Severity.CRITICAL],
            high_severity_anomalies=counts[Severity.HIGH],
            medium_severity_anomalies=counts[Severity.MEDIUM],
            low_severity_anomalies=counts[Severity.LOW],
            average_confidence=stats.round_money(average_confidence),
            detection_accuracy=DETECTION_ACCURACY
        )

    @staticmethod
    def _transaction_data(
        transaction: TransactionSample,
        expected: float,
        deviation: float,
        deviation_pct: float
    ) -> AnomalyData:
        return AnomalyData(
            expected_value=expected,
            actual_value=transaction.value,
            deviation=deviation,
            deviation_percentage=deviation_pct,
            category_id=transaction.category_id,
            category_name=transaction.category_name or "Unknown",
            date=transaction.date
        )

    @staticmethod
    def _empty_detection(query: PredictiveQuery) -> AnomalyDetection:
        return AnomalyDetection(
            period=Period(start_date=query.start_date, end_date=query.end_date),
            anomalies=[],
            summary=AnomalySummary(),
            model=DetectionModelInfo(algorithm="hybrid", parameters={}, training_data_size=0)
        )
