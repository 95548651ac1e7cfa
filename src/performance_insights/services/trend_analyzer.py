"""Interval bucketing, least-squares trends and comparative analysis."""

import math
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..config import Settings
from ..logging_config import get_logger
from ..schemas.analytics import (
    ComparativeAnalysis,
    MetricsSnapshot,
    PeriodComparison,
    SubjectComparison,
    TrendAnalysis,
    TrendDataPoint,
    TrendDirection,
    TrendInterpretation,
)
from ..utils.statistics import linear_trend, mean
from .metrics_calculator import MetricsCalculator
from .record_store import RecordSet

logger = get_logger(__name__)


class TrendAnalyzer:
    """Fits linear trends to per-interval aggregates of a period."""

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = datetime.now):
        self.settings = settings
        self._clock = clock

    @staticmethod
    def interval_days(period_days: int) -> int:
        return max(1, period_days // 10)

    def analyze(
        self,
        records: RecordSet,
        period: str,
        subject: Optional[str] = None,
    ) -> TrendAnalysis:
        """Bucket ``records`` over the period and compute slopes per metric."""
        period_days = self.settings.window_days(period)
        interval = self.interval_days(period_days)
        data_points = self.bucket(records, period_days, interval)

        trends = {
            "accuracy": linear_trend([p.accuracy for p in data_points if p.assessment_count]),
            "study_time": linear_trend([p.study_time for p in data_points]),
            "focus_quality": linear_trend([p.focus_quality for p in data_points if p.session_count]),
            "response_speed": linear_trend([p.response_speed for p in data_points if p.response_speed > 0]),
        }

        return TrendAnalysis(
            period=period,
            subject=subject,
            interval_days=interval,
            data_points=data_points,
            trends=trends,
            interpretations=self.interpret(trends),
            computed_at=self._clock(),
        )

    def bucket(self, records: RecordSet, period_days: int, interval: int) -> List[TrendDataPoint]:
        """Oldest-first data points; intervals without records are skipped."""
        now = self._clock()
        bucket_count = math.ceil(period_days / interval)
        points: List[TrendDataPoint] = []

        for k in reversed(range(bucket_count)):
            end = now - timedelta(days=k * interval)
            start = end - timedelta(days=interval)
            bucket = records.between(start, end)
            if bucket.is_empty:
                continue

            speeds = [a.questions_per_minute for a in bucket.assessments if a.questions_per_minute > 0]
            points.append(TrendDataPoint(
                date=end,
                accuracy=MetricsCalculator.pooled_accuracy(bucket.assessments),
                study_time=sum(s.duration for s in bucket.sessions) / 3600,
                focus_quality=mean([s.focus_quality for s in bucket.sessions]),
                response_speed=mean(speeds),
                session_count=len(bucket.sessions),
                assessment_count=len(bucket.assessments),
            ))

        return points

    @staticmethod
    def interpret(trends: Dict[str, float]) -> List[TrendInterpretation]:
        interpretations: List[TrendInterpretation] = []

        accuracy = trends.get("accuracy", 0.0)
        if accuracy > 1:
            interpretations.append(TrendInterpretation(
                metric="accuracy", direction=TrendDirection.IMPROVING, strength="strong",
                slope=accuracy, message="Your accuracy is improving steadily"))
        elif accuracy < -1:
            interpretations.append(TrendInterpretation(
                metric="accuracy", direction=TrendDirection.DECLINING, strength="concerning",
                slope=accuracy, message="Your accuracy has been declining"))

        study_time = trends.get("study_time", 0.0)
        if study_time > 0.1:
            interpretations.append(TrendInterpretation(
                metric="study_time", direction=TrendDirection.INCREASING, strength="moderate",
                slope=study_time, message="You are studying more over time"))
        elif study_time < -0.1:
            interpretations.append(TrendInterpretation(
                metric="study_time", direction=TrendDirection.DECREASING, strength="concerning",
                slope=study_time, message="Your study time is decreasing"))

        focus = trends.get("focus_quality", 0.0)
        if focus > 0.5:
            interpretations.append(TrendInterpretation(
                metric="focus_quality", direction=TrendDirection.IMPROVING, strength="moderate",
                slope=focus, message="Your focus during sessions is improving"))
        elif focus < -0.5:
            interpretations.append(TrendInterpretation(
                metric="focus_quality", direction=TrendDirection.DECLINING, strength="concerning",
                slope=focus, message="Your focus during sessions is slipping"))

        speed = trends.get("response_speed", 0.0)
        if speed > 0.1:
            interpretations.append(TrendInterpretation(
                metric="response_speed", direction=TrendDirection.IMPROVING, strength="moderate",
                slope=speed, message="You are answering questions faster"))
        elif speed < -0.1:
            interpretations.append(TrendInterpretation(
                metric="response_speed", direction=TrendDirection.DECLINING, strength="moderate",
                slope=speed, message="You are answering questions more slowly"))

        return interpretations

    # Comparative analysis

    @staticmethod
    def compare_periods(snapshots: Dict[str, MetricsSnapshot]) -> ComparativeAnalysis:
        """Compare snapshots of consecutive periods (ordered as given)."""
        comparisons = [
            PeriodComparison(
                period=period,
                accuracy=round(s.overall_accuracy, 2),
                study_time=round(s.total_study_time, 2),
                composite_score=s.composite_score,
                sessions=s.data_points.sessions,
                assessments=s.data_points.assessments,
            )
            for period, s in snapshots.items()
        ]

        insights = []
        for previous, current in zip(comparisons, comparisons[1:]):
            accuracy_diff = previous.accuracy - current.accuracy
            if abs(accuracy_diff) > 5:
                direction = "higher" if accuracy_diff > 0 else "lower"
                insights.append(
                    f"Accuracy over the {previous.period} window is {abs(accuracy_diff):.1f}% "
                    f"{direction} than over the {current.period} window"
                )
            time_diff = current.study_time - previous.study_time
            if abs(time_diff) > 5:
                insights.append(
                    f"Study time differs by {abs(time_diff):.1f} hours between the "
                    f"{previous.period} and {current.period} windows"
                )

        return ComparativeAnalysis(periods=comparisons, insights=insights)

    @staticmethod
    def compare_subjects(records: RecordSet, subjects: List[str]) -> ComparativeAnalysis:
        comparisons = []
        for subject in subjects:
            subset = records.for_subject(subject)
            if subset.is_empty:
                continue
            comparisons.append(SubjectComparison(
                subject=subject,
                accuracy=round(MetricsCalculator.pooled_accuracy(subset.assessments), 2),
                study_time=round(sum(s.duration for s in subset.sessions) / 3600, 2),
                assessments=len(subset.assessments),
            ))

        insights = []
        scored = [c for c in comparisons if c.assessments]
        if len(scored) >= 2:
            best = max(scored, key=lambda c: c.accuracy)
            worst = min(scored, key=lambda c: c.accuracy)
            insights.append(f"Strongest subject: {best.subject} ({best.accuracy:.1f}% accuracy)")
            insights.append(f"Weakest subject: {worst.subject} ({worst.accuracy:.1f}% accuracy)")
            if best.accuracy - worst.accuracy > 15:
                insights.append(f"Consider shifting study time from {best.subject} to {worst.subject}")

        return ComparativeAnalysis(subjects=comparisons, insights=insights)
