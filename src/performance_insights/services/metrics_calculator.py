"""Deterministic performance metrics for a timeframe window."""

from datetime import datetime
from typing import Callable, List, Optional

from ..config import Settings
from ..logging_config import get_logger
from ..schemas.analytics import AreaAssessment, DataPointCounts, Grade, MetricsSnapshot
from ..schemas.records import AssessmentRecord, SessionRecord
from ..utils.exceptions import ComputationException
from ..utils.statistics import (
    all_finite,
    clamp,
    half_split_delta,
    mean,
    population_std_dev,
    round_half_up,
)
from .record_store import RecordSet

logger = get_logger(__name__)


class MetricsCalculator:
    """Computes a MetricsSnapshot from an already windowed RecordSet."""

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = datetime.now):
        self.settings = settings
        self._clock = clock

    def calculate(
        self,
        records: RecordSet,
        timeframe: str,
        subject: Optional[str] = None,
        retention_rate: float = 0.0,
    ) -> MetricsSnapshot:
        """Build a snapshot. Raises ComputationException on non-finite output."""
        window_days = self.settings.window_days(timeframe)
        sessions = records.sorted_sessions()
        assessments = records.sorted_assessments()

        overall_accuracy = self.pooled_accuracy(assessments)
        consistency_score = self.consistency_score(assessments)
        response_speed = self.response_speed(assessments)
        retention = clamp(retention_rate)

        snapshot = MetricsSnapshot(
            timeframe=timeframe,
            subject=subject,
            window_days=window_days,
            total_study_time=sum(s.duration for s in sessions) / 3600,
            average_session_duration=mean([s.duration for s in sessions]) / 60,
            study_consistency=self.study_consistency(sessions, window_days),
            focus_quality=mean([s.focus_quality for s in sessions]) if sessions else 100.0,
            overall_accuracy=overall_accuracy,
            accuracy_trend=self.accuracy_trend(assessments),
            response_speed=response_speed,
            speed_trend=half_split_delta(self._speeds(assessments)),
            average_time_per_question=self.average_time_per_question(assessments),
            improvement_rate=self.improvement_rate(assessments),
            consistency_score=consistency_score,
            retention_rate=retention,
            data_points=DataPointCounts(sessions=len(sessions), assessments=len(assessments)),
            computed_at=self._clock(),
        )

        self._ensure_finite(snapshot)
        composite = self.composite_score(overall_accuracy, consistency_score, response_speed, retention)
        snapshot.composite_score = composite
        snapshot.grade = self.grade(composite)
        snapshot.strength_areas, snapshot.improvement_areas = self.assess_areas(snapshot)

        logger.debug(
            "Metrics calculated",
            timeframe=timeframe,
            subject=subject,
            sessions=len(sessions),
            assessments=len(assessments),
            composite_score=composite,
        )
        return snapshot

    # Individual metrics

    @staticmethod
    def pooled_accuracy(assessments: List[AssessmentRecord]) -> float:
        total = sum(a.total_questions for a in assessments)
        if total <= 0:
            return 0.0
        return sum(a.correct_answers for a in assessments) / total * 100

    def study_consistency(self, sessions: List[SessionRecord], window_days: int) -> float:
        """Percent of days studied between the first study day in the window and today."""
        days = sorted({s.timestamp.date() for s in sessions})
        if not days:
            return 0.0
        span_days = min(window_days, (self._clock().date() - days[0]).days + 1)
        return min(100.0, len(days) / max(span_days, 1) * 100)

    def accuracy_trend(self, assessments: List[AssessmentRecord]) -> float:
        """Accuracy of the later half minus accuracy of the earlier half."""
        if len(assessments) < 2:
            return 0.0
        midpoint = len(assessments) // 2
        return self.pooled_accuracy(assessments[midpoint:]) - self.pooled_accuracy(assessments[:midpoint])

    @staticmethod
    def _speeds(assessments: List[AssessmentRecord]) -> List[float]:
        return [a.questions_per_minute for a in assessments if a.questions_per_minute > 0]

    def response_speed(self, assessments: List[AssessmentRecord]) -> float:
        """Mean questions per minute."""
        return mean(self._speeds(assessments))

    @staticmethod
    def average_time_per_question(assessments: List[AssessmentRecord]) -> float:
        total = sum(a.total_questions for a in assessments)
        if total <= 0:
            return 0.0
        return sum(a.time_spent for a in assessments) / total

    @staticmethod
    def improvement_rate(assessments: List[AssessmentRecord]) -> float:
        if len(assessments) < 2:
            return 0.0
        first, last = assessments[0].accuracy, assessments[-1].accuracy
        if first == 0:
            return 0.0
        return (last - first) / first * 100

    @staticmethod
    def consistency_score(assessments: List[AssessmentRecord]) -> float:
        """100 minus the scaled spread of accuracies; 100 below three assessments."""
        if len(assessments) < 3:
            return 100.0
        deviation = population_std_dev([a.accuracy for a in assessments])
        return 100 - min(100.0, deviation / 50 * 100)

    def composite_score(
        self,
        accuracy: float,
        consistency: float,
        speed: float,
        retention: float,
    ) -> int:
        weights = self.settings.weights
        score = (
            clamp(accuracy) * weights.accuracy
            + clamp(consistency) * weights.consistency
            + min(100.0, max(0.0, speed) / 2 * 100) * weights.speed
            + clamp(retention) * weights.retention
        )
        return int(clamp(round_half_up(score)))

    def grade(self, composite_score: float) -> Grade:
        benchmarks = self.settings.benchmarks
        if composite_score >= benchmarks.excellent:
            return Grade.A
        if composite_score >= benchmarks.good:
            return Grade.B
        if composite_score >= benchmarks.average:
            return Grade.C
        if composite_score >= benchmarks.below_average:
            return Grade.D
        return Grade.F

    def assess_areas(self, snapshot: MetricsSnapshot):
        """Split the snapshot into strength and improvement areas."""
        strengths: List[AreaAssessment] = []
        improvements: List[AreaAssessment] = []

        def classify(area, score, strong_at, weak_below, strong_text, weak_text):
            if score >= strong_at:
                strengths.append(AreaAssessment(area=area, score=round(score, 2), level="strong", description=strong_text))
            elif score < weak_below:
                improvements.append(AreaAssessment(area=area, score=round(score, 2), level="needs_work", description=weak_text))

        if snapshot.data_points.assessments:
            classify("accuracy", snapshot.overall_accuracy, 80, 60,
                     "High accuracy in answering questions",
                     "Accuracy needs improvement")
            classify("consistency", snapshot.consistency_score, 80, 60,
                     "Steady results across assessments",
                     "Results vary widely between assessments")
        if snapshot.data_points.sessions:
            classify("study_habits", snapshot.study_consistency, 70, 40,
                     "Studies regularly",
                     "Study days are irregular")
            classify("focus", snapshot.focus_quality, 85, 70,
                     "Maintains good focus during sessions",
                     "Focus during sessions could be improved")
        if snapshot.data_points.assessments >= 2:
            if snapshot.accuracy_trend > 5:
                strengths.append(AreaAssessment(
                    area="learning_progress", score=round(snapshot.accuracy_trend, 2),
                    level="strong", description="Accuracy is improving"))
            elif snapshot.accuracy_trend < -5:
                improvements.append(AreaAssessment(
                    area="learning_progress", score=round(snapshot.accuracy_trend, 2),
                    level="needs_work", description="Accuracy is declining"))

        return strengths, improvements

    @staticmethod
    def _ensure_finite(snapshot: MetricsSnapshot) -> None:
        values = [
            snapshot.total_study_time,
            snapshot.average_session_duration,
            snapshot.study_consistency,
            snapshot.focus_quality,
            snapshot.overall_accuracy,
            snapshot.accuracy_trend,
            snapshot.response_speed,
            snapshot.speed_trend,
            snapshot.average_time_per_question,
            snapshot.improvement_rate,
            snapshot.consistency_score,
            snapshot.retention_rate,
        ]
        if not all_finite(values):
            raise ComputationException("calculate_metrics", "non-finite metric value")
