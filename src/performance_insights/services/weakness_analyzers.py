"""Per-category breakdowns that feed weakness reports.

Analyzers run independently. The detector records a failing analyzer under
the report's ``failed_sections`` and keeps the rest.
"""

import abc
from collections import defaultdict
from typing import Any, Dict, List, Tuple

from ..config import Settings
from ..schemas.analytics import MetricsSnapshot
from ..schemas.records import AssessmentRecord
from ..utils.statistics import coefficient_of_variation, mean, population_std_dev
from .metrics_calculator import MetricsCalculator
from .record_store import RecordSet


def group_by_subject(assessments: List[AssessmentRecord]) -> Dict[str, List[AssessmentRecord]]:
    groups: Dict[str, List[AssessmentRecord]] = defaultdict(list)
    for assessment in assessments:
        groups[assessment.subject].append(assessment)
    return dict(groups)


def study_day_gaps(records: RecordSet) -> List[int]:
    """Days between consecutive distinct study days."""
    days = sorted({s.timestamp.date() for s in records.sessions})
    return [(later - earlier).days for earlier, later in zip(days, days[1:])]


class CategoryAnalyzer(abc.ABC):
    """Base class for category sub-analyzers."""

    name: str = "category"

    def __init__(self, settings: Settings):
        self.settings = settings

    @abc.abstractmethod
    def analyze(self, records: RecordSet, metrics: MetricsSnapshot) -> Dict[str, Any]:
        pass


class AccuracyAnalyzer(CategoryAnalyzer):
    name = "accuracy"

    def analyze(self, records: RecordSet, metrics: MetricsSnapshot) -> Dict[str, Any]:
        threshold = self.settings.thresholds.accuracy
        by_subject = {
            subject: round(MetricsCalculator.pooled_accuracy(items), 2)
            for subject, items in group_by_subject(records.assessments).items()
        }

        by_difficulty: Dict[str, float] = {}
        for level in ("easy", "medium", "hard"):
            items = [a for a in records.assessments if a.difficulty.value == level]
            if items:
                by_difficulty[level] = round(MetricsCalculator.pooled_accuracy(items), 2)

        return {
            "overall": round(metrics.overall_accuracy, 2),
            "by_subject": by_subject,
            "by_difficulty": by_difficulty,
            "weak_subjects": sorted(s for s, acc in by_subject.items() if acc < threshold),
        }


class ConsistencyAnalyzer(CategoryAnalyzer):
    name = "consistency"

    def analyze(self, records: RecordSet, metrics: MetricsSnapshot) -> Dict[str, Any]:
        accuracies = [a.accuracy for a in records.sorted_assessments()]
        gaps = study_day_gaps(records)
        by_subject = {
            subject: round(MetricsCalculator.consistency_score(items), 2)
            for subject, items in group_by_subject(records.sorted_assessments()).items()
        }
        return {
            "score": round(metrics.consistency_score, 2),
            "accuracy_std_dev": round(population_std_dev(accuracies), 2),
            "accuracy_range": round(max(accuracies) - min(accuracies), 2) if accuracies else 0.0,
            "study_consistency": round(metrics.study_consistency, 2),
            "average_gap_days": round(mean(gaps), 2),
            "longest_gap_days": max(gaps) if gaps else 0,
            "gap_variability": round(coefficient_of_variation(gaps), 3),
            "by_subject": by_subject,
            "inconsistent_subjects": sorted(
                s for s, score in by_subject.items() if score < self.settings.thresholds.consistency
            ),
        }


class SpeedAnalyzer(CategoryAnalyzer):
    name = "speed"

    def analyze(self, records: RecordSet, metrics: MetricsSnapshot) -> Dict[str, Any]:
        limit = self.settings.thresholds.response_time
        by_subject = {
            subject: round(MetricsCalculator.average_time_per_question(items), 2)
            for subject, items in group_by_subject(records.assessments).items()
        }
        by_difficulty = {}
        for level in ("easy", "medium", "hard"):
            items = [a for a in records.assessments if a.difficulty.value == level]
            if items:
                by_difficulty[level] = round(MetricsCalculator.average_time_per_question(items), 2)

        seconds_per_question = metrics.average_time_per_question
        return {
            "average_time_per_question": round(seconds_per_question, 2),
            "questions_per_minute": round(metrics.response_speed, 3),
            "by_subject": by_subject,
            "by_difficulty": by_difficulty,
            "slow_subjects": sorted(s for s, t in by_subject.items() if t > limit),
            "rushing": 0 < seconds_per_question < 30
            and metrics.overall_accuracy < self.settings.thresholds.accuracy,
        }


class RetentionAnalyzer(CategoryAnalyzer):
    name = "retention"

    def analyze(self, records: RecordSet, metrics: MetricsSnapshot) -> Dict[str, Any]:
        attempts: Dict[Tuple[str, str], List[AssessmentRecord]] = defaultdict(list)
        for assessment in records.sorted_assessments():
            if assessment.chapter:
                attempts[(assessment.subject, assessment.chapter)].append(assessment)

        revisits = {}
        for (subject, chapter), items in attempts.items():
            if len(items) >= 2:
                revisits[f"{subject}: {chapter}"] = round(items[-1].accuracy - items[0].accuracy, 2)

        return {
            "retention_rate": round(metrics.retention_rate, 2),
            "revisited_chapters": len(revisits),
            "revisit_change": revisits,
            "forgotten_chapters": sorted(name for name, change in revisits.items() if change < -10),
        }


class LearningPatternAnalyzer(CategoryAnalyzer):
    name = "learning_pattern"

    @staticmethod
    def time_of_day(hour: int) -> str:
        if 5 <= hour < 12:
            return "morning"
        if 12 <= hour < 17:
            return "afternoon"
        if 17 <= hour < 21:
            return "evening"
        return "night"

    def analyze(self, records: RecordSet, metrics: MetricsSnapshot) -> Dict[str, Any]:
        slots: Dict[str, List[AssessmentRecord]] = defaultdict(list)
        for assessment in records.assessments:
            slots[self.time_of_day(assessment.timestamp.hour)].append(assessment)
        accuracy_by_time = {
            slot: round(MetricsCalculator.pooled_accuracy(items), 2) for slot, items in slots.items()
        }

        lengths = {"short": [], "medium": [], "long": []}
        for session in records.sessions:
            minutes = session.duration / 60
            bucket = "short" if minutes < 30 else "long" if minutes > 60 else "medium"
            lengths[bucket].append(session.focus_quality)

        session_types: Dict[str, int] = defaultdict(int)
        for session in records.sessions:
            session_types[session.type] += 1

        return {
            "accuracy_by_time_of_day": accuracy_by_time,
            "best_time_of_day": max(accuracy_by_time, key=accuracy_by_time.get) if accuracy_by_time else None,
            "focus_by_session_length": {k: round(mean(v), 2) for k, v in lengths.items() if v},
            "session_types": dict(session_types),
            "average_session_minutes": round(metrics.average_session_duration, 2),
        }


class TrendWeaknessAnalyzer(CategoryAnalyzer):
    name = "trend"

    def analyze(self, records: RecordSet, metrics: MetricsSnapshot) -> Dict[str, Any]:
        subject_trends = {}
        for subject, items in group_by_subject(records.sorted_assessments()).items():
            if len(items) >= 2:
                midpoint = len(items) // 2
                subject_trends[subject] = round(
                    MetricsCalculator.pooled_accuracy(items[midpoint:])
                    - MetricsCalculator.pooled_accuracy(items[:midpoint]),
                    2,
                )
        return {
            "accuracy_trend": round(metrics.accuracy_trend, 2),
            "speed_trend": round(metrics.speed_trend, 3),
            "improvement_rate": round(metrics.improvement_rate, 2),
            "by_subject": subject_trends,
            "declining_subjects": sorted(s for s, delta in subject_trends.items() if delta < -5),
        }


def default_analyzers(settings: Settings) -> List[CategoryAnalyzer]:
    return [
        AccuracyAnalyzer(settings),
        ConsistencyAnalyzer(settings),
        SpeedAnalyzer(settings),
        RetentionAnalyzer(settings),
        LearningPatternAnalyzer(settings),
        TrendWeaknessAnalyzer(settings),
    ]
