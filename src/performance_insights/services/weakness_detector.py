"""Threshold-based weakness classification and ranking."""

from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import Settings
from ..logging_config import get_logger
from ..schemas.analytics import MetricsSnapshot
from ..schemas.weakness import (
    IMPACT_RANK,
    SEVERITY_SCORE,
    ActionPlan,
    AnalysisOptions,
    ChapterWeakness,
    Impact,
    PriorityArea,
    ProgressTrackingPlan,
    Severity,
    SubjectBreakdown,
    Urgency,
    Weakness,
    WeaknessCategory,
    WeaknessReport,
    WeaknessType,
)
from ..utils.exceptions import InsufficientDataException
from ..utils.statistics import coefficient_of_variation
from .metrics_calculator import MetricsCalculator
from .record_store import RecordSet
from .weakness_analyzers import (
    CategoryAnalyzer,
    LearningPatternAnalyzer,
    default_analyzers,
    group_by_subject,
    study_day_gaps,
)

logger = get_logger(__name__)

TIMELINE_BY_SEVERITY = {
    Severity.CRITICAL: "1-2 weeks",
    Severity.HIGH: "2-4 weeks",
    Severity.MEDIUM: "4-6 weeks",
    Severity.LOW: "6-8 weeks",
}

ACTION_PLAN_TEMPLATES: Dict[WeaknessType, Dict[str, List[str]]] = {
    WeaknessType.ACCURACY: {
        "immediate": ["Review every incorrect answer from recent assessments",
                      "Re-read the concepts behind repeated mistakes"],
        "short_term": ["Practice 20 targeted questions daily in weak topics",
                       "Keep an error log and revisit it weekly"],
        "long_term": ["Reach the accuracy target across all subjects"],
        "resources": ["Topic-wise question banks", "Concept summary notes"],
    },
    WeaknessType.CONSISTENCY: {
        "immediate": ["Fix a daily study slot and protect it"],
        "short_term": ["Take assessments at a steady weekly cadence",
                       "Mix easy and hard questions in every practice set"],
        "long_term": ["Keep results within a narrow band across assessments"],
        "resources": ["Study planner", "Weekly review checklist"],
    },
    WeaknessType.SPEED: {
        "immediate": ["Attempt timed question sets with a per-question limit"],
        "short_term": ["Learn shortcut techniques for frequent question types",
                       "Skip and return to time-consuming questions"],
        "long_term": ["Answer within the target time without losing accuracy"],
        "resources": ["Timed mock tests", "Speed drills"],
    },
    WeaknessType.RETENTION: {
        "immediate": ["Start spaced reviews of recently studied chapters"],
        "short_term": ["Summarize each chapter in one page after studying it",
                       "Self-test on older chapters every week"],
        "long_term": ["Hold retention above the target over a full revision cycle"],
        "resources": ["Flashcards", "Revision schedule"],
    },
    WeaknessType.DECLINING_PERFORMANCE: {
        "immediate": ["Identify which subjects dropped and why",
                      "Reduce new material until results stabilize"],
        "short_term": ["Rebuild fundamentals in declining subjects"],
        "long_term": ["Return to the previous performance level and keep improving"],
        "resources": ["Past assessment reviews", "Foundational notes"],
    },
    WeaknessType.STUDY_SCHEDULE: {
        "immediate": ["Plan study days for the coming week"],
        "short_term": ["Avoid gaps longer than two days between sessions"],
        "long_term": ["Study on most days of every week"],
        "resources": ["Calendar reminders"],
    },
    WeaknessType.FOCUS_QUALITY: {
        "immediate": ["Remove distractions before each session"],
        "short_term": ["Use 25-minute focus blocks with short breaks"],
        "long_term": ["Sustain focus through full-length sessions"],
        "resources": ["Focus timer"],
    },
    WeaknessType.SUBJECT_IMBALANCE: {
        "immediate": ["Compare time spent per subject this week"],
        "short_term": ["Allocate time in proportion to subject weakness"],
        "long_term": ["Keep every subject in regular rotation"],
        "resources": ["Subject time tracker"],
    },
}

METRIC_FOR_TYPE = {
    WeaknessType.ACCURACY: "overall_accuracy",
    WeaknessType.CONSISTENCY: "consistency_score",
    WeaknessType.SPEED: "average_time_per_question",
    WeaknessType.RETENTION: "retention_rate",
    WeaknessType.DECLINING_PERFORMANCE: "improvement_rate",
    WeaknessType.STUDY_SCHEDULE: "study_consistency",
    WeaknessType.FOCUS_QUALITY: "focus_quality",
    WeaknessType.SUBJECT_IMBALANCE: "subject_time_ratio",
}


def classify_severity(value: float, threshold: float, below: bool = True) -> Severity:
    """Severity from the percentage distance past ``threshold``."""
    if threshold == 0:
        distance = abs(value - threshold)
    elif below:
        distance = (threshold - value) / abs(threshold) * 100
    else:
        distance = (value - threshold) / abs(threshold) * 100

    if distance > 30:
        return Severity.CRITICAL
    if distance > 15:
        return Severity.HIGH
    if distance > 5:
        return Severity.MEDIUM
    return Severity.LOW


def chapter_difficulty(accuracy: float) -> str:
    if accuracy < 50:
        return "very_hard"
    if accuracy < 70:
        return "hard"
    if accuracy < 85:
        return "medium"
    return "easy"


class WeaknessDetector:
    """Applies threshold rules to a MetricsSnapshot and ranks the findings."""

    def __init__(
        self,
        settings: Settings,
        analyzers: Optional[List[CategoryAnalyzer]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        self.analyzers = analyzers if analyzers is not None else default_analyzers(settings)
        self._clock = clock

    def check_data_sufficiency(self, records: RecordSet) -> None:
        """Raise InsufficientDataException when the analysis minimums are unmet."""
        unmet = []
        if len(records.sessions) < self.settings.min_sessions:
            unmet.append(f"at least {self.settings.min_sessions} study sessions")
        if len(records.assessments) < self.settings.min_assessments:
            unmet.append(f"at least {self.settings.min_assessments} assessments")
        if unmet:
            raise InsufficientDataException(
                sessions=len(records.sessions),
                assessments=len(records.assessments),
                unmet=unmet,
            )

    def analyze(
        self,
        records: RecordSet,
        metrics: MetricsSnapshot,
        timeframe: str,
        subject: Optional[str] = None,
        options: Optional[AnalysisOptions] = None,
    ) -> WeaknessReport:
        """Run the rules over ``records``/``metrics`` and build a report."""
        options = options or AnalysisOptions()

        try:
            self.check_data_sufficiency(records)
        except InsufficientDataException as e:
            logger.info("Weakness analysis skipped", reason=e.message, timeframe=timeframe)
            return self.insufficient_data_report(e, timeframe, subject)

        analyses, failed = self.run_category_analyses(records, metrics, options)

        weaknesses = self.detect_primary(metrics, analyses) + self.detect_secondary(records, metrics)
        weaknesses.sort(key=Weakness.sort_key)

        report = WeaknessReport(
            timeframe=timeframe,
            subject=subject,
            weaknesses=weaknesses,
            overall_weakness_score=self.overall_weakness_score(weaknesses),
            priority_areas=self.priority_areas(weaknesses),
            category_analyses=analyses,
            progress_tracking=self.progress_tracking_plan(weaknesses),
            is_partial=bool(failed),
            failed_sections=failed,
            computed_at=self._clock(),
        )

        if options.include_subject_breakdown:
            report.subject_breakdown = self.subject_breakdown(records)
        if options.include_chapter_analysis:
            report.chapter_weaknesses = self.chapter_weaknesses(records)
        if options.include_learning_patterns:
            report.learning_patterns = analyses.get(LearningPatternAnalyzer.name, {})

        logger.info(
            "Weakness analysis completed",
            timeframe=timeframe,
            subject=subject,
            weaknesses=len(weaknesses),
            overall_weakness_score=report.overall_weakness_score,
            partial=report.is_partial,
        )
        return report

    def insufficient_data_report(
        self,
        error: InsufficientDataException,
        timeframe: str,
        subject: Optional[str] = None,
    ) -> WeaknessReport:
        return WeaknessReport(
            timeframe=timeframe,
            subject=subject,
            has_insufficient_data=True,
            message=(
                "Not enough data for a reliable analysis yet. "
                f"Complete {' and '.join(error.details['unmet'])}."
            ),
            minimum_requirements={
                "sessions": self.settings.min_sessions,
                "assessments": self.settings.min_assessments,
            },
            unmet_requirements=error.details["unmet"],
            computed_at=self._clock(),
        )

    def run_category_analyses(
        self,
        records: RecordSet,
        metrics: MetricsSnapshot,
        options: AnalysisOptions,
    ) -> Tuple[Dict[str, Dict[str, Any]], List[str]]:
        analyses: Dict[str, Dict[str, Any]] = {}
        failed: List[str] = []

        for analyzer in self.analyzers:
            if analyzer.name == LearningPatternAnalyzer.name and not options.include_learning_patterns:
                continue
            try:
                analyses[analyzer.name] = analyzer.analyze(records, metrics)
            except Exception as e:
                failed.append(analyzer.name)
                logger.error("Category analysis failed", analyzer=analyzer.name, error=str(e))

        return analyses, failed

    # Rules

    def detect_primary(
        self,
        metrics: MetricsSnapshot,
        analyses: Dict[str, Dict[str, Any]],
    ) -> List[Weakness]:
        thresholds = self.settings.thresholds
        accuracy = analyses.get("accuracy", {})
        consistency = analyses.get("consistency", {})
        speed = analyses.get("speed", {})
        retention = analyses.get("retention", {})
        trend = analyses.get("trend", {})
        weaknesses: List[Weakness] = []

        if metrics.overall_accuracy < thresholds.accuracy:
            causes = []
            if accuracy.get("by_difficulty", {}).get("hard", 100) < thresholds.accuracy:
                causes.append("Difficulty with hard questions")
            if speed.get("rushing"):
                causes.append("Answering too quickly to read questions carefully")
            if metrics.focus_quality < self.settings.secondary_thresholds.focus_quality:
                causes.append("Low focus during study sessions")
            weak_subjects = accuracy.get("weak_subjects", [])
            if weak_subjects:
                causes.append(f"Concept gaps in {', '.join(weak_subjects)}")
            weaknesses.append(Weakness(
                type=WeaknessType.ACCURACY,
                severity=classify_severity(metrics.overall_accuracy, thresholds.accuracy),
                urgency=Urgency.IMMEDIATE,
                impact=Impact.HIGH,
                description=(
                    f"Overall accuracy of {metrics.overall_accuracy:.1f}% is below "
                    f"the {thresholds.accuracy:.0f}% target"
                ),
                current_value=round(metrics.overall_accuracy, 2),
                target_value=thresholds.accuracy,
                affected_areas=weak_subjects,
                root_causes=causes or ["Conceptual gaps in core topics"],
                suggestions=["Review incorrect answers", "Practice targeted question sets"],
            ))

        if metrics.consistency_score < thresholds.consistency:
            causes = []
            if metrics.study_consistency < self.settings.secondary_thresholds.study_consistency:
                causes.append("Irregular study schedule")
            if consistency.get("accuracy_range", 0) > 30:
                causes.append("Large swings between assessment results")
            weaknesses.append(Weakness(
                type=WeaknessType.CONSISTENCY,
                severity=classify_severity(metrics.consistency_score, thresholds.consistency),
                urgency=Urgency.HIGH,
                impact=Impact.HIGH,
                description=f"Performance consistency score of {metrics.consistency_score:.1f} is low",
                current_value=round(metrics.consistency_score, 2),
                target_value=thresholds.consistency,
                affected_areas=consistency.get("inconsistent_subjects", []),
                root_causes=causes or ["Uneven preparation across topics"],
                suggestions=["Study at fixed times", "Take assessments regularly"],
            ))

        if metrics.average_time_per_question > thresholds.response_time:
            causes = []
            if metrics.overall_accuracy >= thresholds.accuracy:
                causes.append("Over-checking answers")
            if speed.get("by_difficulty", {}).get("hard", 0) > thresholds.response_time:
                causes.append("Hard questions take disproportionate time")
            weaknesses.append(Weakness(
                type=WeaknessType.SPEED,
                severity=classify_severity(
                    metrics.average_time_per_question, thresholds.response_time, below=False
                ),
                urgency=Urgency.MEDIUM,
                impact=Impact.MEDIUM,
                description=(
                    f"Average of {metrics.average_time_per_question:.0f}s per question exceeds "
                    f"the {thresholds.response_time:.0f}s limit"
                ),
                current_value=round(metrics.average_time_per_question, 2),
                target_value=thresholds.response_time,
                affected_areas=speed.get("slow_subjects", []),
                root_causes=causes or ["Limited timed practice"],
                suggestions=["Practice with a timer", "Learn shortcut techniques"],
            ))

        if metrics.retention_rate < thresholds.retention_rate:
            forgotten = retention.get("forgotten_chapters", [])
            causes = ["Insufficient revision of earlier topics"]
            if forgotten:
                causes.append("Accuracy dropped on revisited chapters")
            weaknesses.append(Weakness(
                type=WeaknessType.RETENTION,
                severity=classify_severity(metrics.retention_rate, thresholds.retention_rate),
                urgency=Urgency.HIGH,
                impact=Impact.HIGH,
                description=f"Retention rate of {metrics.retention_rate:.1f}% is below target",
                current_value=round(metrics.retention_rate, 2),
                target_value=thresholds.retention_rate,
                affected_areas=forgotten,
                root_causes=causes,
                suggestions=["Use spaced repetition", "Revise older chapters weekly"],
            ))

        if metrics.improvement_rate < thresholds.improvement_rate:
            declining = trend.get("declining_subjects", [])
            causes = []
            if declining:
                causes.append(f"Results dropping in {', '.join(declining)}")
            if metrics.focus_quality < self.settings.secondary_thresholds.focus_quality:
                causes.append("Falling focus quality")
            weaknesses.append(Weakness(
                type=WeaknessType.DECLINING_PERFORMANCE,
                severity=classify_severity(metrics.improvement_rate, thresholds.improvement_rate),
                urgency=Urgency.IMMEDIATE,
                impact=Impact.HIGH,
                description=f"Accuracy changed by {metrics.improvement_rate:.1f}% since the first assessment",
                current_value=round(metrics.improvement_rate, 2),
                target_value=thresholds.improvement_rate,
                affected_areas=declining,
                root_causes=causes or ["Fatigue or reduced revision"],
                suggestions=["Revisit fundamentals", "Reduce new material temporarily"],
            ))

        return weaknesses

    def detect_secondary(self, records: RecordSet, metrics: MetricsSnapshot) -> List[Weakness]:
        secondary = self.settings.secondary_thresholds
        weaknesses: List[Weakness] = []
        if not records.sessions:
            return weaknesses

        gaps = study_day_gaps(records)
        gap_variability = coefficient_of_variation(gaps) if len(gaps) >= 2 else 0.0
        if metrics.study_consistency < secondary.study_consistency or gap_variability > secondary.gap_variability:
            weaknesses.append(Weakness(
                type=WeaknessType.STUDY_SCHEDULE,
                severity=Severity.MEDIUM,
                urgency=Urgency.MEDIUM,
                impact=Impact.MEDIUM,
                description="Study schedule is irregular",
                current_value=round(metrics.study_consistency, 2),
                target_value=secondary.study_consistency,
                root_causes=["Uneven gaps between study days"],
                suggestions=["Plan study days in advance"],
                category=WeaknessCategory.SECONDARY,
            ))

        if metrics.focus_quality < secondary.focus_quality:
            severity = classify_severity(metrics.focus_quality, secondary.focus_quality)
            weaknesses.append(Weakness(
                type=WeaknessType.FOCUS_QUALITY,
                severity=Severity.HIGH if severity == Severity.CRITICAL else severity,
                urgency=Urgency.MEDIUM,
                impact=Impact.MEDIUM,
                description=f"Average focus quality of {metrics.focus_quality:.0f} is low",
                current_value=round(metrics.focus_quality, 2),
                target_value=secondary.focus_target,
                root_causes=["Distractions during sessions"],
                suggestions=["Use focus blocks", "Study in a quiet place"],
                category=WeaknessCategory.SECONDARY,
            ))

        time_by_subject: Dict[str, float] = defaultdict(float)
        for session in records.sessions:
            time_by_subject[session.subject] += session.duration
        positive = {s: t for s, t in time_by_subject.items() if t > 0}
        if len(positive) >= 2:
            ratio = max(positive.values()) / min(positive.values())
            if ratio >= secondary.subject_time_ratio:
                neglected = min(positive, key=positive.get)
                weaknesses.append(Weakness(
                    type=WeaknessType.SUBJECT_IMBALANCE,
                    severity=Severity.LOW,
                    urgency=Urgency.LOW,
                    impact=Impact.LOW,
                    description=f"Study time is unevenly spread; {neglected} gets the least attention",
                    current_value=round(ratio, 2),
                    target_value=secondary.subject_time_ratio,
                    affected_areas=[neglected],
                    root_causes=["Preference for familiar subjects"],
                    suggestions=["Rotate subjects across the week"],
                    category=WeaknessCategory.SECONDARY,
                ))

        return weaknesses

    # Scoring and planning

    @staticmethod
    def overall_weakness_score(weaknesses: List[Weakness]) -> float:
        """Weighted mean severity score; 0 when there are no weaknesses."""
        total_weight = 0.0
        weighted = 0.0
        for weakness in weaknesses:
            weight = (2 if weakness.category == WeaknessCategory.PRIMARY else 1) * IMPACT_RANK[weakness.impact]
            weighted += SEVERITY_SCORE[weakness.severity] * weight
            total_weight += weight
        if total_weight == 0:
            return 0.0
        return round(weighted / total_weight, 2)

    def priority_areas(self, weaknesses: List[Weakness]) -> List[PriorityArea]:
        return [
            PriorityArea(rank=rank, weakness=weakness, action_plan=self.action_plan(weakness))
            for rank, weakness in enumerate(weaknesses[: self.settings.max_priority_areas], start=1)
        ]

    @staticmethod
    def action_plan(weakness: Weakness) -> ActionPlan:
        template = ACTION_PLAN_TEMPLATES[weakness.type]
        immediate = list(template["immediate"])
        if weakness.affected_areas:
            immediate.append(f"Start with {', '.join(weakness.affected_areas[:3])}")
        return ActionPlan(
            immediate_actions=immediate,
            short_term_goals=list(template["short_term"]),
            long_term_goals=list(template["long_term"]),
            resources=list(template["resources"]),
            timeline=TIMELINE_BY_SEVERITY[weakness.severity],
        )

    def subject_breakdown(self, records: RecordSet) -> List[SubjectBreakdown]:
        breakdown = []
        for subject, items in group_by_subject(records.sorted_assessments()).items():
            if len(items) < self.settings.min_assessments_per_subject:
                continue
            accuracy = MetricsCalculator.pooled_accuracy(items)
            breakdown.append(SubjectBreakdown(
                subject=subject,
                accuracy=round(accuracy, 2),
                assessments=len(items),
                average_time_per_question=round(MetricsCalculator.average_time_per_question(items), 2),
                consistency_score=round(MetricsCalculator.consistency_score(items), 2),
                weak=accuracy < self.settings.thresholds.accuracy,
            ))
        return sorted(breakdown, key=lambda b: b.accuracy)

    def chapter_weaknesses(self, records: RecordSet) -> List[ChapterWeakness]:
        chapters = defaultdict(list)
        for assessment in records.assessments:
            if assessment.chapter:
                chapters[(assessment.subject, assessment.chapter)].append(assessment)

        results = []
        for (subject, chapter), items in chapters.items():
            if len(items) < self.settings.chapter_analysis_threshold:
                continue
            accuracy = MetricsCalculator.pooled_accuracy(items)
            if accuracy < self.settings.thresholds.accuracy:
                results.append(ChapterWeakness(
                    subject=subject,
                    chapter=chapter,
                    accuracy=round(accuracy, 2),
                    assessments=len(items),
                    difficulty_level=chapter_difficulty(accuracy),
                ))
        return sorted(results, key=lambda c: c.accuracy)

    @staticmethod
    def progress_tracking_plan(weaknesses: List[Weakness]) -> ProgressTrackingPlan:
        focus = [w.type.value for w in weaknesses[:3]]
        return ProgressTrackingPlan(
            key_metrics=list(dict.fromkeys(METRIC_FOR_TYPE[w.type] for w in weaknesses)),
            checkpoints=[
                {"week": week, "focus": focus, "review": review}
                for week, review in ((1, "baseline check"), (2, "early progress"),
                                     (4, "mid-point review"), (8, "full reassessment"))
            ],
            assessment_schedule=(
                "twice weekly" if any(w.severity == Severity.CRITICAL for w in weaknesses) else "weekly"
            ),
            improvement_targets={w.type.value: w.target_value for w in weaknesses},
        )
