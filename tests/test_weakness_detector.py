"""Tests for weakness detection rules, ranking and reporting."""

import pytest

from performance_insights.config import Settings
from performance_insights.schemas.analytics import MetricsSnapshot
from performance_insights.schemas.weakness import (
    AnalysisOptions,
    Impact,
    Severity,
    Urgency,
    Weakness,
    WeaknessCategory,
    WeaknessType,
)
from performance_insights.services.metrics_calculator import MetricsCalculator
from performance_insights.services.record_store import RecordSet
from performance_insights.services.weakness_analyzers import CategoryAnalyzer, default_analyzers
from performance_insights.services.weakness_detector import (
    WeaknessDetector,
    chapter_difficulty,
    classify_severity,
)

from conftest import make_assessment, make_session


def healthy_metrics(**overrides) -> MetricsSnapshot:
    values = dict(
        timeframe="weekly",
        window_days=7,
        study_consistency=100.0,
        focus_quality=90.0,
        overall_accuracy=85.0,
        average_time_per_question=30.0,
        response_speed=2.0,
        improvement_rate=0.0,
        consistency_score=95.0,
        retention_rate=90.0,
    )
    values.update(overrides)
    return MetricsSnapshot(**values)


def sufficient_records() -> RecordSet:
    return RecordSet(
        sessions=[make_session(days_ago=d) for d in range(5)],
        assessments=[make_assessment(days_ago=d, correct=9) for d in range(3)],
    )


def weakness(type_=WeaknessType.ACCURACY, severity=Severity.LOW, urgency=Urgency.LOW,
             impact=Impact.LOW, category=WeaknessCategory.PRIMARY) -> Weakness:
    return Weakness(
        type=type_, severity=severity, urgency=urgency, impact=impact,
        description="test", current_value=0, target_value=0, category=category,
    )


class ExplodingAnalyzer(CategoryAnalyzer):
    name = "exploding"

    def __init__(self, settings):
        super().__init__(settings)
        self.calls = 0

    def analyze(self, records, metrics):
        self.calls += 1
        raise RuntimeError("analyzer bug")


class TestSeverity:
    """Test severity classification from threshold distance."""

    @pytest.mark.parametrize("value,threshold,expected", [
        (45, 70, Severity.CRITICAL),
        (59, 70, Severity.HIGH),
        (65, 70, Severity.MEDIUM),
        (68, 70, Severity.LOW),
        (69.9, 70, Severity.LOW),
    ])
    def test_below_threshold(self, value, threshold, expected):
        assert classify_severity(value, threshold) == expected

    @pytest.mark.parametrize("value,expected", [(200, Severity.CRITICAL), (130, Severity.MEDIUM), (125, Severity.LOW)])
    def test_above_threshold(self, value, expected):
        assert classify_severity(value, 120, below=False) == expected

    @pytest.mark.parametrize("value,expected", [(-10, Severity.CRITICAL), (-5.5, Severity.MEDIUM), (-5.1, Severity.LOW)])
    def test_negative_threshold(self, value, expected):
        """Distance is relative to the threshold's magnitude."""
        assert classify_severity(value, -5) == expected

    @pytest.mark.parametrize("accuracy,level", [(40, "very_hard"), (60, "hard"), (80, "medium"), (90, "easy")])
    def test_chapter_difficulty(self, accuracy, level):
        assert chapter_difficulty(accuracy) == level


class TestWeaknessDetector:
    """Test weakness analysis runs."""

    @pytest.fixture
    def detector(self, clock):
        return WeaknessDetector(Settings(), clock=clock)

    def test_insufficient_data_gate(self, clock):
        """Four sessions is not enough; no rule or analyzer runs."""
        settings = Settings()
        exploding = ExplodingAnalyzer(settings)
        detector = WeaknessDetector(settings, analyzers=[exploding], clock=clock)
        records = RecordSet(
            sessions=[make_session(days_ago=d) for d in range(4)],
            assessments=[make_assessment(days_ago=d, correct=2) for d in range(3)],
        )

        report = detector.analyze(records, healthy_metrics(overall_accuracy=20), "weekly")

        assert report.has_insufficient_data is True
        assert report.weaknesses == []
        assert report.unmet_requirements == ["at least 5 study sessions"]
        assert report.minimum_requirements == {"sessions": 5, "assessments": 3}
        assert exploding.calls == 0

    def test_insufficient_assessments(self, detector):
        records = RecordSet(sessions=[make_session(days_ago=d) for d in range(5)])
        report = detector.analyze(records, healthy_metrics(), "weekly")

        assert report.has_insufficient_data is True
        assert report.unmet_requirements == ["at least 3 assessments"]

    def test_accuracy_threshold_boundary(self, detector):
        """Exactly 70% is healthy; 69.9% is a low-severity accuracy weakness."""
        records = sufficient_records()

        at_threshold = detector.analyze(records, healthy_metrics(overall_accuracy=70.0), "weekly")
        below = detector.analyze(records, healthy_metrics(overall_accuracy=69.9), "weekly")

        assert at_threshold.weaknesses == []
        assert [w.type for w in below.weaknesses] == [WeaknessType.ACCURACY]
        assert below.weaknesses[0].severity == Severity.LOW
        assert below.weaknesses[0].urgency == Urgency.IMMEDIATE

    def test_all_primary_rules(self, detector):
        metrics = healthy_metrics(
            overall_accuracy=50,
            consistency_score=40,
            average_time_per_question=200,
            retention_rate=30,
            improvement_rate=-20,
        )

        report = detector.analyze(sufficient_records(), metrics, "weekly")

        types = [w.type for w in report.weaknesses]
        assert set(types) == {
            WeaknessType.ACCURACY,
            WeaknessType.CONSISTENCY,
            WeaknessType.SPEED,
            WeaknessType.RETENTION,
            WeaknessType.DECLINING_PERFORMANCE,
        }
        # immediate first, medium-urgency speed last
        assert types[-1] == WeaknessType.SPEED
        assert {types[0], types[1]} == {WeaknessType.ACCURACY, WeaknessType.DECLINING_PERFORMANCE}

    def test_weaknesses_sorted(self, detector):
        report = detector.analyze(
            sufficient_records(),
            healthy_metrics(overall_accuracy=66, retention_rate=10, focus_quality=60),
            "weekly",
        )

        keys = [w.sort_key() for w in report.weaknesses]
        assert keys == sorted(keys)
        assert report.weaknesses[0].type == WeaknessType.ACCURACY

    def test_focus_weakness_capped_at_high(self, detector):
        report = detector.analyze(sufficient_records(), healthy_metrics(focus_quality=30), "weekly")

        focus = next(w for w in report.weaknesses if w.type == WeaknessType.FOCUS_QUALITY)
        assert focus.category == WeaknessCategory.SECONDARY
        assert focus.severity == Severity.HIGH
        assert focus.urgency == Urgency.MEDIUM

    def test_irregular_schedule(self, detector):
        records = RecordSet(
            sessions=[make_session(days_ago=d) for d in (0, 1, 2, 9, 10)],
            assessments=[make_assessment(days_ago=d, correct=9) for d in range(3)],
        )

        report = detector.analyze(records, healthy_metrics(study_consistency=45), "weekly")

        assert WeaknessType.STUDY_SCHEDULE in [w.type for w in report.weaknesses]

    def test_subject_imbalance(self, detector):
        records = RecordSet(
            sessions=[make_session(days_ago=d, subject="Mathematics") for d in range(4)]
            + [make_session(days_ago=4, subject="History")],
            assessments=[make_assessment(days_ago=d, correct=9) for d in range(3)],
        )

        report = detector.analyze(records, healthy_metrics(), "weekly")

        imbalance = next(w for w in report.weaknesses if w.type == WeaknessType.SUBJECT_IMBALANCE)
        assert imbalance.affected_areas == ["History"]
        assert imbalance.severity == Severity.LOW

    def test_overall_weakness_score(self):
        weaknesses = [
            weakness(severity=Severity.CRITICAL, impact=Impact.HIGH),
            weakness(type_=WeaknessType.SUBJECT_IMBALANCE, severity=Severity.LOW,
                     impact=Impact.LOW, category=WeaknessCategory.SECONDARY),
        ]
        # (100*6 + 25*1) / 7
        assert WeaknessDetector.overall_weakness_score(weaknesses) == pytest.approx(89.29)
        assert WeaknessDetector.overall_weakness_score([]) == 0.0

    def test_priority_areas_have_action_plans(self, detector):
        metrics = healthy_metrics(
            overall_accuracy=50, consistency_score=40, average_time_per_question=200,
            retention_rate=30, improvement_rate=-20, focus_quality=50,
        )

        report = detector.analyze(sufficient_records(), metrics, "weekly")

        assert len(report.weaknesses) == 6
        assert len(report.priority_areas) == 5
        assert [p.rank for p in report.priority_areas] == [1, 2, 3, 4, 5]
        for area in report.priority_areas:
            assert area.action_plan.immediate_actions
            assert area.action_plan.timeline

    def test_failing_analyzer_gives_partial_report(self, clock):
        settings = Settings()
        detector = WeaknessDetector(
            settings, analyzers=default_analyzers(settings) + [ExplodingAnalyzer(settings)], clock=clock
        )

        report = detector.analyze(sufficient_records(), healthy_metrics(overall_accuracy=50), "weekly")

        assert report.is_partial is True
        assert report.failed_sections == ["exploding"]
        assert "accuracy" in report.category_analyses
        assert report.weaknesses[0].type == WeaknessType.ACCURACY

    def test_options_control_sections(self, detector):
        records = RecordSet(
            sessions=[make_session(days_ago=d) for d in range(5)],
            assessments=[make_assessment(days_ago=d % 7, correct=4, chapter="Algebra") for d in range(10)],
        )
        metrics = MetricsCalculator(Settings()).calculate(records, "weekly")

        full = detector.analyze(records, metrics, "weekly")
        light = detector.analyze(records, metrics, "weekly", options=AnalysisOptions(
            include_subject_breakdown=False,
            include_chapter_analysis=False,
            include_learning_patterns=False,
        ))

        assert [b.subject for b in full.subject_breakdown] == ["Mathematics"]
        assert full.subject_breakdown[0].weak is True
        assert full.chapter_weaknesses[0].chapter == "Algebra"
        assert full.chapter_weaknesses[0].difficulty_level == "very_hard"
        assert "best_time_of_day" in full.learning_patterns
        assert light.subject_breakdown == []
        assert light.chapter_weaknesses == []
        assert light.learning_patterns == {}
        assert "learning_pattern" not in light.category_analyses

    def test_progress_tracking_plan(self, detector):
        report = detector.analyze(sufficient_records(), healthy_metrics(overall_accuracy=40), "weekly")

        plan = report.progress_tracking
        assert plan.assessment_schedule == "twice weekly"
        assert plan.improvement_targets == {"accuracy": 70.0}
        assert "overall_accuracy" in plan.key_metrics
