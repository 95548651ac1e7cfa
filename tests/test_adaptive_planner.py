"""Tests for adaptive learning path generation."""

from datetime import timedelta

import pytest

from performance_insights.config import Settings
from performance_insights.schemas.analytics import AreaAssessment
from performance_insights.schemas.planning import (
    CognitiveLoad,
    CognitiveLoadLevel,
    LearningVelocity,
    UserLevel,
    VelocityClass,
)
from performance_insights.schemas.weakness import Impact, Severity, Urgency, Weakness, WeaknessType
from performance_insights.services.adaptive_planner import AdaptivePlanner, determine_user_level

from conftest import NOW, make_assessment, make_session


def weakness(type_: WeaknessType, severity: Severity, target: float = 70.0) -> Weakness:
    return Weakness(
        type=type_,
        severity=severity,
        urgency=Urgency.HIGH,
        impact=Impact.HIGH,
        description=f"{type_.value} weakness",
        current_value=0,
        target_value=target,
    )


def assessments_with_accuracy(*percentages):
    count = len(percentages)
    return [
        make_assessment(days_ago=count - index, correct=p, total=100)
        for index, p in enumerate(percentages)
    ]


@pytest.fixture
def planner(clock):
    return AdaptivePlanner(Settings(), clock=clock)


class TestUserLevel:

    @pytest.mark.parametrize("score,level", [
        (100, UserLevel.ADVANCED),
        (80, UserLevel.ADVANCED),
        (79.9, UserLevel.INTERMEDIATE),
        (60, UserLevel.INTERMEDIATE),
        (59, UserLevel.BEGINNER),
        (0, UserLevel.BEGINNER),
    ])
    def test_level_from_composite(self, score, level):
        assert determine_user_level(score) == level

    @pytest.mark.parametrize("level,hours", [
        (UserLevel.BEGINNER, 4),
        (UserLevel.INTERMEDIATE, 6),
        (UserLevel.ADVANCED, 10),
    ])
    def test_daily_hours(self, level, hours):
        assert AdaptivePlanner.daily_hours(level) == hours


class TestLearningVelocity:
    """Test velocity classification on accuracy fractions."""

    @pytest.mark.parametrize("accuracies,expected", [
        ((50, 60, 70, 80), VelocityClass.FAST),
        ((50, 53, 56, 59), VelocityClass.MODERATE),
        ((70, 70, 70, 70), VelocityClass.SLOW),
        ((80, 70, 60, 50), VelocityClass.DECLINING),
    ])
    def test_classification(self, planner, accuracies, expected):
        velocity = planner.learning_velocity(assessments_with_accuracy(*accuracies))
        assert velocity.trend == expected

    def test_rate_and_improvement(self, planner):
        velocity = planner.learning_velocity(assessments_with_accuracy(50, 60, 70, 80))

        assert velocity.rate == pytest.approx(0.1)
        assert velocity.accuracy_improvement == pytest.approx(30.0)
        assert velocity.confidence == pytest.approx(0.4)

    def test_uses_most_recent_ten(self, planner):
        # an old collapse followed by ten flat results
        velocity = planner.learning_velocity(assessments_with_accuracy(90, 10, *([60] * 10)))

        assert velocity.trend == VelocityClass.SLOW
        assert velocity.confidence == 1.0

    def test_no_assessments(self, planner):
        velocity = planner.learning_velocity([])
        assert velocity.rate == 0.0
        assert velocity.trend == VelocityClass.SLOW


class TestCognitiveLoad:

    def test_variable_sessions_mean_high_load(self):
        sessions = [make_session(days_ago=d, duration=duration)
                    for d, duration in enumerate([600, 3600, 600, 3600])]

        load = AdaptivePlanner.cognitive_load(sessions, [])

        assert load.level == CognitiveLoadLevel.HIGH
        assert load.indicators == ["Highly variable session lengths"]

    def test_steady_sessions_mean_low_load(self):
        sessions = [make_session(days_ago=d) for d in range(4)]
        load = AdaptivePlanner.cognitive_load(sessions, assessments_with_accuracy(70, 70, 70, 70))
        assert load.level == CognitiveLoadLevel.LOW

    def test_accuracy_decline(self):
        sessions = [make_session(days_ago=d) for d in range(4)]
        load = AdaptivePlanner.cognitive_load(sessions, assessments_with_accuracy(80, 80, 50, 50))

        assert load.performance_decline == pytest.approx(0.375)
        assert load.level == CognitiveLoadLevel.HIGH


class TestLearningPath:
    """Test path assembly."""

    def test_focus_priority_blends_velocity_and_load(self, planner):
        weaknesses = [weakness(WeaknessType.ACCURACY, Severity.HIGH)]
        fast = LearningVelocity(rate=0.1, trend=VelocityClass.FAST)
        high_load = CognitiveLoad(level=CognitiveLoadLevel.HIGH)

        path = planner.generate_adaptive_learning_path(UserLevel.INTERMEDIATE, weaknesses, fast, high_load)

        area = path.focus_areas[0]
        assert area.priority == pytest.approx(81.0)
        assert area.time_allocation == 21
        assert area.progression_rate == "accelerated"
        assert path.adaptive_features["cognitive_load_balancing"] is True

    def test_critical_weakness_gets_longer_sessions(self, planner):
        path = planner.generate_adaptive_learning_path(
            UserLevel.BEGINNER,
            [weakness(WeaknessType.RETENTION, Severity.CRITICAL)],
            LearningVelocity(trend=VelocityClass.SLOW),
        )

        area = path.focus_areas[0]
        assert area.time_allocation == 45
        assert area.priority == pytest.approx(80.0)
        assert area.progression_rate == "gradual"

    def test_top_three_focus_areas(self, planner):
        weaknesses = [
            weakness(WeaknessType.SUBJECT_IMBALANCE, Severity.LOW, target=3),
            weakness(WeaknessType.ACCURACY, Severity.CRITICAL),
            weakness(WeaknessType.SPEED, Severity.MEDIUM, target=120),
            weakness(WeaknessType.CONSISTENCY, Severity.HIGH, target=60),
        ]

        path = planner.generate_adaptive_learning_path(
            UserLevel.INTERMEDIATE, weaknesses, LearningVelocity(trend=VelocityClass.MODERATE)
        )

        assert [a.weakness_type for a in path.focus_areas] == [
            WeaknessType.ACCURACY, WeaknessType.CONSISTENCY, WeaknessType.SPEED,
        ]
        assert [m.weeks for m in path.milestones] == [2, 4, 6]
        assert path.milestones[0].deadline == NOW + timedelta(weeks=2)
        assert path.milestones[2].title == "Answer within 120s per question"
        assert len(path.review_schedule) == 4

    def test_review_intervals_by_severity(self, planner):
        weaknesses = [
            weakness(WeaknessType.ACCURACY, Severity.CRITICAL),
            weakness(WeaknessType.SPEED, Severity.MEDIUM),
            weakness(WeaknessType.SUBJECT_IMBALANCE, Severity.LOW),
        ]

        schedule = planner.review_schedule(weaknesses)

        assert [s.intervals for s in schedule] == [[1, 3, 7, 14, 30], [3, 7, 14, 30], [7, 14, 30]]
        assert schedule[0].next_review == NOW + timedelta(days=1)
        assert schedule[1].next_review == NOW + timedelta(days=3)
        assert schedule[0].retention_target == pytest.approx(0.85)

    def test_study_sequence_starts_with_strengths(self, planner):
        strengths = [AreaAssessment(area="accuracy", score=88, level="good", description="Accurate")]
        path = planner.generate_adaptive_learning_path(
            UserLevel.ADVANCED,
            [weakness(WeaknessType.SPEED, Severity.LOW, target=120)],
            LearningVelocity(),
            strengths=strengths,
        )

        phases = [step.phase for step in path.study_sequence]
        assert phases == ["confidence_building", "targeted_improvement", "consolidation"]
        assert path.duration == "2 months"
        assert path.daily_hours == 10

    def test_no_weaknesses(self, planner):
        path = planner.generate_adaptive_learning_path(UserLevel.BEGINNER, [], LearningVelocity())

        assert path.focus_areas == []
        assert path.milestones == []
        assert [p.name for p in path.phases] == ["foundation", "practice", "revision"]

    def test_fallback_path(self, planner):
        path = planner.fallback_learning_path()

        assert path.is_fallback is True
        assert path.level == UserLevel.BEGINNER
        assert path.focus_areas == []
        assert path.study_sequence[-1].phase == "consolidation"
