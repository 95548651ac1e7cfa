"""Adaptive learning path generation."""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..config import Settings
from ..logging_config import get_logger
from ..schemas.analytics import AreaAssessment
from ..schemas.planning import (
    CognitiveLoad,
    CognitiveLoadLevel,
    FocusArea,
    LearningPath,
    LearningPhase,
    LearningVelocity,
    Milestone,
    ReviewSchedule,
    StudySequenceStep,
    UserLevel,
    VelocityClass,
)
from ..schemas.records import AssessmentRecord, SessionRecord
from ..schemas.weakness import SEVERITY_SCORE, Severity, Weakness, WeaknessType
from ..utils.statistics import coefficient_of_variation, half_split_delta, linear_trend, mean

logger = get_logger(__name__)

LEVEL_TEMPLATES: Dict[UserLevel, Dict] = {
    UserLevel.BEGINNER: {
        "duration": "6 months",
        "phases": [("foundation", 8), ("practice", 10), ("revision", 6)],
        "daily_hours": 4,
    },
    UserLevel.INTERMEDIATE: {
        "duration": "4 months",
        "phases": [("strengthening", 6), ("practice", 6), ("mock_tests", 4)],
        "daily_hours": 6,
    },
    UserLevel.ADVANCED: {
        "duration": "2 months",
        "phases": [("intensive_practice", 3), ("revision", 3), ("final_preparation", 2)],
        "daily_hours": 8,
    },
}

FOCUS_STRATEGIES = {
    WeaknessType.ACCURACY: "Concept review followed by targeted question practice",
    WeaknessType.CONSISTENCY: "Fixed daily routine with weekly assessments",
    WeaknessType.SPEED: "Timed drills with gradually tighter limits",
    WeaknessType.RETENTION: "Spaced repetition with active recall",
    WeaknessType.DECLINING_PERFORMANCE: "Fundamentals revision with reduced new material",
    WeaknessType.STUDY_SCHEDULE: "Planned weekly timetable",
    WeaknessType.FOCUS_QUALITY: "Short focus blocks in a distraction-free setting",
    WeaknessType.SUBJECT_IMBALANCE: "Round-robin subject rotation",
}

# Skipped leading review intervals per severity; severe weaknesses start at day 1
REVIEW_OFFSET = {Severity.CRITICAL: 0, Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}

RECENT_ASSESSMENTS = 10


def determine_user_level(composite_score: float) -> UserLevel:
    if composite_score >= 80:
        return UserLevel.ADVANCED
    if composite_score >= 60:
        return UserLevel.INTERMEDIATE
    return UserLevel.BEGINNER


class AdaptivePlanner:
    """Builds a LearningPath from ranked weaknesses, velocity and cognitive load."""

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = datetime.now):
        self.settings = settings
        self._clock = clock

    def learning_velocity(self, assessments: List[AssessmentRecord]) -> LearningVelocity:
        """Slope of accuracy (as a fraction) across the most recent assessments."""
        recent = sorted(assessments, key=lambda a: a.timestamp)[-RECENT_ASSESSMENTS:]
        accuracies = [a.accuracy / 100 for a in recent]
        rate = linear_trend(accuracies)

        if rate > 0.05:
            trend = VelocityClass.FAST
        elif rate > 0.02:
            trend = VelocityClass.MODERATE
        elif rate > -0.02:
            trend = VelocityClass.SLOW
        else:
            trend = VelocityClass.DECLINING

        speeds = [a.questions_per_minute for a in recent if a.questions_per_minute > 0]
        return LearningVelocity(
            rate=round(rate, 4),
            accuracy_improvement=round((accuracies[-1] - accuracies[0]) * 100, 2) if len(accuracies) >= 2 else 0.0,
            speed_improvement=round(half_split_delta(speeds), 3),
            trend=trend,
            confidence=round(min(1.0, len(recent) / RECENT_ASSESSMENTS), 2),
        )

    @staticmethod
    def cognitive_load(
        sessions: List[SessionRecord],
        assessments: List[AssessmentRecord],
    ) -> CognitiveLoad:
        """Estimate load from session-length variability and accuracy decline."""
        variability = coefficient_of_variation([s.duration for s in sessions if s.duration > 0])

        accuracies = [a.accuracy for a in sorted(assessments, key=lambda a: a.timestamp)]
        decline = 0.0
        if len(accuracies) >= 2:
            midpoint = len(accuracies) // 2
            earlier = mean(accuracies[:midpoint])
            if earlier > 0:
                decline = max(0.0, (earlier - mean(accuracies[midpoint:])) / earlier)

        indicators = []
        if variability > 0.4:
            indicators.append("Highly variable session lengths")
        if decline > 0.2:
            indicators.append("Accuracy dropping in recent assessments")

        if variability > 0.4 or decline > 0.2:
            level = CognitiveLoadLevel.HIGH
        elif variability > 0.2 or decline > 0.1:
            level = CognitiveLoadLevel.MEDIUM
        else:
            level = CognitiveLoadLevel.LOW

        return CognitiveLoad(
            level=level,
            session_variability=round(variability, 3),
            performance_decline=round(decline, 3),
            indicators=indicators,
        )

    def generate_adaptive_learning_path(
        self,
        user_level: UserLevel,
        weaknesses: List[Weakness],
        learning_velocity: LearningVelocity,
        cognitive_load: Optional[CognitiveLoad] = None,
        strengths: Optional[List[AreaAssessment]] = None,
    ) -> LearningPath:
        cognitive_load = cognitive_load or CognitiveLoad()
        template = LEVEL_TEMPLATES[user_level]
        focus_areas = self.focus_areas(weaknesses, learning_velocity, cognitive_load)

        path = LearningPath(
            level=user_level,
            duration=template["duration"],
            phases=[LearningPhase(name=name, weeks=weeks) for name, weeks in template["phases"]],
            daily_hours=self.daily_hours(user_level),
            focus_areas=focus_areas,
            study_sequence=self.study_sequence(focus_areas, strengths or []),
            review_schedule=self.review_schedule(weaknesses),
            milestones=self.milestones(focus_areas),
            adaptive_features={
                "spaced_repetition": True,
                "difficulty_adjustment": True,
                "velocity_tracking": True,
                "cognitive_load_balancing": cognitive_load.level == CognitiveLoadLevel.HIGH,
            },
            learning_velocity=learning_velocity,
            cognitive_load=cognitive_load,
            generated_at=self._clock(),
        )

        logger.info(
            "Learning path generated",
            level=user_level.value,
            focus_areas=[f.weakness_type.value for f in focus_areas],
            velocity=learning_velocity.trend.value,
            cognitive_load=cognitive_load.level.value,
        )
        return path

    @staticmethod
    def daily_hours(user_level: UserLevel) -> int:
        hours = LEVEL_TEMPLATES[user_level]["daily_hours"]
        if user_level == UserLevel.BEGINNER:
            return max(4, hours - 2)
        if user_level == UserLevel.ADVANCED:
            return min(10, hours + 2)
        return hours

    def focus_areas(
        self,
        weaknesses: List[Weakness],
        learning_velocity: LearningVelocity,
        cognitive_load: CognitiveLoad,
    ) -> List[FocusArea]:
        """Top weaknesses by a priority blended from severity, velocity and load."""
        path_settings = self.settings.learning_path
        high_load = cognitive_load.level == CognitiveLoadLevel.HIGH

        if learning_velocity.trend == VelocityClass.FAST:
            velocity_factor, progression = 1.2, "accelerated"
        elif learning_velocity.trend in (VelocityClass.SLOW, VelocityClass.DECLINING):
            velocity_factor, progression = 0.8, "gradual"
        else:
            velocity_factor, progression = 1.0, "steady"

        areas = []
        for weakness in weaknesses:
            priority = SEVERITY_SCORE[weakness.severity] * velocity_factor
            if high_load:
                priority *= 0.9

            minutes = (
                path_settings.critical_session_minutes
                if weakness.severity == Severity.CRITICAL
                else path_settings.base_session_minutes
            )
            if high_load:
                minutes *= path_settings.high_load_time_factor

            areas.append(FocusArea(
                weakness_type=weakness.type,
                severity=weakness.severity,
                priority=round(priority, 2),
                strategy=FOCUS_STRATEGIES[weakness.type],
                time_allocation=round(minutes),
                progression_rate=progression,
                target_value=weakness.target_value,
            ))

        areas.sort(key=lambda a: a.priority, reverse=True)
        return areas[: path_settings.max_focus_areas]

    def review_schedule(self, weaknesses: List[Weakness]) -> List[ReviewSchedule]:
        intervals = self.settings.learning_path.review_intervals
        now = self._clock()
        schedule = []
        for weakness in weaknesses:
            offset = min(REVIEW_OFFSET[weakness.severity], len(intervals) - 1)
            own_intervals = intervals[offset:]
            schedule.append(ReviewSchedule(
                weakness_type=weakness.type,
                intervals=own_intervals,
                next_review=now + timedelta(days=own_intervals[0]),
                retention_target=self.settings.learning_path.retention_target,
            ))
        return schedule

    def milestones(self, focus_areas: List[FocusArea]) -> List[Milestone]:
        step = self.settings.learning_path.milestone_weeks_step
        now = self._clock()
        milestones = []
        for index, area in enumerate(focus_areas):
            weeks = (index + 1) * step
            if area.weakness_type == WeaknessType.SPEED:
                title = f"Answer within {area.target_value:.0f}s per question"
            else:
                title = f"Reach {area.target_value:g} in {area.weakness_type.value.replace('_', ' ')}"
            milestones.append(Milestone(
                title=title,
                weakness_type=area.weakness_type,
                target_value=area.target_value,
                deadline=now + timedelta(weeks=weeks),
                weeks=weeks,
            ))
        return milestones

    @staticmethod
    def study_sequence(
        focus_areas: List[FocusArea],
        strengths: List[AreaAssessment],
    ) -> List[StudySequenceStep]:
        sequence = []
        if strengths:
            sequence.append(StudySequenceStep(
                phase="confidence_building",
                focus=", ".join(s.area for s in strengths),
                duration="1 week",
                activities=["Practice in strong areas to build momentum"],
            ))
        for area in focus_areas:
            sequence.append(StudySequenceStep(
                phase="targeted_improvement",
                focus=area.weakness_type.value,
                duration="2 weeks",
                activities=[area.strategy],
            ))
        sequence.append(StudySequenceStep(
            phase="consolidation",
            focus="mixed revision",
            duration="1 week",
            activities=["Mixed revision across subjects", "Full-length mock test"],
        ))
        return sequence

    def fallback_learning_path(self, user_level: UserLevel = UserLevel.BEGINNER) -> LearningPath:
        """Template-only path used when personalization fails."""
        template = LEVEL_TEMPLATES[user_level]
        return LearningPath(
            level=user_level,
            duration=template["duration"],
            phases=[LearningPhase(name=name, weeks=weeks) for name, weeks in template["phases"]],
            daily_hours=self.daily_hours(user_level),
            study_sequence=self.study_sequence([], []),
            adaptive_features={
                "spaced_repetition": True,
                "difficulty_adjustment": False,
                "velocity_tracking": False,
                "cognitive_load_balancing": False,
            },
            is_fallback=True,
            generated_at=self._clock(),
        )
