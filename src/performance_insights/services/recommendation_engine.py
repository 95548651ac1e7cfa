"""Rule-based and generated study recommendations, plus daily task lists."""

import re
from typing import Any, Dict, List, Optional

from ..config import Settings
from ..integrations.collaborators import FreeTextRecommendationProvider
from ..logging_config import get_logger
from ..schemas.analytics import MetricsSnapshot, TrendAnalysis
from ..schemas.planning import (
    PRIORITY_RANK,
    DailyGoals,
    Priority,
    Recommendation,
    RecommendationSource,
    StudyTask,
)
from ..schemas.weakness import Severity, Weakness, WeaknessCategory, WeaknessType
from ..utils.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from ..utils.fallback import FallbackConfig, FallbackHandler, FallbackStrategy
from .metrics_calculator import MetricsCalculator
from .record_store import RecordSet

logger = get_logger(__name__)

RULE_CONFIDENCE = 0.85
SECONDARY_CONFIDENCE = 0.7
GENERATED_CONFIDENCE = 0.6
DEFAULT_TIMEFRAME = "2-4 weeks"

SEVERITY_TO_PRIORITY = {
    Severity.CRITICAL: Priority.CRITICAL,
    Severity.HIGH: Priority.HIGH,
    Severity.MEDIUM: Priority.MEDIUM,
    Severity.LOW: Priority.LOW,
}

RULE_TEMPLATES: Dict[WeaknessType, Dict[str, Any]] = {
    WeaknessType.ACCURACY: {
        "title": "Improve answer accuracy",
        "description": "Focus on understanding concepts before attempting more questions.",
        "actions": [
            "Review incorrect answers after every practice set",
            "Revise the underlying concept for each repeated mistake",
            "Practice 20 targeted questions daily in weak topics",
        ],
        "expected_impact": "10-15% accuracy improvement",
        "timeframe": "2-3 weeks",
    },
    WeaknessType.CONSISTENCY: {
        "title": "Build consistent performance",
        "description": "Stabilize results by studying and testing on a regular rhythm.",
        "actions": [
            "Study at the same time every day",
            "Take a short assessment every week",
            "Keep difficulty mixed in every practice set",
        ],
        "expected_impact": "More predictable scores",
        "timeframe": "3-4 weeks",
    },
    WeaknessType.SPEED: {
        "title": "Increase answering speed",
        "description": "Reduce time per question without sacrificing accuracy.",
        "actions": [
            "Practice timed question sets",
            "Learn shortcut techniques for common question types",
            "Skip difficult questions and return to them later",
        ],
        "expected_impact": "20-30% faster responses",
        "timeframe": "3-4 weeks",
    },
    WeaknessType.RETENTION: {
        "title": "Strengthen long-term retention",
        "description": "Revisit material on a spaced schedule so it sticks.",
        "actions": [
            "Review flashcards daily using spaced repetition",
            "Summarize each chapter after finishing it",
            "Self-test on older chapters every week",
        ],
        "expected_impact": "Higher recall on revisited topics",
        "timeframe": "4-6 weeks",
    },
    WeaknessType.DECLINING_PERFORMANCE: {
        "title": "Reverse the performance decline",
        "description": "Recent results are dropping; rebuild fundamentals before moving on.",
        "actions": [
            "Identify the subjects where results dropped",
            "Pause new topics and revise fundamentals",
            "Check sleep, breaks and study load",
        ],
        "expected_impact": "Return to earlier performance levels",
        "timeframe": "1-2 weeks",
    },
    WeaknessType.STUDY_SCHEDULE: {
        "title": "Create a regular study schedule",
        "description": "Spread study time evenly across the week.",
        "actions": ["Plan study days a week ahead", "Avoid gaps longer than two days"],
        "expected_impact": "Better consistency and retention",
        "timeframe": "2 weeks",
    },
    WeaknessType.FOCUS_QUALITY: {
        "title": "Improve focus during sessions",
        "description": "Protect study sessions from distractions.",
        "actions": ["Use 25-minute focus blocks", "Keep the phone out of reach while studying"],
        "expected_impact": "More productive study hours",
        "timeframe": "2 weeks",
    },
    WeaknessType.SUBJECT_IMBALANCE: {
        "title": "Balance time across subjects",
        "description": "Give neglected subjects regular attention.",
        "actions": ["Rotate subjects through the week", "Schedule the neglected subject first"],
        "expected_impact": "Even preparation across the syllabus",
        "timeframe": "3-4 weeks",
    },
}

BLOCK_SPLIT = re.compile(r"(?m)^\s*\d+\.\s*")
PRIORITY_PATTERN = re.compile(r"priority[:\s]*(high|medium|low|critical)", re.IGNORECASE)
DESCRIPTION_PATTERN = re.compile(r"^\s*[-•*]?\s*description:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
IMPACT_PATTERN = re.compile(r"impact[:\s]*([^.\n]+)", re.IGNORECASE)
TIMEFRAME_PATTERN = re.compile(r"(\d+\s*(?:days?|weeks?|months?))", re.IGNORECASE)
FIELD_LINE = re.compile(r"^\s*[-•*]?\s*(priority|description|impact|timeframe)\b", re.IGNORECASE)


class RecommendationParser:
    """Extracts recommendations from numbered free text."""

    def __init__(self, known_subjects: List[str]):
        self.known_subjects = known_subjects or ["General Studies"]

    def parse(self, text: str, subjects: Optional[List[str]] = None) -> List[Recommendation]:
        candidates = list(dict.fromkeys((subjects or []) + self.known_subjects))
        blocks = BLOCK_SPLIT.split(text or "")[1:]
        recommendations = []
        for block in blocks:
            recommendation = self.parse_block(block, candidates)
            if recommendation is not None:
                recommendations.append(recommendation)
        return recommendations

    def parse_block(self, block: str, subjects: List[str]) -> Optional[Recommendation]:
        lines = [line.strip() for line in block.strip().splitlines() if line.strip()]
        if not lines:
            return None

        title = lines[0].strip("*#: ").strip()[:100]
        if not title:
            return None

        priority_match = PRIORITY_PATTERN.search(block)
        description_match = DESCRIPTION_PATTERN.search(block)
        if description_match:
            description = description_match.group(1).strip()
        elif len(lines) > 1 and not FIELD_LINE.match(lines[1]):
            description = lines[1].lstrip("-•* ").strip()
        else:
            description = ""

        actions = []
        for line in lines[1:]:
            if FIELD_LINE.match(line):
                continue
            if line.startswith(("-", "•")):
                actions.append(line.lstrip("-• ").strip())
            elif "Action:" in line:
                actions.append(line.split("Action:", 1)[1].strip())

        impact_match = IMPACT_PATTERN.search(block)
        timeframe_match = TIMEFRAME_PATTERN.search(block)
        lowered = block.lower()
        matched_subjects = [s for s in subjects if s.lower() in lowered]

        return Recommendation(
            category="generated",
            priority=Priority(priority_match.group(1).lower()) if priority_match else Priority.MEDIUM,
            title=title,
            description=description,
            actions=[a for a in actions if a],
            expected_impact=impact_match.group(1).strip() if impact_match else "",
            timeframe=timeframe_match.group(1) if timeframe_match else DEFAULT_TIMEFRAME,
            subjects=matched_subjects or [self.known_subjects[0]],
            confidence=GENERATED_CONFIDENCE,
            source=RecommendationSource.GENERATED,
        )


class RecommendationEngine:
    """Synthesizes prioritized recommendations from weaknesses, metrics and trends."""

    def __init__(
        self,
        settings: Settings,
        text_provider: Optional[FreeTextRecommendationProvider] = None,
    ):
        self.settings = settings
        self.text_provider = text_provider
        self.parser = RecommendationParser(settings.known_subjects)
        self.breaker = CircuitBreaker(
            "free_text_recommendations",
            CircuitBreakerConfig(
                failure_threshold=settings.provider_failure_threshold,
                recovery_timeout=settings.provider_recovery_timeout,
            ),
        )
        self.fallbacks = FallbackHandler(
            "free_text_recommendations",
            [FallbackConfig(strategy=FallbackStrategy.DEFAULT_RESPONSE, default="")],
        )

    async def generate_recommendations(
        self,
        weaknesses: List[Weakness],
        metrics: MetricsSnapshot,
        trends: Optional[TrendAnalysis] = None,
        subjects: Optional[List[str]] = None,
    ) -> List[Recommendation]:
        """Rule output merged with any generated items, escalated, sorted and truncated."""
        recommendations = self.rule_recommendations(weaknesses, metrics, trends)
        recommendations.extend(
            await self.generated_recommendations(weaknesses, metrics, trends, subjects)
        )
        return self.finalize(recommendations, weaknesses, metrics)

    def rule_recommendations(
        self,
        weaknesses: List[Weakness],
        metrics: MetricsSnapshot,
        trends: Optional[TrendAnalysis] = None,
    ) -> List[Recommendation]:
        recommendations = []
        for weakness in weaknesses:
            template = RULE_TEMPLATES[weakness.type]
            recommendations.append(Recommendation(
                category=weakness.type.value,
                priority=SEVERITY_TO_PRIORITY[weakness.severity],
                title=template["title"],
                description=f"{template['description']} {weakness.description}.",
                actions=list(template["actions"]),
                expected_impact=template["expected_impact"],
                timeframe=template["timeframe"],
                subjects=list(weakness.affected_areas),
                confidence=(
                    RULE_CONFIDENCE if weakness.category == WeaknessCategory.PRIMARY
                    else SECONDARY_CONFIDENCE
                ),
            ))

        daily_hours = metrics.total_study_time / max(metrics.window_days, 1)
        if metrics.data_points.sessions and daily_hours < 1:
            recommendations.append(Recommendation(
                category="study_time",
                priority=Priority.MEDIUM,
                title="Increase daily study time",
                description=f"You are averaging {daily_hours:.1f} hours of study per day.",
                actions=["Add one focused session per day", "Use short gaps for quick revision"],
                expected_impact="More coverage of the syllabus",
                timeframe="2 weeks",
                confidence=0.75,
            ))

        if metrics.grade.value == "A" and not weaknesses:
            recommendations.append(Recommendation(
                category="maintenance",
                priority=Priority.LOW,
                title="Maintain your momentum",
                description="Performance is excellent; keep the current routine.",
                actions=["Take a full-length mock test weekly", "Raise question difficulty"],
                expected_impact="Sustained high performance",
                timeframe="ongoing",
                confidence=0.8,
            ))

        if trends is not None:
            for interpretation in trends.interpretations:
                if interpretation.strength != "concerning":
                    continue
                recommendations.append(Recommendation(
                    category=f"trend_{interpretation.metric}",
                    priority=Priority.HIGH,
                    title=f"Address the {interpretation.metric.replace('_', ' ')} trend",
                    description=interpretation.message,
                    actions=["Review what changed in recent weeks", "Adjust the study plan accordingly"],
                    expected_impact="Stop the downward trend",
                    timeframe="1-2 weeks",
                    confidence=0.75,
                ))

        return recommendations

    async def generated_recommendations(
        self,
        weaknesses: List[Weakness],
        metrics: MetricsSnapshot,
        trends: Optional[TrendAnalysis] = None,
        subjects: Optional[List[str]] = None,
    ) -> List[Recommendation]:
        """Recommendations from the free-text provider; empty on absence or failure."""
        if self.text_provider is None:
            return []

        context = self.prompt_context(weaknesses, metrics, trends, subjects)
        result = await self.fallbacks.execute_with_fallback(
            self.breaker.call, self.text_provider.generate, context
        )
        if result.is_fallback:
            return []
        if not isinstance(result.value, str):
            logger.warning(
                "Generated recommendations were not text",
                value_type=type(result.value).__name__,
            )
            return []

        try:
            parsed = self.parser.parse(result.value, subjects)
        except Exception as e:
            logger.warning("Failed to parse generated recommendations", error=str(e))
            return []
        logger.info("Parsed generated recommendations", count=len(parsed))
        return parsed

    @staticmethod
    def prompt_context(
        weaknesses: List[Weakness],
        metrics: MetricsSnapshot,
        trends: Optional[TrendAnalysis],
        subjects: Optional[List[str]],
    ) -> Dict[str, Any]:
        return {
            "metrics": {
                "overall_accuracy": round(metrics.overall_accuracy, 1),
                "consistency_score": round(metrics.consistency_score, 1),
                "response_speed": round(metrics.response_speed, 2),
                "retention_rate": round(metrics.retention_rate, 1),
                "composite_score": metrics.composite_score,
                "grade": metrics.grade.value,
            },
            "weaknesses": [
                {
                    "type": w.type.value,
                    "severity": w.severity.value,
                    "description": w.description,
                    "affected_areas": w.affected_areas,
                }
                for w in weaknesses
            ],
            "trends": [i.message for i in trends.interpretations] if trends else [],
            "subjects": subjects or [],
            "max_items": 5,
        }

    def finalize(
        self,
        recommendations: List[Recommendation],
        weaknesses: List[Weakness],
        metrics: MetricsSnapshot,
    ) -> List[Recommendation]:
        serious = [w for w in weaknesses if w.severity in (Severity.HIGH, Severity.CRITICAL)]
        finalized = []
        for recommendation in recommendations:
            updates: Dict[str, Any] = {}
            if any(self._matches(recommendation, w) for w in serious):
                updates["priority"] = Priority.CRITICAL
            if metrics.overall_accuracy > 80:
                updates["difficulty"] = "hard"
            elif metrics.overall_accuracy < 50:
                updates["difficulty"] = "easy"
            finalized.append(recommendation.model_copy(update=updates) if updates else recommendation)

        finalized.sort(key=lambda r: (-PRIORITY_RANK[r.priority], -r.confidence))
        return finalized[: self.settings.max_recommendations]

    @staticmethod
    def _matches(recommendation: Recommendation, weakness: Weakness) -> bool:
        if recommendation.category == weakness.type.value:
            return True
        return bool(set(recommendation.subjects) & set(weakness.affected_areas))

    def fallback_recommendations(self) -> List[Recommendation]:
        """Generic advice used when planning fails."""
        return [
            Recommendation(
                category="general",
                priority=Priority.MEDIUM,
                title="Keep a regular study routine",
                description="Study daily and review mistakes after each practice set.",
                actions=["Study at a fixed time", "Review incorrect answers"],
                expected_impact="Steady progress",
                confidence=0.5,
            ),
            Recommendation(
                category="general",
                priority=Priority.LOW,
                title="Take regular assessments",
                description="Assessments reveal which topics need more attention.",
                actions=["Attempt one practice test per week"],
                expected_impact="Better visibility into weak areas",
                confidence=0.5,
            ),
        ]

    # Daily tasks

    def generate_daily_tasks(
        self,
        records: RecordSet,
        metrics: MetricsSnapshot,
        goals: Optional[DailyGoals] = None,
    ) -> List[StudyTask]:
        """Up to ``max_daily_tasks`` tasks for today, built from the last week."""
        goals = goals or DailyGoals()
        tasks: List[StudyTask] = []

        if metrics.data_points.assessments and metrics.overall_accuracy < 70:
            weakest = self._weakest_subject(records)
            tasks.append(StudyTask(
                type="accuracy_practice",
                title="Targeted accuracy practice",
                description="Solve questions on weak topics and review every mistake",
                subject=weakest,
                priority=Priority.HIGH,
                estimated_minutes=45,
            ))
        if metrics.study_consistency < 60:
            tasks.append(StudyTask(
                type="consistency",
                title="Keep the study streak",
                description="A short session today keeps your routine on track",
                priority=Priority.MEDIUM,
                estimated_minutes=30,
            ))
        if metrics.total_study_time / max(metrics.window_days, 1) < 4:
            tasks.append(StudyTask(
                type="extended_study",
                title="Extended study block",
                description="Add a longer uninterrupted study block",
                priority=Priority.MEDIUM,
                estimated_minutes=goals.daily_minutes or 60,
            ))
        for subject in goals.target_subjects:
            tasks.append(StudyTask(
                type="subject_practice",
                title=f"Practice {subject}",
                description=f"Work through a practice set in {subject}",
                subject=subject,
                priority=Priority.MEDIUM,
                estimated_minutes=40,
            ))

        tasks.append(StudyTask(
            type="maintenance",
            title="Review yesterday's topics",
            description="Quickly go over what you studied yesterday",
            priority=Priority.LOW,
            estimated_minutes=20,
        ))
        tasks.append(StudyTask(
            type="revision",
            title="Spaced revision",
            description="Revise flashcards that are due today",
            priority=Priority.LOW,
            estimated_minutes=15,
        ))

        tasks = [self._adjust_difficulty(task, metrics) for task in tasks]
        tasks.sort(key=lambda t: (-PRIORITY_RANK[t.priority], t.estimated_minutes))
        return tasks[: self.settings.max_daily_tasks]

    @staticmethod
    def _weakest_subject(records: RecordSet) -> Optional[str]:
        by_subject: Dict[str, list] = {}
        for assessment in records.assessments:
            by_subject.setdefault(assessment.subject, []).append(assessment)
        if not by_subject:
            return None
        return min(by_subject, key=lambda s: MetricsCalculator.pooled_accuracy(by_subject[s]))

    @staticmethod
    def _adjust_difficulty(task: StudyTask, metrics: MetricsSnapshot) -> StudyTask:
        if not metrics.data_points.assessments:
            return task
        if metrics.overall_accuracy > 80:
            return task.model_copy(update={
                "difficulty": "hard",
                "estimated_minutes": round(task.estimated_minutes * 1.2),
            })
        if metrics.overall_accuracy < 50:
            return task.model_copy(update={
                "difficulty": "easy",
                "estimated_minutes": round(task.estimated_minutes * 0.8),
            })
        return task
