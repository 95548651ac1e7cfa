"""Performance analytics engine: the host-facing facade wiring all services."""

import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..config import Settings
from ..integrations.collaborators import (
    FreeTextRecommendationProvider,
    RecordSource,
    SpacedRepetitionProvider,
)
from ..logging_config import get_logger
from ..schemas.analytics import (
    ComparativeAnalysis,
    ComputationFailure,
    DashboardData,
    MetricsSnapshot,
    NextSteps,
    PerformanceInsights,
    TrendAnalysis,
)
from ..schemas.planning import DailyGoals, LearningPath, Recommendation, StudyTask, UserLevel
from ..schemas.records import AssessmentRecord, SessionRecord, coerce_number
from ..schemas.weakness import AnalysisOptions, WeaknessReport
from ..utils.exceptions import ComputationException, PerformanceInsightsException
from ..utils.fallback import FallbackHandler, create_collaborator_fallbacks
from .adaptive_planner import AdaptivePlanner, determine_user_level
from .event_bus import EventBus, EventType
from .metrics_calculator import MetricsCalculator
from .recommendation_engine import RecommendationEngine
from .record_store import RecordStore
from .result_cache import ResultCache
from .scheduler import AnalysisScheduler
from .trend_analyzer import TrendAnalyzer
from .weakness_detector import WeaknessDetector

logger = get_logger(__name__)

BACKGROUND_TIMEFRAME = "weekly"
BACKGROUND_OPTIONS = AnalysisOptions(
    include_subject_breakdown=False,
    include_chapter_analysis=False,
    include_learning_patterns=False,
)


class PerformanceAnalyticsEngine:
    """Explicit engine instance with injected collaborators.

    Computation is synchronous; collaborators are awaited. Public analysis
    operations never raise: unexpected failures come back as a
    ``ComputationFailure`` and are never cached.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        record_source: Optional[RecordSource] = None,
        spaced_repetition: Optional[SpacedRepetitionProvider] = None,
        text_provider: Optional[FreeTextRecommendationProvider] = None,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or Settings()
        self._clock = clock
        self.spaced_repetition = spaced_repetition
        self.event_bus = event_bus or EventBus()

        self.store = RecordStore(self.settings, source=record_source, clock=clock)
        self.cache = ResultCache(self.settings.cache_ttl.metrics, clock=monotonic)
        self.metrics_calculator = MetricsCalculator(self.settings, clock=clock)
        self.trend_analyzer = TrendAnalyzer(self.settings, clock=clock)
        self.weakness_detector = WeaknessDetector(self.settings, clock=clock)
        self.recommendation_engine = RecommendationEngine(self.settings, text_provider=text_provider)
        self.planner = AdaptivePlanner(self.settings, clock=clock)
        self.scheduler = AnalysisScheduler(
            self._background_analysis,
            debounce_seconds=self.settings.debounce_seconds,
            interval_seconds=self.settings.periodic_interval_seconds,
        )
        self._retention = FallbackHandler(
            "spaced_repetition", create_collaborator_fallbacks(self._internal_retention)
        )
        self._handlers = {
            EventType.SESSION_COMPLETED: self._on_session_completed,
            EventType.ASSESSMENT_COMPLETED: self._on_assessment_completed,
            EventType.GOAL_PROGRESS_UPDATED: self._on_goal_progress_updated,
            EventType.SPACED_REPETITION_REVIEW_PROCESSED: self._on_review_processed,
        }
        self._started = False

    # Lifecycle

    async def start(self) -> None:
        """Subscribe to host events and start the periodic sweep."""
        if self._started:
            return
        for event_type, handler in self._handlers.items():
            self.event_bus.subscribe(event_type, handler)
        self.scheduler.start_periodic()
        self._started = True
        logger.info("Performance analytics engine started")

    async def stop(self) -> None:
        for event_type, handler in self._handlers.items():
            self.event_bus.unsubscribe(event_type, handler)
        await self.scheduler.stop()
        self._started = False
        logger.info("Performance analytics engine stopped")

    async def load_history(self, days: int = 90) -> int:
        """Hydrate the store from the record source."""
        now = self._clock()
        count = await self.store.load_from_source(now - timedelta(days=days), now)
        if count:
            self.invalidate_cache()
        return count

    # Ingestion

    async def record_session(self, payload: Union[SessionRecord, Dict[str, Any]]) -> SessionRecord:
        record = self.store.append_session(payload)
        await self._after_append(record)
        return record

    async def record_assessment(
        self, payload: Union[AssessmentRecord, Dict[str, Any]]
    ) -> AssessmentRecord:
        record = self.store.append_assessment(payload)
        await self._after_append(record)
        return record

    def record_review(self, quality: Any) -> None:
        self.store.record_review(quality)
        self.invalidate_cache()

    def invalidate_cache(self) -> None:
        self.cache.invalidate()

    async def _after_append(self, record) -> None:
        self.invalidate_cache()
        self.scheduler.schedule()
        await self.store.persist(record)

    # Analysis

    async def get_retention_rate(self) -> float:
        if self.spaced_repetition is None:
            return self._internal_retention()
        result = await self._retention.execute_with_fallback(
            self._fetch_retention, cache_key="retention_rate"
        )
        return coerce_number(result.value)

    async def calculate_metrics(
        self, timeframe: str = "weekly", subject: Optional[str] = None
    ) -> Union[MetricsSnapshot, ComputationFailure]:
        return await self._guarded("calculate_metrics", self._metrics, timeframe, subject)

    async def perform_trend_analysis(
        self, period: str = "monthly", subject: Optional[str] = None
    ) -> Union[TrendAnalysis, ComputationFailure]:
        return await self._guarded("perform_trend_analysis", self._trends, period, subject)

    async def analyze_weaknesses(
        self,
        timeframe: str = "monthly",
        subject: Optional[str] = None,
        options: Optional[AnalysisOptions] = None,
    ) -> Union[WeaknessReport, ComputationFailure]:
        return await self._guarded(
            "analyze_weaknesses", self._weaknesses, timeframe, subject, options or AnalysisOptions()
        )

    async def generate_recommendations(
        self, timeframe: str = "monthly", subject: Optional[str] = None
    ) -> Union[List[Recommendation], ComputationFailure]:
        return await self._guarded("generate_recommendations", self._recommendations, timeframe, subject)

    async def generate_adaptive_learning_path(
        self,
        timeframe: str = "monthly",
        user_level: Optional[UserLevel] = None,
    ) -> LearningPath:
        """Personalized path; falls back to the template path on failure."""
        result = await self._guarded("generate_adaptive_learning_path", self._learning_path, timeframe, user_level)
        if isinstance(result, ComputationFailure):
            return self.planner.fallback_learning_path(user_level or UserLevel.BEGINNER)
        return result

    async def generate_daily_tasks(
        self, goals: Optional[DailyGoals] = None
    ) -> Union[List[StudyTask], ComputationFailure]:
        async def build():
            metrics = await self._metrics("weekly", None)
            records = self.store.query(self.settings.window_days("weekly"))
            return self.recommendation_engine.generate_daily_tasks(records, metrics, goals)

        return await self._guarded("generate_daily_tasks", build)

    async def compare_periods(
        self, periods: Optional[List[str]] = None
    ) -> Union[ComparativeAnalysis, ComputationFailure]:
        async def build():
            snapshots = {}
            for period in periods or self.settings.compared_periods:
                snapshots[period] = await self._metrics(period, None)
            return self.trend_analyzer.compare_periods(snapshots)

        return await self._guarded("compare_periods", build)

    async def compare_subjects(
        self, subjects: Optional[List[str]] = None, timeframe: str = "monthly"
    ) -> Union[ComparativeAnalysis, ComputationFailure]:
        async def build():
            records = self.store.query(self.settings.window_days(timeframe))
            return self.trend_analyzer.compare_subjects(records, subjects or self.store.subjects())

        return await self._guarded("compare_subjects", build)

    async def get_performance_insights(
        self, timeframe: str = "weekly", subject: Optional[str] = None
    ) -> Union[PerformanceInsights, ComputationFailure]:
        return await self._guarded("get_performance_insights", self._insights, timeframe, subject)

    async def get_dashboard_data(
        self, timeframe: str = "weekly"
    ) -> Union[DashboardData, ComputationFailure]:
        async def build():
            metrics = await self._metrics(timeframe, None)
            trends = await self._trends(timeframe, None)
            recommendations = await self._recommendations(timeframe, None)
            insights = [i.message for i in trends.interpretations]
            insights += [a.description for a in metrics.improvement_areas]
            return DashboardData(
                timeframe=timeframe,
                overview={
                    "total_study_time": round(metrics.total_study_time, 2),
                    "overall_accuracy": round(metrics.overall_accuracy, 2),
                    "composite_score": metrics.composite_score,
                    "grade": metrics.grade.value,
                    "study_consistency": round(metrics.study_consistency, 2),
                },
                charts={
                    "accuracy": [{"date": p.date.isoformat(), "value": round(p.accuracy, 2)}
                                 for p in trends.data_points if p.assessment_count],
                    "study_time": [{"date": p.date.isoformat(), "value": round(p.study_time, 2)}
                                   for p in trends.data_points],
                },
                insights=insights[:3],
                recommendations=recommendations[:5],
                last_updated=self._clock(),
            )

        return await self._guarded("get_dashboard_data", build)

    # Cached building blocks (raise on failure)

    async def _metrics(self, timeframe: str, subject: Optional[str]) -> MetricsSnapshot:
        key = ("metrics", timeframe, subject)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        records = self.store.query(self.settings.window_days(timeframe), subject)
        retention = await self.get_retention_rate()
        snapshot = self.metrics_calculator.calculate(records, timeframe, subject, retention)
        self.cache.set(key, snapshot, ttl=self.settings.cache_ttl.metrics)
        return snapshot

    async def _trends(self, period: str, subject: Optional[str]) -> TrendAnalysis:
        key = ("trends", period, subject)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        records = self.store.query(self.settings.window_days(period), subject)
        analysis = self.trend_analyzer.analyze(records, period, subject)
        self.cache.set(key, analysis, ttl=self.settings.cache_ttl.trends)
        return analysis

    async def _weaknesses(
        self, timeframe: str, subject: Optional[str], options: AnalysisOptions
    ) -> WeaknessReport:
        key = ("weakness", timeframe, subject, tuple(options.model_dump().values()))
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        records = self.store.query(self.settings.window_days(timeframe), subject)
        metrics = await self._metrics(timeframe, subject)
        report = self.weakness_detector.analyze(records, metrics, timeframe, subject, options)
        self.cache.set(key, report, ttl=self.settings.cache_ttl.weakness)
        return report

    async def _recommendations(self, timeframe: str, subject: Optional[str]) -> List[Recommendation]:
        key = ("recommendations", timeframe, subject)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        metrics = await self._metrics(timeframe, subject)
        trends = await self._trends(timeframe, subject)
        report = await self._weaknesses(timeframe, subject, AnalysisOptions())
        try:
            recommendations = await self.recommendation_engine.generate_recommendations(
                report.weaknesses, metrics, trends, self.store.subjects()
            )
        except Exception as e:
            logger.error("Recommendation planning failed, using fallback", error=str(e))
            return self.recommendation_engine.fallback_recommendations()

        self.cache.set(key, recommendations, ttl=self.settings.cache_ttl.recommendations)
        return recommendations

    async def _learning_path(self, timeframe: str, user_level: Optional[UserLevel]) -> LearningPath:
        metrics = await self._metrics(timeframe, None)
        report = await self._weaknesses(timeframe, None, AnalysisOptions())
        records = self.store.query(self.settings.window_days(timeframe))
        return self.planner.generate_adaptive_learning_path(
            user_level or determine_user_level(metrics.composite_score),
            report.weaknesses,
            self.planner.learning_velocity(records.assessments),
            cognitive_load=self.planner.cognitive_load(records.sessions, records.assessments),
            strengths=metrics.strength_areas,
        )

    async def _insights(self, timeframe: str, subject: Optional[str]) -> PerformanceInsights:
        metrics = await self._metrics(timeframe, subject)
        trends = await self._trends(timeframe, subject)
        recommendations = await self._recommendations(timeframe, subject)
        return PerformanceInsights(
            timeframe=timeframe,
            summary=self._summary(metrics),
            key_metrics={
                "study_time_hours": round(metrics.total_study_time, 2),
                "accuracy": round(metrics.overall_accuracy, 2),
                "consistency_score": round(metrics.consistency_score, 2),
                "composite_score": metrics.composite_score,
                "grade": metrics.grade.value,
            },
            trends=trends.interpretations,
            strengths=metrics.strength_areas,
            concerns=metrics.improvement_areas,
            recommendations=recommendations,
            next_steps=self._next_steps(recommendations),
        )

    @staticmethod
    def _summary(metrics: MetricsSnapshot) -> str:
        if metrics.data_points.sessions == 0 and metrics.data_points.assessments == 0:
            return "No study activity recorded in this period yet."
        score = metrics.composite_score
        if score >= 80:
            tone = "Excellent performance"
        elif score >= 60:
            tone = "Good progress"
        elif score >= 40:
            tone = "Room for improvement"
        else:
            tone = "Performance needs attention"
        return (
            f"{tone}: {metrics.total_study_time:.1f} hours studied with "
            f"{metrics.overall_accuracy:.1f}% accuracy (score {score}, grade {metrics.grade.value})."
        )

    @staticmethod
    def _next_steps(recommendations: List[Recommendation]) -> NextSteps:
        steps = NextSteps()
        for recommendation in recommendations:
            if recommendation.priority.value in ("critical", "high"):
                steps.immediate.extend(recommendation.actions[:1])
            elif recommendation.priority.value == "medium":
                steps.short_term.extend(recommendation.actions[:1])
            else:
                steps.long_term.extend(recommendation.actions[:1])
        steps.immediate = steps.immediate[:3]
        steps.short_term = steps.short_term[:3]
        steps.long_term = steps.long_term[:3] or ["Keep taking regular assessments to track progress"]
        return steps

    # Collaborators

    async def _fetch_retention(self) -> float:
        statistics = await self.spaced_repetition.get_retention_statistics()
        return coerce_number((statistics or {}).get("retention_rate"))

    def _internal_retention(self) -> float:
        rate = self.store.review_retention_rate()
        return 0.0 if rate is None else rate

    # Events

    async def _on_session_completed(self, data: Dict[str, Any]) -> None:
        await self.record_session(data.get("session", data))

    async def _on_assessment_completed(self, data: Dict[str, Any]) -> None:
        await self.record_assessment(data.get("assessment", data))

    async def _on_goal_progress_updated(self, data: Dict[str, Any]) -> None:
        self.invalidate_cache()
        self.scheduler.schedule()

    async def _on_review_processed(self, data: Dict[str, Any]) -> None:
        self.record_review(data.get("quality"))

    async def _background_analysis(self) -> None:
        """Lightweight re-analysis published to the host."""
        report = await self.analyze_weaknesses(BACKGROUND_TIMEFRAME, options=BACKGROUND_OPTIONS)
        if isinstance(report, ComputationFailure):
            return
        await self.event_bus.publish(
            EventType.WEAKNESS_ANALYSIS_UPDATED, {"report": report.model_dump(mode="json")}
        )

    # Error boundary

    async def _guarded(self, operation: str, func: Callable[..., Awaitable[Any]], *args) -> Any:
        try:
            return await func(*args)
        except PerformanceInsightsException as e:
            logger.error("Analysis failed", operation=operation, error=e.to_dict())
            return ComputationFailure(operation=operation, error=e.to_dict())
        except Exception as e:
            error = ComputationException(operation, str(e))
            logger.error("Analysis failed", operation=operation, error=error.to_dict(), exc_info=True)
            return ComputationFailure(operation=operation, error=error.to_dict())
