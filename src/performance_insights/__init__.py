"""Adaptive performance analytics and weakness detection for exam preparation."""

from .config import Settings, get_settings
from .integrations import (
    FreeTextRecommendationProvider,
    RecordSource,
    SpacedRepetitionProvider,
)
from .schemas.analytics import ComputationFailure, MetricsSnapshot, TrendAnalysis
from .schemas.planning import LearningPath, Recommendation, RecommendationSource, UserLevel
from .schemas.records import AssessmentRecord, SessionRecord
from .schemas.weakness import AnalysisOptions, Weakness, WeaknessReport
from .services.analytics_engine import PerformanceAnalyticsEngine
from .services.event_bus import EventBus, EventType

__version__ = "0.1.0"

__all__ = [
    "AnalysisOptions",
    "AssessmentRecord",
    "ComputationFailure",
    "EventBus",
    "EventType",
    "FreeTextRecommendationProvider",
    "LearningPath",
    "MetricsSnapshot",
    "PerformanceAnalyticsEngine",
    "Recommendation",
    "RecommendationSource",
    "RecordSource",
    "SessionRecord",
    "Settings",
    "SpacedRepetitionProvider",
    "TrendAnalysis",
    "UserLevel",
    "Weakness",
    "WeaknessReport",
    "get_settings",
]
