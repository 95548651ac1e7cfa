"""Metrics, trend and insight schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .planning import Recommendation


class Grade(str, Enum):
    """Composite score grade."""
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class AreaAssessment(BaseModel):
    """A strength or improvement area derived from a snapshot."""
    area: str
    score: float
    level: str
    description: str


class DataPointCounts(BaseModel):
    sessions: int = 0
    assessments: int = 0


class MetricsSnapshot(BaseModel):
    """Derived performance metrics for one timeframe window."""
    timeframe: str
    subject: Optional[str] = None
    window_days: int
    # Study time
    total_study_time: float = 0.0  # hours
    average_session_duration: float = 0.0  # minutes
    study_consistency: float = 0.0  # percent of days studied
    focus_quality: float = 100.0
    # Accuracy
    overall_accuracy: float = 0.0
    accuracy_trend: float = 0.0
    # Speed
    response_speed: float = 0.0  # questions per minute
    speed_trend: float = 0.0
    average_time_per_question: float = 0.0  # seconds
    # Learning
    improvement_rate: float = 0.0
    consistency_score: float = 100.0
    retention_rate: float = 0.0
    # Overall
    composite_score: int = Field(default=0, ge=0, le=100)
    grade: Grade = Grade.F
    strength_areas: List[AreaAssessment] = Field(default_factory=list)
    improvement_areas: List[AreaAssessment] = Field(default_factory=list)
    data_points: DataPointCounts = Field(default_factory=DataPointCounts)
    computed_at: datetime = Field(default_factory=datetime.now)


class TrendDataPoint(BaseModel):
    """Aggregated metrics for one trend interval."""
    date: datetime
    accuracy: float = 0.0
    study_time: float = 0.0  # hours
    focus_quality: float = 0.0
    response_speed: float = 0.0
    session_count: int = 0
    assessment_count: int = 0


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class TrendInterpretation(BaseModel):
    metric: str
    direction: TrendDirection
    strength: str  # strong | moderate | concerning
    slope: float
    message: str


class TrendAnalysis(BaseModel):
    """Least-squares trends over interval buckets of a period."""
    period: str
    subject: Optional[str] = None
    interval_days: int
    data_points: List[TrendDataPoint] = Field(default_factory=list)
    trends: Dict[str, float] = Field(default_factory=dict)
    interpretations: List[TrendInterpretation] = Field(default_factory=list)
    computed_at: datetime = Field(default_factory=datetime.now)

    def interpretation_for(self, metric: str) -> Optional[TrendInterpretation]:
        return next((i for i in self.interpretations if i.metric == metric), None)


class PeriodComparison(BaseModel):
    period: str
    accuracy: float
    study_time: float
    composite_score: int
    sessions: int
    assessments: int


class SubjectComparison(BaseModel):
    subject: str
    accuracy: float
    study_time: float
    assessments: int


class ComparativeAnalysis(BaseModel):
    """Side-by-side metrics across periods or subjects."""
    periods: List[PeriodComparison] = Field(default_factory=list)
    subjects: List[SubjectComparison] = Field(default_factory=list)
    insights: List[str] = Field(default_factory=list)


class NextSteps(BaseModel):
    immediate: List[str] = Field(default_factory=list)
    short_term: List[str] = Field(default_factory=list)
    long_term: List[str] = Field(default_factory=list)


class PerformanceInsights(BaseModel):
    """Human-oriented summary of a timeframe."""
    timeframe: str
    summary: str
    key_metrics: Dict[str, Any] = Field(default_factory=dict)
    trends: List[TrendInterpretation] = Field(default_factory=list)
    strengths: List[AreaAssessment] = Field(default_factory=list)
    concerns: List[AreaAssessment] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    next_steps: NextSteps = Field(default_factory=NextSteps)


class DashboardData(BaseModel):
    """Data bundle for a host-rendered dashboard."""
    timeframe: str
    overview: Dict[str, Any] = Field(default_factory=dict)
    charts: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    insights: List[str] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=datetime.now)


class ComputationFailure(BaseModel):
    """Explicit failure result returned at the engine boundary."""
    success: bool = False
    operation: str
    error: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=datetime.now)
