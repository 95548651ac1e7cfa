"""Weakness detection schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class WeaknessType(str, Enum):
    ACCURACY = "accuracy"
    CONSISTENCY = "consistency"
    SPEED = "speed"
    RETENTION = "retention"
    DECLINING_PERFORMANCE = "declining_performance"
    STUDY_SCHEDULE = "study_schedule"
    FOCUS_QUALITY = "focus_quality"
    SUBJECT_IMBALANCE = "subject_imbalance"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Urgency(str, Enum):
    IMMEDIATE = "immediate"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Impact(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class WeaknessCategory(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


SEVERITY_RANK = {Severity.CRITICAL: 4, Severity.HIGH: 3, Severity.MEDIUM: 2, Severity.LOW: 1}
URGENCY_RANK = {Urgency.IMMEDIATE: 4, Urgency.HIGH: 3, Urgency.MEDIUM: 2, Urgency.LOW: 1}
IMPACT_RANK = {Impact.HIGH: 3, Impact.MEDIUM: 2, Impact.LOW: 1}
SEVERITY_SCORE = {Severity.CRITICAL: 100, Severity.HIGH: 75, Severity.MEDIUM: 50, Severity.LOW: 25}


class Weakness(BaseModel):
    """A classified deficiency in one measured dimension."""
    type: WeaknessType
    severity: Severity
    urgency: Urgency
    impact: Impact
    description: str
    current_value: float
    target_value: float
    affected_areas: List[str] = Field(default_factory=list)
    root_causes: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    category: WeaknessCategory = WeaknessCategory.PRIMARY

    def sort_key(self):
        """Descending urgency, then severity, then impact."""
        return (
            -URGENCY_RANK[self.urgency],
            -SEVERITY_RANK[self.severity],
            -IMPACT_RANK[self.impact],
        )


class AnalysisOptions(BaseModel):
    """Optional sections of a weakness analysis."""
    include_subject_breakdown: bool = True
    include_chapter_analysis: bool = True
    include_learning_patterns: bool = True


class ActionPlan(BaseModel):
    immediate_actions: List[str] = Field(default_factory=list)
    short_term_goals: List[str] = Field(default_factory=list)
    long_term_goals: List[str] = Field(default_factory=list)
    resources: List[str] = Field(default_factory=list)
    timeline: str = "2-4 weeks"


class PriorityArea(BaseModel):
    rank: int
    weakness: Weakness
    action_plan: ActionPlan


class SubjectBreakdown(BaseModel):
    subject: str
    accuracy: float
    assessments: int
    average_time_per_question: float
    consistency_score: float
    weak: bool


class ChapterWeakness(BaseModel):
    subject: str
    chapter: str
    accuracy: float
    assessments: int
    difficulty_level: str  # very_hard | hard | medium | easy


class ProgressTrackingPlan(BaseModel):
    key_metrics: List[str] = Field(default_factory=list)
    checkpoints: List[Dict[str, Any]] = Field(default_factory=list)
    assessment_schedule: str = "weekly"
    improvement_targets: Dict[str, float] = Field(default_factory=dict)


class WeaknessReport(BaseModel):
    """Result of a weakness analysis run."""
    timeframe: str
    subject: Optional[str] = None
    has_insufficient_data: bool = False
    message: Optional[str] = None
    minimum_requirements: Dict[str, int] = Field(default_factory=dict)
    unmet_requirements: List[str] = Field(default_factory=list)
    weaknesses: List[Weakness] = Field(default_factory=list)
    overall_weakness_score: float = 0.0
    priority_areas: List[PriorityArea] = Field(default_factory=list)
    category_analyses: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    subject_breakdown: List[SubjectBreakdown] = Field(default_factory=list)
    chapter_weaknesses: List[ChapterWeakness] = Field(default_factory=list)
    learning_patterns: Dict[str, Any] = Field(default_factory=dict)
    progress_tracking: Optional[ProgressTrackingPlan] = None
    is_partial: bool = False
    failed_sections: List[str] = Field(default_factory=list)
    computed_at: datetime = Field(default_factory=datetime.now)
