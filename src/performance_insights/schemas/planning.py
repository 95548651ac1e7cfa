"""Recommendation and adaptive learning path schemas."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .weakness import Severity, WeaknessType


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_RANK = {Priority.CRITICAL: 4, Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}


class RecommendationSource(str, Enum):
    """Whether a recommendation came from rule templates or a text generator."""
    RULE = "rule"
    GENERATED = "generated"


class Recommendation(BaseModel):
    id: str = Field(default_factory=lambda: f"rec_{uuid4().hex[:12]}")
    category: str
    priority: Priority = Priority.MEDIUM
    title: str
    description: str = ""
    actions: List[str] = Field(default_factory=list)
    expected_impact: str = ""
    timeframe: str = "2-4 weeks"
    difficulty: str = "medium"
    subjects: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    source: RecommendationSource = RecommendationSource.RULE


class UserLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class VelocityClass(str, Enum):
    FAST = "fast"
    MODERATE = "moderate"
    SLOW = "slow"
    DECLINING = "declining"


class LearningVelocity(BaseModel):
    """Rate of accuracy change across recent assessments (fraction per assessment)."""
    rate: float = 0.0
    accuracy_improvement: float = 0.0
    speed_improvement: float = 0.0
    trend: VelocityClass = VelocityClass.MODERATE
    confidence: float = 0.0


class CognitiveLoadLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CognitiveLoad(BaseModel):
    level: CognitiveLoadLevel = CognitiveLoadLevel.MEDIUM
    session_variability: float = 0.0
    performance_decline: float = 0.0
    indicators: List[str] = Field(default_factory=list)


class FocusArea(BaseModel):
    weakness_type: WeaknessType
    severity: Severity
    priority: float
    strategy: str
    time_allocation: int  # minutes per day
    progression_rate: str
    target_value: float


class ReviewSchedule(BaseModel):
    weakness_type: WeaknessType
    intervals: List[int]
    next_review: datetime
    retention_target: float


class Milestone(BaseModel):
    title: str
    weakness_type: WeaknessType
    target_value: float
    deadline: datetime
    weeks: int


class StudySequenceStep(BaseModel):
    phase: str
    focus: str
    duration: str
    activities: List[str] = Field(default_factory=list)


class LearningPhase(BaseModel):
    name: str
    weeks: int


class LearningPath(BaseModel):
    """Adaptive plan derived from ranked weaknesses and learning velocity."""
    level: UserLevel
    duration: str
    phases: List[LearningPhase] = Field(default_factory=list)
    daily_hours: int
    focus_areas: List[FocusArea] = Field(default_factory=list)
    study_sequence: List[StudySequenceStep] = Field(default_factory=list)
    review_schedule: List[ReviewSchedule] = Field(default_factory=list)
    milestones: List[Milestone] = Field(default_factory=list)
    adaptive_features: Dict[str, bool] = Field(default_factory=dict)
    learning_velocity: LearningVelocity = Field(default_factory=LearningVelocity)
    cognitive_load: CognitiveLoad = Field(default_factory=CognitiveLoad)
    is_fallback: bool = False
    generated_at: datetime = Field(default_factory=datetime.now)


class StudyTask(BaseModel):
    id: str = Field(default_factory=lambda: f"task_{uuid4().hex[:12]}")
    type: str
    title: str
    description: str
    subject: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    estimated_minutes: int
    difficulty: str = "medium"


class DailyGoals(BaseModel):
    """Host-supplied goals for daily task generation."""
    target_subjects: List[str] = Field(default_factory=list)
    daily_minutes: Optional[int] = None
