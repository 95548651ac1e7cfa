"""Configuration management for Performance Insights."""

from typing import Dict, List

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ThresholdSettings(BaseModel):
    """Primary weakness thresholds."""
    accuracy: float = 70.0
    consistency: float = 60.0
    response_time: float = 120.0  # seconds per question
    retention_rate: float = 65.0
    improvement_rate: float = -5.0


class SecondaryThresholdSettings(BaseModel):
    """Thresholds for the advisory (secondary) weaknesses."""
    focus_quality: float = 75.0
    focus_target: float = 80.0
    study_consistency: float = 60.0
    gap_variability: float = 0.5
    subject_time_ratio: float = 3.0


class WeightSettings(BaseModel):
    """Composite score weights. Expected to sum to 1."""
    accuracy: float = 0.4
    consistency: float = 0.3
    speed: float = 0.2
    retention: float = 0.1


class BenchmarkSettings(BaseModel):
    """Composite score grade boundaries."""
    excellent: float = 90.0
    good: float = 75.0
    average: float = 60.0
    below_average: float = 45.0


class CacheTTLSettings(BaseModel):
    """Result cache lifetimes in seconds."""
    metrics: float = 300.0
    trends: float = 300.0
    weakness: float = 900.0
    recommendations: float = 1800.0


class LearningPathSettings(BaseModel):
    """Adaptive learning path tuning."""
    review_intervals: List[int] = Field(default_factory=lambda: [1, 3, 7, 14, 30])
    retention_target: float = 0.85
    max_focus_areas: int = 3
    milestone_weeks_step: int = 2
    base_session_minutes: int = 30
    critical_session_minutes: int = 45
    high_load_time_factor: float = 0.7


class Settings(BaseSettings):
    """Engine settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="PERFORMANCE_INSIGHTS_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "Performance Insights"
    app_version: str = "0.1.0"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Analysis
    thresholds: ThresholdSettings = Field(default_factory=ThresholdSettings)
    secondary_thresholds: SecondaryThresholdSettings = Field(default_factory=SecondaryThresholdSettings)
    weights: WeightSettings = Field(default_factory=WeightSettings)
    benchmarks: BenchmarkSettings = Field(default_factory=BenchmarkSettings)
    comparison_periods: Dict[str, int] = Field(
        default_factory=lambda: {"daily": 1, "weekly": 7, "monthly": 30, "quarterly": 90}
    )
    compared_periods: List[str] = Field(default_factory=lambda: ["weekly", "monthly", "quarterly"])
    min_sessions: int = 5
    min_assessments: int = 3
    min_assessments_per_subject: int = 10
    chapter_analysis_threshold: int = 5
    max_priority_areas: int = 5

    # Planning
    max_daily_tasks: int = 8
    max_recommendations: int = 15
    known_subjects: List[str] = Field(default_factory=lambda: ["General Studies"])
    learning_path: LearningPathSettings = Field(default_factory=LearningPathSettings)

    # Storage
    max_sessions: int = 500
    max_assessments: int = 200

    # Scheduling
    cache_ttl: CacheTTLSettings = Field(default_factory=CacheTTLSettings)
    debounce_seconds: float = 5.0
    periodic_interval_seconds: float = 3600.0

    # Collaborators
    provider_failure_threshold: int = 3
    provider_recovery_timeout: float = 300.0

    def window_days(self, timeframe: str) -> int:
        """Resolve a timeframe name to its window length in days."""
        if timeframe not in self.comparison_periods:
            raise ValueError(f"Unknown timeframe: {timeframe}")
        return self.comparison_periods[timeframe]


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get engine settings."""
    return settings
