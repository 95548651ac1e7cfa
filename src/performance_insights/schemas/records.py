"""Study session and assessment record schemas."""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def coerce_number(value: Any) -> float:
    """Interpret a loosely typed numeric field; anything unreadable becomes 0."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return 0.0
        return parsed if math.isfinite(parsed) else 0.0
    return 0.0


class Difficulty(str, Enum):
    """Assessment difficulty."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


def coerce_label(value: Any) -> Optional[str]:
    """Render identifiers and labels given as numbers as strings."""
    if value is None or value == "":
        return None
    return str(value)


class CamelModel(BaseModel):
    """Immutable model that accepts camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class RecordModel(CamelModel):
    """Base for stored records: an identifier and a timestamp."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=datetime.now)
    chapter: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _default_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and "id" in data and coerce_label(data["id"]) is None:
            return {k: v for k, v in data.items() if k != "id"}
        return data

    @field_validator("id", "chapter", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Optional[str]:
        return coerce_label(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _default_timestamp(cls, value: Any) -> Any:
        return datetime.now() if value is None else value

    @field_validator("timestamp")
    @classmethod
    def _naive_local_time(cls, value: datetime) -> datetime:
        # Windows are computed against naive local "now"
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value


class SessionPerformance(CamelModel):
    """Question-level outcome of a study session."""
    attempted: int = 0
    correct: int = 0
    accuracy: float = 0.0
    avg_response_time: float = 0.0

    @field_validator("attempted", "correct", mode="before")
    @classmethod
    def _coerce_int(cls, value: Any) -> int:
        return int(coerce_number(value))

    @field_validator("accuracy", "avg_response_time", mode="before")
    @classmethod
    def _coerce_float(cls, value: Any) -> float:
        return coerce_number(value)


class SessionRecord(RecordModel):
    """A completed study session. ``duration`` is in seconds."""
    duration: float = 0.0
    type: str = "study"
    subject: str = "general"
    performance: SessionPerformance = Field(default_factory=SessionPerformance)
    focus_quality: float = 100.0
    completion_rate: float = 100.0

    @field_validator("duration", mode="before")
    @classmethod
    def _coerce_float(cls, value: Any) -> float:
        return coerce_number(value)

    @field_validator("focus_quality", "completion_rate", mode="before")
    @classmethod
    def _coerce_percentage(cls, value: Any) -> float:
        # Missing, whether omitted or null, means a full score
        return 100.0 if value is None else coerce_number(value)

    @field_validator("performance", mode="before")
    @classmethod
    def _coerce_performance(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("subject", "type", mode="before")
    @classmethod
    def _coerce_label(cls, value: Any, info) -> str:
        if value is None or value == "":
            return "general" if info.field_name == "subject" else "study"
        return str(value)


class AssessmentRecord(RecordModel):
    """A completed assessment. ``time_spent`` is in seconds."""
    type: str = "practice"
    subject: str = "general"
    total_questions: int = 0
    correct_answers: int = 0
    accuracy: float = 0.0
    time_spent: float = 0.0
    difficulty: Difficulty = Difficulty.MEDIUM
    score: Optional[float] = None
    max_score: float = 100.0

    @model_validator(mode="before")
    @classmethod
    def _derive_accuracy(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("accuracy") is not None:
            return data
        total = coerce_number(data.get("total_questions", data.get("totalQuestions")))
        correct = coerce_number(data.get("correct_answers", data.get("correctAnswers")))
        return {**data, "accuracy": correct / total * 100 if total > 0 else 0.0}

    @field_validator("total_questions", "correct_answers", mode="before")
    @classmethod
    def _coerce_int(cls, value: Any) -> int:
        return int(coerce_number(value))

    @field_validator("accuracy", "time_spent", mode="before")
    @classmethod
    def _coerce_float(cls, value: Any) -> float:
        return coerce_number(value)

    @field_validator("max_score", mode="before")
    @classmethod
    def _coerce_max_score(cls, value: Any) -> float:
        return 100.0 if value is None else coerce_number(value)

    @field_validator("difficulty", mode="before")
    @classmethod
    def _coerce_difficulty(cls, value: Any) -> Difficulty:
        try:
            return Difficulty(str(value).lower())
        except ValueError:
            return Difficulty.MEDIUM

    @field_validator("subject", "type", mode="before")
    @classmethod
    def _coerce_label(cls, value: Any, info) -> str:
        if value is None or value == "":
            return "general" if info.field_name == "subject" else "practice"
        return str(value)

    @property
    def seconds_per_question(self) -> float:
        if self.total_questions <= 0:
            return 0.0
        return self.time_spent / self.total_questions

    @property
    def questions_per_minute(self) -> float:
        if self.time_spent <= 0 or self.total_questions <= 0:
            return 0.0
        speed = self.total_questions / (self.time_spent / 60)
        return speed if math.isfinite(speed) else 0.0
