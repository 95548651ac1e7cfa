"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

import pytest
import pytest_asyncio

from performance_insights.config import Settings
from performance_insights.integrations import (
    FreeTextRecommendationProvider,
    RecordSource,
    SpacedRepetitionProvider,
)
from performance_insights.schemas.records import AssessmentRecord, SessionRecord
from performance_insights.services.analytics_engine import PerformanceAnalyticsEngine
from performance_insights.services.record_store import RecordSet

NOW = datetime(2026, 3, 16, 18, 0, 0)


class FakeClock:
    """Controllable wall clock."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    """Controllable monotonic clock for TTL and circuit breaker tests."""

    def __init__(self, value: float = 1000.0):
        self.value = value

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class InMemoryRecordSource(RecordSource):
    def __init__(self, records: Optional[List[Any]] = None, fail: bool = False):
        self.records = list(records or [])
        self.fail = fail

    async def append(self, record) -> None:
        if self.fail:
            raise ConnectionError("storage offline")
        self.records.append(record)

    async def query_range(self, start, end, subject=None):
        if self.fail:
            raise ConnectionError("storage offline")
        return [
            r for r in self.records
            if start <= r.timestamp <= end and (subject is None or r.subject == subject)
        ]


class StubRetentionProvider(SpacedRepetitionProvider):
    def __init__(self, retention_rate: float = 80.0, fail: bool = False):
        self.retention_rate = retention_rate
        self.fail = fail
        self.calls = 0

    async def get_retention_statistics(self) -> Dict[str, Any]:
        self.calls += 1
        if self.fail:
            raise TimeoutError("review service unavailable")
        return {"retention_rate": self.retention_rate, "total_reviews": 40}


class StubTextProvider(FreeTextRecommendationProvider):
    def __init__(self, text: str = "", fail: bool = False):
        self.text = text
        self.fail = fail
        self.calls = 0
        self.contexts: List[Dict[str, Any]] = []

    async def generate(self, prompt_context: Dict[str, Any]) -> str:
        self.calls += 1
        self.contexts.append(prompt_context)
        if self.fail:
            raise RuntimeError("generator unavailable")
        return self.text


def make_session(
    days_ago: float = 0,
    duration: float = 3600,
    subject: str = "Mathematics",
    focus_quality: float = 90.0,
    **extra,
) -> SessionRecord:
    return SessionRecord(
        timestamp=NOW - timedelta(days=days_ago),
        duration=duration,
        subject=subject,
        focus_quality=focus_quality,
        **extra,
    )


def make_assessment(
    days_ago: float = 0,
    correct: int = 7,
    total: int = 10,
    time_spent: float = 300,
    subject: str = "Mathematics",
    **extra,
) -> AssessmentRecord:
    return AssessmentRecord(
        timestamp=NOW - timedelta(days=days_ago),
        correct_answers=correct,
        total_questions=total,
        time_spent=time_spent,
        subject=subject,
        **extra,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def settings() -> Settings:
    """Default settings with a short debounce for async tests."""
    return Settings(debounce_seconds=0.05, periodic_interval_seconds=3600)


@pytest.fixture
def session_factory() -> Callable[..., SessionRecord]:
    return make_session


@pytest.fixture
def assessment_factory() -> Callable[..., AssessmentRecord]:
    return make_assessment


@pytest.fixture
def scenario_a_records() -> RecordSet:
    """Five daily sessions and three assessments at 70%, 60% and 90%."""
    return RecordSet(
        sessions=[make_session(days_ago=d) for d in range(5)],
        assessments=[
            make_assessment(days_ago=3, correct=7),
            make_assessment(days_ago=2, correct=6),
            make_assessment(days_ago=1, correct=9),
        ],
    )


@pytest.fixture
def scenario_b_records() -> RecordSet:
    """Healthy sessions with assessments at 40%, 45% and 50%."""
    return RecordSet(
        sessions=[make_session(days_ago=d) for d in range(5)],
        assessments=[
            make_assessment(days_ago=3, correct=4),
            make_assessment(days_ago=2, correct=9, total=20),
            make_assessment(days_ago=1, correct=5),
        ],
    )


@pytest_asyncio.fixture
async def engine(settings, clock, monotonic) -> AsyncGenerator[PerformanceAnalyticsEngine, None]:
    engine = PerformanceAnalyticsEngine(settings=settings, clock=clock, monotonic=monotonic)
    yield engine
    await engine.stop()


async def load_records(engine: PerformanceAnalyticsEngine, records: RecordSet) -> None:
    for session in records.sessions:
        await engine.record_session(session)
    for assessment in records.assessments:
        await engine.record_assessment(assessment)
