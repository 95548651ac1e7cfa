"""Integration tests for the analytics engine facade."""

import asyncio

import pytest

from performance_insights.schemas.analytics import (
    ComparativeAnalysis,
    ComputationFailure,
    DashboardData,
    Grade,
    MetricsSnapshot,
    PerformanceInsights,
)
from performance_insights.schemas.planning import Priority, StudyTask
from performance_insights.schemas.weakness import Severity, Urgency, WeaknessType
from performance_insights.services.analytics_engine import PerformanceAnalyticsEngine
from performance_insights.services.event_bus import EventBus, EventType
from performance_insights.utils.exceptions import MalformedRecordException

from conftest import (
    InMemoryRecordSource,
    StubRetentionProvider,
    StubTextProvider,
    load_records,
    make_assessment,
    make_session,
)


class TestMetricsThroughEngine:
    """Test metrics, caching and invalidation."""

    async def test_scenario_a(self, engine, scenario_a_records):
        await load_records(engine, scenario_a_records)

        metrics = await engine.calculate_metrics("weekly")

        assert isinstance(metrics, MetricsSnapshot)
        assert metrics.study_consistency == pytest.approx(100.0)
        assert metrics.composite_score == 72
        assert metrics.grade == Grade.C

    async def test_repeat_call_served_from_cache(self, engine, scenario_a_records):
        await load_records(engine, scenario_a_records)

        first = await engine.calculate_metrics("weekly")
        second = await engine.calculate_metrics("weekly")

        assert first is second

    async def test_new_record_invalidates(self, engine, scenario_a_records):
        await load_records(engine, scenario_a_records)
        first = await engine.calculate_metrics("weekly")

        await engine.record_session(make_session(days_ago=0.5))
        second = await engine.calculate_metrics("weekly")

        assert second is not first
        assert second.data_points.sessions == first.data_points.sessions + 1

    async def test_subject_filter(self, engine, scenario_a_records):
        await load_records(engine, scenario_a_records)
        await engine.record_assessment(make_assessment(days_ago=1, correct=2, subject="Physics"))

        metrics = await engine.calculate_metrics("weekly", subject="Physics")

        assert metrics.data_points.assessments == 1
        assert metrics.overall_accuracy == pytest.approx(20.0)

    async def test_unknown_timeframe_is_failure(self, engine):
        result = await engine.calculate_metrics("fortnightly")

        assert isinstance(result, ComputationFailure)
        assert result.success is False
        assert result.operation == "calculate_metrics"
        assert result.error["error_code"] == "COMPUTATION_FAILED"

    async def test_dict_payloads(self, engine):
        session = await engine.record_session({"duration": "1800", "subject": "Chemistry", "focusQuality": 80})
        assessment = await engine.record_assessment({"totalQuestions": 20, "correctAnswers": 15})

        assert session.duration == 1800.0
        assert session.focus_quality == 80.0
        assert assessment.accuracy == pytest.approx(75.0)
        assert engine.store.subjects() == ["Chemistry", "general"]

    async def test_numeric_ids_accepted(self, engine):
        assessment = await engine.record_assessment({
            "id": 17,
            "subject": "Physics",
            "chapter": 3,
            "totalQuestions": 10,
            "correctAnswers": 6,
            "timeSpent": 300,
        })
        session = await engine.record_session({"id": 18, "chapter": 3, "duration": 900, "focusQuality": None})

        assert assessment.id == "17"
        assert assessment.chapter == "3"
        assert session.id == "18"
        assert session.focus_quality == 100.0
        assert engine.store.assessment_count == 1

    async def test_unreadable_payload_rejected(self, engine):
        with pytest.raises(MalformedRecordException):
            await engine.record_session("not a record")
        assert engine.store.session_count == 0


class TestRetention:
    """Test the spaced repetition collaborator path."""

    async def test_provider_rate(self, settings, clock, monotonic, scenario_a_records):
        provider = StubRetentionProvider(retention_rate=80)
        engine = PerformanceAnalyticsEngine(
            settings=settings, spaced_repetition=provider, clock=clock, monotonic=monotonic
        )
        await load_records(engine, scenario_a_records)

        metrics = await engine.calculate_metrics("weekly")

        assert metrics.retention_rate == 80.0
        assert provider.calls == 1
        await engine.stop()

    async def test_failing_provider_uses_review_log(self, settings, clock, monotonic):
        engine = PerformanceAnalyticsEngine(
            settings=settings,
            spaced_repetition=StubRetentionProvider(fail=True),
            clock=clock,
            monotonic=monotonic,
        )
        engine.record_review(5)
        engine.record_review(1)

        assert await engine.get_retention_rate() == pytest.approx(50.0)
        await engine.stop()

    async def test_failing_provider_uses_last_value(self, settings, clock, monotonic):
        provider = StubRetentionProvider(retention_rate=72)
        engine = PerformanceAnalyticsEngine(
            settings=settings, spaced_repetition=provider, clock=clock, monotonic=monotonic
        )

        assert await engine.get_retention_rate() == 72.0
        provider.fail = True
        assert await engine.get_retention_rate() == 72.0
        await engine.stop()

    async def test_no_provider_no_reviews(self, engine):
        assert await engine.get_retention_rate() == 0.0


class TestWeaknessesThroughEngine:

    async def test_scenario_b(self, engine, scenario_b_records):
        await load_records(engine, scenario_b_records)

        report = await engine.analyze_weaknesses("weekly")

        assert report.has_insufficient_data is False
        first = report.weaknesses[0]
        assert first.type == WeaknessType.ACCURACY
        assert first.urgency == Urgency.IMMEDIATE
        assert first.severity == Severity.CRITICAL

    async def test_insufficient_data(self, engine):
        await engine.record_session(make_session(days_ago=1))
        await engine.record_assessment(make_assessment(days_ago=1))

        report = await engine.analyze_weaknesses("weekly")

        assert report.has_insufficient_data is True
        assert report.weaknesses == []
        assert len(report.unmet_requirements) == 2

    async def test_recommendations(self, engine, scenario_b_records):
        await load_records(engine, scenario_b_records)

        recommendations = await engine.generate_recommendations("weekly")
        again = await engine.generate_recommendations("weekly")

        assert recommendations is again
        assert recommendations[0].priority == Priority.CRITICAL
        assert "accuracy" in [r.category for r in recommendations]

    async def test_recommendation_failure_uses_generic_advice(self, engine, scenario_b_records, monkeypatch):
        await load_records(engine, scenario_b_records)

        async def broken(*args, **kwargs):
            raise RuntimeError("planner bug")

        monkeypatch.setattr(engine.recommendation_engine, "generate_recommendations", broken)

        recommendations = await engine.generate_recommendations("weekly")

        assert [r.category for r in recommendations] == ["general", "general"]
        assert engine.cache.get(("recommendations", "weekly", None)) is None

    async def test_unusable_generated_text_keeps_rule_recommendations(
        self, settings, clock, monotonic, scenario_b_records
    ):
        engine = PerformanceAnalyticsEngine(
            settings=settings,
            text_provider=StubTextProvider({"text": "1. Do more practice"}),
            clock=clock,
            monotonic=monotonic,
        )
        await load_records(engine, scenario_b_records)

        recommendations = await engine.generate_recommendations("weekly")

        assert "accuracy" in [r.category for r in recommendations]
        assert "general" not in [r.category for r in recommendations]
        await engine.stop()


class TestPlanning:

    async def test_learning_path(self, engine, scenario_b_records):
        await load_records(engine, scenario_b_records)

        path = await engine.generate_adaptive_learning_path("weekly")

        assert path.is_fallback is False
        assert WeaknessType.ACCURACY in [a.weakness_type for a in path.focus_areas]
        assert len(path.focus_areas) <= 3

    async def test_learning_path_falls_back(self, engine, scenario_b_records, monkeypatch):
        await load_records(engine, scenario_b_records)

        def broken(*args, **kwargs):
            raise RuntimeError("planner bug")

        monkeypatch.setattr(engine.planner, "generate_adaptive_learning_path", broken)

        path = await engine.generate_adaptive_learning_path("weekly")

        assert path.is_fallback is True
        assert path.focus_areas == []

    async def test_daily_tasks(self, engine, scenario_b_records):
        await load_records(engine, scenario_b_records)

        tasks = await engine.generate_daily_tasks()

        assert all(isinstance(t, StudyTask) for t in tasks)
        assert tasks[0].type == "accuracy_practice"
        assert len(tasks) <= 8


class TestSummaries:

    async def test_performance_insights(self, engine, scenario_a_records):
        await load_records(engine, scenario_a_records)

        insights = await engine.get_performance_insights("weekly")

        assert isinstance(insights, PerformanceInsights)
        assert insights.summary.startswith("Good progress")
        assert insights.key_metrics["composite_score"] == 72
        assert insights.next_steps.long_term

    async def test_empty_insights(self, engine):
        insights = await engine.get_performance_insights("weekly")
        assert insights.summary == "No study activity recorded in this period yet."

    async def test_dashboard(self, engine, scenario_a_records):
        await load_records(engine, scenario_a_records)

        dashboard = await engine.get_dashboard_data("weekly")

        assert isinstance(dashboard, DashboardData)
        assert dashboard.overview["composite_score"] == 72
        assert len(dashboard.charts["accuracy"]) == 3
        assert len(dashboard.recommendations) <= 5
        assert len(dashboard.insights) <= 3

    async def test_compare_periods(self, engine, scenario_a_records):
        await load_records(engine, scenario_a_records)

        comparison = await engine.compare_periods()

        assert isinstance(comparison, ComparativeAnalysis)
        assert [p.period for p in comparison.periods] == ["weekly", "monthly", "quarterly"]

    async def test_compare_subjects(self, engine, scenario_a_records):
        await load_records(engine, scenario_a_records)
        await engine.record_assessment(make_assessment(days_ago=1, correct=3, subject="History"))

        comparison = await engine.compare_subjects()

        assert {s.subject for s in comparison.subjects} == {"Mathematics", "History"}
        assert any(i.startswith("Weakest subject: History") for i in comparison.insights)


class TestEventsAndPersistence:

    async def test_host_events_feed_the_store(self, settings, clock, monotonic):
        bus = EventBus()
        engine = PerformanceAnalyticsEngine(settings=settings, event_bus=bus, clock=clock, monotonic=monotonic)
        await engine.start()

        await bus.publish(EventType.SESSION_COMPLETED, {"session": {"duration": 1200, "subject": "Biology"}})
        await bus.publish(EventType.ASSESSMENT_COMPLETED, {"totalQuestions": 10, "correctAnswers": 9})
        await bus.publish(EventType.SPACED_REPETITION_REVIEW_PROCESSED, {"quality": 4})

        assert engine.store.session_count == 1
        assert engine.store.assessment_count == 1
        assert engine.store.review_retention_rate() == 100.0

        await engine.stop()
        assert bus.handler_count(EventType.SESSION_COMPLETED) == 0

    async def test_burst_publishes_one_update(self, engine, scenario_a_records):
        updates = []
        engine.event_bus.subscribe(EventType.WEAKNESS_ANALYSIS_UPDATED, updates.append)

        await load_records(engine, scenario_a_records)
        await asyncio.sleep(0.3)

        assert len(updates) == 1
        report = updates[0]["report"]
        assert report["timeframe"] == "weekly"
        assert report["subject_breakdown"] == []
        assert report["learning_patterns"] == {}

    async def test_goal_update_invalidates(self, engine, scenario_a_records):
        await load_records(engine, scenario_a_records)
        await engine.calculate_metrics("weekly")
        await engine.start()

        await engine.event_bus.publish(EventType.GOAL_PROGRESS_UPDATED, {"goal": "weekly_hours"})

        assert len(engine.cache) == 0

    async def test_write_through(self, settings, clock, monotonic):
        source = InMemoryRecordSource()
        engine = PerformanceAnalyticsEngine(settings=settings, record_source=source, clock=clock, monotonic=monotonic)

        await engine.record_session(make_session(days_ago=1))

        assert len(source.records) == 1
        await engine.stop()

    async def test_failing_source_does_not_block_ingestion(self, settings, clock, monotonic):
        source = InMemoryRecordSource(fail=True)
        engine = PerformanceAnalyticsEngine(settings=settings, record_source=source, clock=clock, monotonic=monotonic)

        record = await engine.record_assessment(make_assessment(days_ago=1))

        assert engine.store.assessment_count == 1
        assert record.accuracy == pytest.approx(70.0)
        await engine.stop()

    async def test_load_history(self, settings, clock, monotonic):
        source = InMemoryRecordSource([
            make_session(days_ago=1),
            make_assessment(days_ago=2),
            make_session(days_ago=120),
        ])
        engine = PerformanceAnalyticsEngine(settings=settings, record_source=source, clock=clock, monotonic=monotonic)

        loaded = await engine.load_history(days=90)

        assert loaded == 2
        assert engine.store.session_count == 1
        assert engine.store.assessment_count == 1
        await engine.stop()
