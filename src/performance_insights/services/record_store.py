"""Bounded in-memory store for study sessions and assessments."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, List, Optional

from pydantic import ValidationError

from ..config import Settings
from ..integrations.collaborators import RecordSource, StudyRecord
from ..logging_config import get_logger
from ..schemas.records import AssessmentRecord, SessionRecord
from ..utils.exceptions import MalformedRecordException
from ..utils.fallback import FallbackConfig, FallbackHandler, FallbackStrategy

logger = get_logger(__name__)

MAX_REVIEWS = 500


@dataclass
class RecordSet:
    """Records selected by a window or range query, in insertion order."""
    sessions: List[SessionRecord] = field(default_factory=list)
    assessments: List[AssessmentRecord] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.sessions and not self.assessments

    def for_subject(self, subject: Optional[str]) -> "RecordSet":
        if subject is None:
            return self
        return RecordSet(
            sessions=[s for s in self.sessions if s.subject == subject],
            assessments=[a for a in self.assessments if a.subject == subject],
        )

    def between(self, start: datetime, end: datetime) -> "RecordSet":
        return RecordSet(
            sessions=[s for s in self.sessions if start < s.timestamp <= end],
            assessments=[a for a in self.assessments if start < a.timestamp <= end],
        )

    def sorted_assessments(self) -> List[AssessmentRecord]:
        return sorted(self.assessments, key=lambda a: a.timestamp)

    def sorted_sessions(self) -> List[SessionRecord]:
        return sorted(self.sessions, key=lambda s: s.timestamp)


class RecordStore:
    """Holds the most recent records up to the configured caps.

    Eviction follows insertion order, not timestamp order, so a back-dated
    record appended last is still the newest entry for eviction purposes.
    """

    def __init__(
        self,
        settings: Settings,
        source: Optional[RecordSource] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        self.source = source
        self._clock = clock
        self._sessions: Deque[SessionRecord] = deque(maxlen=settings.max_sessions)
        self._assessments: Deque[AssessmentRecord] = deque(maxlen=settings.max_assessments)
        self._review_qualities: Deque[int] = deque(maxlen=MAX_REVIEWS)
        self._persistence = FallbackHandler(
            "record_source",
            [FallbackConfig(strategy=FallbackStrategy.GRACEFUL_FAILURE)],
        )

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def assessment_count(self) -> int:
        return len(self._assessments)

    def append(self, record: StudyRecord) -> StudyRecord:
        """Append a validated record, evicting the oldest-inserted beyond the cap."""
        if isinstance(record, SessionRecord):
            self._sessions.append(record)
        elif isinstance(record, AssessmentRecord):
            self._assessments.append(record)
        else:
            raise MalformedRecordException("unknown", payload=record)
        return record

    def append_session(self, payload: Any) -> SessionRecord:
        return self.append(self._coerce(SessionRecord, "session", payload))

    def append_assessment(self, payload: Any) -> AssessmentRecord:
        return self.append(self._coerce(AssessmentRecord, "assessment", payload))

    async def persist(self, record: StudyRecord) -> bool:
        """Write a record through to the host source; failures are logged only."""
        if self.source is None:
            return False
        result = await self._persistence.execute_with_fallback(self.source.append, record)
        return not result.is_fallback

    async def load_from_source(self, start: datetime, end: datetime) -> int:
        """Hydrate the store from the host source. Returns the number of records loaded."""
        if self.source is None:
            return 0
        result = await self._persistence.execute_with_fallback(
            self.source.query_range, start, end
        )
        records = result.value or []
        loaded = 0
        for record in sorted(records, key=lambda r: r.timestamp):
            try:
                self.append(record)
                loaded += 1
            except MalformedRecordException as e:
                logger.warning("Skipping unreadable stored record", error=e.to_dict())
        logger.info("Loaded records from source", count=loaded)
        return loaded

    def query(self, window_days: int, subject: Optional[str] = None) -> RecordSet:
        """Records from the last ``window_days`` days, optionally for one subject."""
        start = self._clock() - timedelta(days=window_days)
        return RecordSet(
            sessions=[s for s in self._sessions if s.timestamp >= start],
            assessments=[a for a in self._assessments if a.timestamp >= start],
        ).for_subject(subject)

    def query_range(
        self,
        start: datetime,
        end: datetime,
        subject: Optional[str] = None,
    ) -> RecordSet:
        """Records with ``start <= timestamp <= end``."""
        return RecordSet(
            sessions=[s for s in self._sessions if start <= s.timestamp <= end],
            assessments=[a for a in self._assessments if start <= a.timestamp <= end],
        ).for_subject(subject)

    def all_records(self) -> RecordSet:
        return RecordSet(sessions=list(self._sessions), assessments=list(self._assessments))

    def subjects(self) -> List[str]:
        """Distinct subjects in first-seen order."""
        seen = {}
        for record in list(self._sessions) + list(self._assessments):
            seen.setdefault(record.subject, None)
        return list(seen)

    def record_review(self, quality: Any) -> None:
        """Log a spaced-repetition review outcome (quality 0-5)."""
        try:
            self._review_qualities.append(int(quality))
        except (TypeError, ValueError):
            self._review_qualities.append(0)

    def review_retention_rate(self) -> Optional[float]:
        """Share of reviews with quality >= 3, or None when no reviews were logged."""
        if not self._review_qualities:
            return None
        successful = sum(1 for q in self._review_qualities if q >= 3)
        return successful / len(self._review_qualities) * 100

    def clear(self) -> None:
        self._sessions.clear()
        self._assessments.clear()
        self._review_qualities.clear()

    @staticmethod
    def _coerce(model, record_type: str, payload: Any):
        if isinstance(payload, model):
            return payload
        if not isinstance(payload, dict):
            raise MalformedRecordException(record_type, payload=payload)
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise MalformedRecordException(
                record_type, payload=payload, details={"errors": e.errors(include_url=False)}
            ) from e
