"""Abstract collaborator interfaces.

Hosts inject implementations of these interfaces. Both providers are optional;
the engine substitutes documented defaults when they are absent or failing.
"""

import abc
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..schemas.records import AssessmentRecord, SessionRecord

StudyRecord = Union[SessionRecord, AssessmentRecord]


class RecordSource(abc.ABC):
    """Durable storage for study records."""

    @abc.abstractmethod
    async def append(self, record: StudyRecord) -> None:
        """Persist a single record."""
        pass

    @abc.abstractmethod
    async def query_range(
        self,
        start: datetime,
        end: datetime,
        subject: Optional[str] = None,
    ) -> List[StudyRecord]:
        """Return records whose timestamp lies within [start, end]."""
        pass


class SpacedRepetitionProvider(abc.ABC):
    """Source of review retention statistics."""

    @abc.abstractmethod
    async def get_retention_statistics(self) -> Dict[str, Any]:
        """Return at least ``{"retention_rate": float}`` on a 0-100 scale."""
        pass


class FreeTextRecommendationProvider(abc.ABC):
    """Generates recommendation prose from an analysis context.

    The returned text is expected to contain numbered items ("1.", "2.", ...)
    with optional ``Priority:``, ``Description:``, ``Impact:`` lines and
    bulleted actions.
    """

    @abc.abstractmethod
    async def generate(self, prompt_context: Dict[str, Any]) -> str:
        """Return free text for the given context."""
        pass
