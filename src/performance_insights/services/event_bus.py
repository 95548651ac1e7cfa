"""Publish/subscribe channel between the engine and its host."""

import inspect
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Union

from ..logging_config import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class EventType(str, Enum):
    """Event names exchanged with the host."""
    SESSION_COMPLETED = "sessionCompleted"
    ASSESSMENT_COMPLETED = "assessmentCompleted"
    GOAL_PROGRESS_UPDATED = "goalProgressUpdated"
    SPACED_REPETITION_REVIEW_PROCESSED = "spacedRepetitionReviewProcessed"
    WEAKNESS_ANALYSIS_UPDATED = "weaknessAnalysisUpdated"


def _event_name(event_type: Union[EventType, str]) -> str:
    return event_type.value if isinstance(event_type, EventType) else event_type


class EventBus:
    """Explicit event channel; handlers may be sync or async."""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self.error_count = 0

    def subscribe(self, event_type: Union[EventType, str], handler: EventHandler) -> None:
        name = _event_name(event_type)
        if handler not in self._handlers[name]:
            self._handlers[name].append(handler)

    def unsubscribe(self, event_type: Union[EventType, str], handler: EventHandler) -> None:
        name = _event_name(event_type)
        if handler in self._handlers.get(name, []):
            self._handlers[name].remove(handler)

    def handler_count(self, event_type: Union[EventType, str]) -> int:
        name = _event_name(event_type)
        return len(self._handlers.get(name, []))

    async def publish(self, event_type: Union[EventType, str], data: Dict[str, Any]) -> None:
        """Deliver ``data`` to every handler; a failing handler does not stop the rest."""
        name = _event_name(event_type)

        for handler in list(self._handlers.get(name, [])):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.error_count += 1
                logger.error(
                    "Event handler failed",
                    event_type=name,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                )
