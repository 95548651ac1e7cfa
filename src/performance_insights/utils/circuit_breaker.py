"""Circuit breaker for optional collaborators that keep failing."""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar
from dataclasses import dataclass, field

from ..logging_config import get_logger
from .exceptions import CollaboratorUnavailableException

logger = get_logger(__name__)

T = TypeVar('T')


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, rejecting calls
    HALF_OPEN = "half_open"  # Probing whether the collaborator recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 3
    recovery_timeout: float = 300.0
    success_threshold: int = 1
    expected_exceptions: tuple = (Exception,)


@dataclass
class CircuitBreakerStats:
    """Circuit breaker statistics."""
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: Optional[float] = None
    total_requests: int = 0
    total_failures: int = 0
    total_successes: int = 0
    rejected_requests: int = 0
    state_changes: Dict[str, int] = field(default_factory=lambda: {
        CircuitState.CLOSED: 0,
        CircuitState.OPEN: 0,
        CircuitState.HALF_OPEN: 0
    })


class CircuitBreaker:
    """Stops calling a collaborator after repeated failures.

    Calls have no timeout; collaborators are awaited until they answer or fail.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.stats = CircuitBreakerStats()
        self._clock = clock
        self._lock = asyncio.Lock()

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Await ``func`` with circuit breaker protection."""
        async with self._lock:
            self.stats.total_requests += 1

            if self.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self._transition(CircuitState.HALF_OPEN)
                    self.stats.success_count = 0
                else:
                    self.stats.rejected_requests += 1
                    raise CollaboratorUnavailableException(
                        self.name,
                        reason="circuit open",
                        details={"failure_count": self.stats.failure_count},
                    )

        try:
            result = await func(*args, **kwargs)
        except self.config.expected_exceptions as e:
            await self._on_failure(e)
            raise

        await self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt reset."""
        if self.stats.last_failure_time is None:
            return True
        return self._clock() - self.stats.last_failure_time >= self.config.recovery_timeout

    async def _on_success(self):
        async with self._lock:
            self.stats.success_count += 1
            self.stats.total_successes += 1
            if self.state == CircuitState.HALF_OPEN:
                if self.stats.success_count >= self.config.success_threshold:
                    self.stats.failure_count = 0
                    self._transition(CircuitState.CLOSED)
            else:
                self.stats.failure_count = 0

    async def _on_failure(self, exception: Exception):
        async with self._lock:
            self.stats.failure_count += 1
            self.stats.total_failures += 1
            self.stats.last_failure_time = self._clock()

            logger.warning(
                "Circuit breaker recorded failure",
                name=self.name,
                exception=str(exception),
                failure_count=self.stats.failure_count,
                state=self.state
            )

            if self.state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
            elif (
                self.state == CircuitState.CLOSED
                and self.stats.failure_count >= self.config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState):
        old_state = self.state
        self.state = new_state
        self.stats.state_changes[new_state] += 1
        logger.info(
            "Circuit breaker state transition",
            name=self.name,
            from_state=old_state,
            to_state=new_state
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get circuit breaker statistics."""
        return {
            "name": self.name,
            "state": self.state,
            "stats": self.stats.__dict__,
            "health_ratio": (
                self.stats.total_successes / max(self.stats.total_requests, 1)
            )
        }

    async def reset(self):
        """Manually reset circuit breaker to closed state."""
        async with self._lock:
            self.stats.failure_count = 0
            self.stats.success_count = 0
            if self.state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)
