"""Fallback mechanism for degrading gracefully when collaborators fail."""

import inspect
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass
from enum import Enum

from ..logging_config import get_logger

logger = get_logger(__name__)


class FallbackStrategy(str, Enum):
    """Fallback strategies."""
    PRIMARY = "primary"
    CACHED_RESPONSE = "cached_response"
    DEFAULT_RESPONSE = "default_response"
    GRACEFUL_FAILURE = "graceful_failure"


@dataclass
class FallbackConfig:
    """Configuration for a single fallback."""
    strategy: FallbackStrategy
    priority: int = 1  # Lower numbers = higher priority
    enabled: bool = True
    default: Any = None


class FallbackResult:
    """Result of a fallback-protected call."""

    def __init__(
        self,
        value: Any,
        strategy_used: FallbackStrategy,
        is_fallback: bool = True,
        metadata: Optional[Dict[str, Any]] = None
    ):
        self.value = value
        self.strategy_used = strategy_used
        self.is_fallback = is_fallback
        self.metadata = metadata or {}

    def __repr__(self) -> str:
        return f"FallbackResult(strategy={self.strategy_used}, is_fallback={self.is_fallback})"


class FallbackHandler:
    """Runs a collaborator call and substitutes a documented value on failure."""

    def __init__(self, name: str, fallbacks: Optional[List[FallbackConfig]] = None):
        self.name = name
        self.fallbacks: List[FallbackConfig] = []
        self.cache: Dict[str, Any] = {}
        self._stats = {
            "total_calls": 0,
            "successful_calls": 0,
            "fallback_calls": 0,
            "strategy_usage": {}
        }
        for config in fallbacks or []:
            self.add_fallback(config)

    def add_fallback(self, config: FallbackConfig):
        """Add a fallback configuration."""
        self.fallbacks.append(config)
        self.fallbacks.sort(key=lambda x: x.priority)

    async def execute_with_fallback(
        self,
        primary_func: Callable[..., Any],
        *args,
        cache_key: Optional[str] = None,
        **kwargs
    ) -> FallbackResult:
        """Execute function with fallback protection."""
        self._stats["total_calls"] += 1

        try:
            result = primary_func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result

            if cache_key:
                self.cache[cache_key] = result

            self._stats["successful_calls"] += 1
            return FallbackResult(result, FallbackStrategy.PRIMARY, is_fallback=False)

        except Exception as e:
            logger.warning(
                "Primary function failed, attempting fallbacks",
                handler=self.name,
                exception=str(e),
                exception_type=type(e).__name__
            )

            for fallback_config in self.fallbacks:
                if not fallback_config.enabled:
                    continue

                try:
                    result = self._execute_fallback(fallback_config, cache_key)
                except LookupError as fallback_error:
                    logger.debug(
                        "Fallback not applicable",
                        handler=self.name,
                        strategy=fallback_config.strategy,
                        reason=str(fallback_error)
                    )
                    continue

                self._stats["fallback_calls"] += 1
                self._stats["strategy_usage"][fallback_config.strategy] = (
                    self._stats["strategy_usage"].get(fallback_config.strategy, 0) + 1
                )
                return FallbackResult(
                    result,
                    fallback_config.strategy,
                    metadata={"original_exception": str(e)}
                )

            logger.error(
                "All fallbacks exhausted",
                handler=self.name,
                original_exception=str(e)
            )
            return FallbackResult(
                None,
                FallbackStrategy.GRACEFUL_FAILURE,
                metadata={"original_exception": str(e)}
            )

    def _execute_fallback(self, config: FallbackConfig, cache_key: Optional[str]) -> Any:
        """Resolve the value for a fallback strategy."""
        if config.strategy == FallbackStrategy.CACHED_RESPONSE:
            if not cache_key or cache_key not in self.cache:
                raise LookupError("No cached response available")
            return self.cache[cache_key]

        elif config.strategy == FallbackStrategy.DEFAULT_RESPONSE:
            default = config.default
            return default() if callable(default) else default

        elif config.strategy == FallbackStrategy.GRACEFUL_FAILURE:
            return None

        raise ValueError(f"Unknown fallback strategy: {config.strategy}")

    def get_stats(self) -> Dict[str, Any]:
        """Get fallback handler statistics."""
        total_calls = max(self._stats["total_calls"], 1)
        return {
            "name": self.name,
            "total_calls": self._stats["total_calls"],
            "success_rate": self._stats["successful_calls"] / total_calls,
            "fallback_rate": self._stats["fallback_calls"] / total_calls,
            "strategy_usage": self._stats["strategy_usage"],
            "cache_size": len(self.cache)
        }

    def clear_cache(self):
        """Clear the last-known-good cache."""
        self.cache.clear()


def create_collaborator_fallbacks(default: Any) -> List[FallbackConfig]:
    """Last known good value first, then the documented default."""
    return [
        FallbackConfig(strategy=FallbackStrategy.CACHED_RESPONSE, priority=1),
        FallbackConfig(strategy=FallbackStrategy.DEFAULT_RESPONSE, priority=2, default=default),
    ]
