"""Process-wide memo of generated task sets keyed by a coarse project signature."""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional, Tuple

from app.core.config import settings
from app.services.date_range import round_to_half
from app.services.project_descriptor import ProjectDescriptor
from app.services.task_set import GeneratedTaskSet

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, int, str]

BASELINE_TIMELINE_DAYS = 30
DETAILED_DESCRIPTION_LENGTH = 100
MIN_ADAPTED_HOURS = 0.5


def cache_key(descriptor: ProjectDescriptor) -> CacheKey:
    detail = "detailed" if len(descriptor.description) > DETAILED_DESCRIPTION_LENGTH else "simple"
    return (
        (descriptor.category or "general").lower(),
        descriptor.priority,
        descriptor.timeline // 7,
        detail,
    )


def adapt_cached_pattern(pattern: GeneratedTaskSet, descriptor: ProjectDescriptor) -> GeneratedTaskSet:
    """Deep-copy ``pattern`` and rescale it for ``descriptor``.

    Hours scale by timeline/30 to the nearest half hour. Dependencies and any
    supplied dates belong to the original project and are cleared.
    """
    adapted = pattern.model_copy(deep=True)
    scale = descriptor.timeline / BASELINE_TIMELINE_DAYS
    for task in adapted.subtasks:
        task.estimated_hours = max(MIN_ADAPTED_HOURS, round_to_half(task.estimated_hours * scale))
        task.dependencies = []
        task.start_date = None
        task.due_date = None
    adapted.total_estimated_hours = adapted.summed_hours()
    adapted.fallback_used = False
    adapted.from_cache = True
    return adapted


@dataclass
class _Entry:
    task_set: GeneratedTaskSet
    stored_at: float


class PatternCache:
    """Bounded LRU cache with optional expiry.

    ``clock`` returns seconds and defaults to ``time.monotonic``; tests pass a
    fake to control expiry.
    """

    def __init__(
        self,
        max_entries: int = 128,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, _Entry]" = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def lookup(self, descriptor: ProjectDescriptor) -> Optional[GeneratedTaskSet]:
        """Return an adapted copy of the pattern stored for ``descriptor``'s signature, if fresh."""
        key = cache_key(descriptor)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry):
                del self._entries[key]
                logger.debug("Pattern cache entry %s expired", key)
                return None
            self._entries.move_to_end(key)
            pattern = entry.task_set
        return adapt_cached_pattern(pattern, descriptor)

    def store(self, descriptor: ProjectDescriptor, task_set: GeneratedTaskSet) -> None:
        if task_set.fallback_used or task_set.from_cache:
            return
        key = cache_key(descriptor)
        snapshot = task_set.model_copy(deep=True)
        with self._lock:
            self._entries[key] = _Entry(task_set=snapshot, stored_at=self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Pattern cache evicted %s", evicted)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Pattern cache cleared")

    def _expired(self, entry: _Entry) -> bool:
        if self.ttl_seconds is None:
            return False
        return self._clock() - entry.stored_at >= self.ttl_seconds


_pattern_cache: Optional[PatternCache] = None
_pattern_cache_lock = Lock()


def get_pattern_cache() -> PatternCache:
    """FastAPI dependency returning the process-wide cache."""
    global _pattern_cache
    with _pattern_cache_lock:
        if _pattern_cache is None:
            _pattern_cache = PatternCache(
                max_entries=settings.pattern_cache_max_entries,
                ttl_seconds=settings.pattern_cache_ttl_seconds,
            )
        return _pattern_cache
