"""
Class question cache.

Holds the raw (unfiltered) class-question list fetched for a
(class_id, topic, grade, app_id) key for a freshness window, so repeated quiz
starts in the same class do not re-query the bank. Subtopic and
answered-question filters are applied by the caller on every read.

Shared across requests in one process; last write wins.
"""
from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


class ClassQuestionCache:
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[tuple, tuple[float, list[dict]]] = {}

    @staticmethod
    def _key(class_id: str, topic: str, grade: str, app_id: str) -> tuple:
        return (app_id, class_id, topic, grade)

    def _expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at > self.ttl_seconds

    def get(self, class_id: str, topic: str, grade: str, app_id: str) -> Optional[list[dict]]:
        """Return a copy of the cached list, or None when missing or expired."""
        key = self._key(class_id, topic, grade, app_id)
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            stored_at, questions = entry
            if self._expired(stored_at):
                del self._data[key]
                logger.debug("[question_cache.get] Cache expired for %s", key)
                return None
        logger.debug("[question_cache.get] Cache hit for %s (%d questions)", key, len(questions))
        return copy.deepcopy(questions)

    def set(self, class_id: str, topic: str, grade: str, app_id: str, questions: list[dict]) -> None:
        key = self._key(class_id, topic, grade, app_id)
        snapshot = copy.deepcopy(list(questions))
        with self._lock:
            self._data[key] = (self._clock(), snapshot)
        logger.debug("[question_cache.set] Cached %d questions for %s", len(snapshot), key)

    def clear(self, class_id: str, topic: str, grade: str, app_id: str) -> None:
        with self._lock:
            self._data.pop(self._key(class_id, topic, grade, app_id), None)

    def clear_expired(self) -> int:
        with self._lock:
            stale = [k for k, (stored_at, _) in self._data.items() if self._expired(stored_at)]
            for k in stale:
                del self._data[k]
        if stale:
            logger.info("[question_cache.clear_expired] Cleared %d expired entries", len(stale))
        return len(stale)

    def clear_all(self) -> None:
        with self._lock:
            count = len(self._data)
            self._data.clear()
        logger.info("[question_cache.clear_all] Cleared %d entries", count)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
