"""
Source fetcher: pulls bank candidates for a quiz from three collections.

  1. class bank     (if class_id)  cached per (class, topic, grade, app), 3 retries / 1000ms
  2. personal bank  (if user_id)   2 retries / 500ms
  3. shared bank    (always)       2 retries / 500ms

The three queries run concurrently. Each is isolated: a failure is recorded
in MergedResult.errors under its source name and never aborts the others.
Results are merged class -> personal -> shared, deduped by question_id (first
wins), with answered ids and the subtopic allow-list applied on every call.

If the merged list is empty and any source errored, a single
QuestionFetchError is raised.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Optional

from app.core.errors import (
    FETCH_AGGREGATE,
    FETCH_CLASS_FAILURE,
    FETCH_MISSING_INDEX,
    KIND_INDEX,
    KIND_QUERY,
    QuestionFetchError,
    SourceErrorInfo,
)
from app.services.bank_store import QuestionBankStore
from app.services.question_cache import ClassQuestionCache
from app.services.retry import CLASS_POLICY, SECONDARY_POLICY, RetryPolicy, is_missing_index_error, retry_with_backoff
from app.services.subtopic_filter import is_subtopic_allowed

logger = logging.getLogger(__name__)

CLASS_SOURCE = "classQuestions"
USER_SOURCE = "userQuestions"
SHARED_SOURCE = "sharedQuestions"

SOURCE_QUESTION_BANK = "questionBank"
SOURCE_SHARED_BANK = "sharedQuestionBank"

_SOURCE_LABELS = {
    CLASS_SOURCE: "class questions",
    USER_SOURCE: "personal questions",
    SHARED_SOURCE: "shared questions",
}

# source name -> (candidate source tag, collection tag)
_SOURCE_TAGS = {
    CLASS_SOURCE: (SOURCE_QUESTION_BANK, "classQuestions"),
    USER_SOURCE: (SOURCE_QUESTION_BANK, "questionBank"),
    SHARED_SOURCE: (SOURCE_SHARED_BANK, "sharedQuestionBank"),
}


@dataclass
class SourceResult:
    questions: list[dict] = field(default_factory=list)
    error: Optional[SourceErrorInfo] = None


@dataclass
class MergedResult:
    questions: list[dict] = field(default_factory=list)
    errors: dict[str, SourceErrorInfo] = field(default_factory=dict)


def classify_source_error(source: str, exc: BaseException) -> SourceErrorInfo:
    details = str(exc) or exc.__class__.__name__
    if is_missing_index_error(exc):
        return SourceErrorInfo(
            kind=KIND_INDEX,
            message="Missing database index for this query. An operator needs to create it.",
            details=details,
        )
    return SourceErrorInfo(
        kind=KIND_QUERY,
        message=f"Failed to load {_SOURCE_LABELS.get(source, source)}: {details}",
        details=details,
    )


class SourceFetcher:
    def __init__(
        self,
        store: QuestionBankStore,
        cache: Optional[ClassQuestionCache] = None,
        *,
        class_policy: RetryPolicy = CLASS_POLICY,
        secondary_policy: RetryPolicy = SECONDARY_POLICY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.cache = cache if cache is not None else ClassQuestionCache()
        self.class_policy = class_policy
        self.secondary_policy = secondary_policy
        self._sleep = sleep

    # ── individual sources ───────────────────────────────────────────────

    async def _query(self, label: str, policy: RetryPolicy, fn, *args) -> list[dict]:
        async def _call():
            return await asyncio.to_thread(fn, *args)
        rows = await retry_with_backoff(_call, policy, label=label, sleep=self._sleep)
        return list(rows or [])

    async def _fetch_class(self, class_id: str, topic: str, grade: str, app_id: str) -> list[dict]:
        cached = self.cache.get(class_id, topic, grade, app_id)
        if cached:
            logger.info(
                "[question_fetcher._fetch_class] Using %d cached class questions for class=%s topic=%r grade=%s",
                len(cached), class_id, topic, grade,
            )
            return cached

        logger.info(
            "[question_fetcher._fetch_class] Cache miss, querying class=%s topic=%r grade=%s",
            class_id, topic, grade,
        )
        rows = await self._query(
            f"class questions ({class_id})", self.class_policy,
            self.store.class_questions, class_id, topic, grade, app_id,
        )
        if rows:
            # cache before filtering so restriction changes don't need a refetch
            self.cache.set(class_id, topic, grade, app_id, rows)
        return rows

    async def _fetch_user(self, user_id: str, topic: str, grade: str, app_id: str) -> list[dict]:
        return await self._query(
            f"personal questions ({user_id})", self.secondary_policy,
            self.store.user_questions, user_id, topic, grade, app_id,
        )

    async def _fetch_shared(self, topic: str, grade: str, app_id: str) -> list[dict]:
        return await self._query(
            "shared questions", self.secondary_policy,
            self.store.shared_questions, topic, grade, app_id,
        )

    async def _isolated(self, source: str, coro, topic: str, grade: str) -> SourceResult:
        try:
            return SourceResult(questions=await coro)
        except Exception as exc:
            info = classify_source_error(source, exc)
            logger.error(
                "[question_fetcher.fetch] %s failed (kind=%s) topic=%r grade=%s: %s",
                source, info.kind, topic, grade, exc,
            )
            return SourceResult(error=info)

    # ── public API ───────────────────────────────────────────────────────

    async def fetch_async(
        self,
        topic: str,
        grade: str,
        user_id: Optional[str] = None,
        class_id: Optional[str] = None,
        excluded_question_ids: Optional[Iterable[str]] = None,
        app_id: str = "default-app-id",
        allowed_subtopics_by_topic: Optional[dict] = None,
    ) -> MergedResult:
        jobs: dict[str, Awaitable[SourceResult]] = {}
        if class_id:
            jobs[CLASS_SOURCE] = self._isolated(CLASS_SOURCE, self._fetch_class(class_id, topic, grade, app_id), topic, grade)
        if user_id:
            jobs[USER_SOURCE] = self._isolated(USER_SOURCE, self._fetch_user(user_id, topic, grade, app_id), topic, grade)
        jobs[SHARED_SOURCE] = self._isolated(SHARED_SOURCE, self._fetch_shared(topic, grade, app_id), topic, grade)

        outcomes = await asyncio.gather(*jobs.values())
        results = dict(zip(jobs.keys(), outcomes))

        merged = self._merge(results, topic, set(excluded_question_ids or []), allowed_subtopics_by_topic)

        logger.info(
            "[question_fetcher.fetch] topic=%r grade=%s class=%s user=%s -> %d questions, errors=%s",
            topic, grade, class_id, user_id, len(merged.questions),
            sorted(merged.errors) or "none",
        )

        if not merged.questions and merged.errors:
            raise self._escalate(merged.errors)
        return merged

    def fetch(self, *args, **kwargs) -> MergedResult:
        """Blocking wrapper around fetch_async for synchronous callers."""
        return asyncio.run(self.fetch_async(*args, **kwargs))

    # ── merge / escalation ───────────────────────────────────────────────

    @staticmethod
    def _merge(
        results: dict[str, SourceResult],
        topic: str,
        excluded: set,
        allowed_subtopics_by_topic: Optional[dict],
    ) -> MergedResult:
        merged = MergedResult()
        seen: set[str] = set()

        for source in (CLASS_SOURCE, USER_SOURCE, SHARED_SOURCE):
            result = results.get(source)
            if result is None:
                continue
            if result.error is not None:
                merged.errors[source] = result.error
                continue

            source_tag, collection = _SOURCE_TAGS[source]
            kept = 0
            for row in result.questions:
                question_id = row.get("question_id")
                if not question_id:
                    logger.warning("[question_fetcher._merge] %s row missing question_id, skipping", source)
                    continue
                if question_id in excluded or question_id in seen:
                    continue
                if not is_subtopic_allowed(row, topic, allowed_subtopics_by_topic):
                    continue
                seen.add(question_id)
                merged.questions.append({
                    **row,
                    "question_id": question_id,
                    "source": source_tag,
                    "collection": collection,
                })
                kept += 1
            logger.debug(
                "[question_fetcher._merge] %s: kept %d of %d", source, kept, len(result.questions)
            )
        return merged

    @staticmethod
    def _escalate(errors: dict[str, SourceErrorInfo]) -> QuestionFetchError:
        if any(e.kind == KIND_INDEX for e in errors.values()):
            return QuestionFetchError(
                FETCH_MISSING_INDEX,
                "Database index required. An operator needs to create the missing index.",
                errors,
            )
        if CLASS_SOURCE in errors:
            return QuestionFetchError(
                FETCH_CLASS_FAILURE,
                f"Failed to load class questions. {errors[CLASS_SOURCE].message}",
                errors,
            )
        details = "; ".join(f"{source}: {e.message}" for source, e in errors.items())
        return QuestionFetchError(FETCH_AGGREGATE, f"Failed to load questions: {details}", errors)
