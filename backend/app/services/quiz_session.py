"""
Quiz session service: the quiz-start flow.

  1. load answered history + answered bank ids         (HistoryStore)
  2. load enrollment: class, subtopic allow-list, bank probability  (EnrollmentService)
  3. compute the progressive target from the stored last-asked value
  4. persist the new last-asked value (best effort)
  5. assemble the quiz

Lookup failures in steps 1-2 and 4 are fail-open; only a QuestionFetchError
from assembly propagates.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from app.services.enrollment import EnrollmentService
from app.services.history_store import HistoryStore
from app.services.mastery_model import (
    adapt_history,
    next_target_complexity,
    per_topic_complexity,
    rank_by_complexity,
)
from app.services.quiz_assembler import AssemblyResult, QuizAssembler

logger = logging.getLogger(__name__)

DIAGNOSTIC_RANKED_LIMIT = 20


@dataclass
class QuizSession:
    topic: str
    grade: str
    target_difficulty: float
    class_id: Optional[str]
    bank_probability: float
    result: AssemblyResult
    diagnostics: dict = field(default_factory=dict)


class QuizSessionService:
    def __init__(
        self,
        assembler: QuizAssembler,
        history_store: HistoryStore,
        enrollment_service: EnrollmentService,
        app_id: str = "default-app-id",
    ):
        self.assembler = assembler
        self.history_store = history_store
        self.enrollment_service = enrollment_service
        self.app_id = app_id

    async def _safe(self, label: str, fn, default):
        """Run a blocking store lookup off the event loop; log and return `default` on failure."""
        try:
            return await asyncio.to_thread(fn)
        except Exception as exc:
            logger.warning("[quiz_session.start_quiz] %s failed: %s", label, exc)
            return default

    async def start_quiz_async(
        self,
        user_id: str,
        topic: str,
        grade: str = "G3",
        daily_goals: Union[int, dict, None] = None,
        mode: str = "progressive",
    ) -> QuizSession:
        answered = await self._safe("history lookup", lambda: self.history_store.load_answered_history(user_id), [])
        answered_ids = await self._safe("answered bank ids", lambda: self.history_store.load_answered_bank_ids(user_id), [])
        last_asked_map = await self._safe("last asked complexity", lambda: self.history_store.load_last_asked_complexity(user_id), {})

        enrollment = await self._safe("enrollment lookup", lambda: self.enrollment_service.enrollment_for(user_id), None)
        class_id = enrollment.class_id if enrollment else None
        allowlist = (enrollment.allowed_subtopics_by_topic or None) if enrollment else None
        bank_probability = await self._safe(
            "class configuration",
            lambda: self.enrollment_service.bank_sample_probability_for(class_id),
            0.7,
        )

        adapted = adapt_history(answered, user_id)
        target = next_target_complexity(
            adapted, topic, mode=mode, last_asked_complexity=last_asked_map.get(topic),
        )
        logger.info("[quiz_session.start_quiz] Complexity target for %r => %.3f", topic, target)

        await self._safe(
            "persist last asked complexity",
            lambda: self.history_store.save_last_asked_complexity(user_id, topic, target),
            None,
        )

        result = await self.assembler.assemble_async(
            topic=topic,
            daily_goal=daily_goals,
            history=answered,
            target_difficulty=target,
            grade=grade,
            user_id=user_id,
            class_id=class_id,
            excluded_ids=answered_ids,
            app_id=self.app_id,
            bank_probability=bank_probability,
            subtopic_allowlist=allowlist,
        )

        diagnostics = {
            "per_topic": [t.to_dict() for t in per_topic_complexity(adapted)],
            "ranked": [r.to_dict() for r in rank_by_complexity(adapted)[:DIAGNOSTIC_RANKED_LIMIT]],
        }
        return QuizSession(
            topic=topic,
            grade=grade,
            target_difficulty=target,
            class_id=class_id,
            bank_probability=bank_probability,
            result=result,
            diagnostics=diagnostics,
        )

    def start_quiz(self, *args, **kwargs) -> QuizSession:
        return asyncio.run(self.start_quiz_async(*args, **kwargs))


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_SERVICE: Optional[QuizSessionService] = None


def get_quiz_session_service() -> QuizSessionService:
    global _SERVICE
    if _SERVICE is None:
        from app.core.config import get_settings
        from app.services.enrollment import get_enrollment_service
        from app.services.history_store import get_history_store
        from app.services.quiz_assembler import get_quiz_assembler

        _SERVICE = QuizSessionService(
            get_quiz_assembler(),
            get_history_store(),
            get_enrollment_service(),
            app_id=get_settings().app_id,
        )
    return _SERVICE
