"""
Learner history store.

Reads what the engine needs from a learner profile:
  - answered question history (AnsweredRecord rows)
  - ids of bank questions already answered (excluded from new quizzes)
  - last asked complexity per topic (seed for the progressive target)

Storage: Supabase `learner_profiles` table when QUIZ_STORE_BACKEND=supabase,
otherwise an in-process dict. Reads are fail-open and return empty values.
"""
from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger("quizengine.history_store")

PROFILE_TABLE = "learner_profiles"


class HistoryStore:
    def load_answered_history(self, user_id: str) -> list[dict]:
        raise NotImplementedError

    def load_answered_bank_ids(self, user_id: str) -> list[str]:
        raise NotImplementedError

    def load_last_asked_complexity(self, user_id: str) -> dict[str, float]:
        raise NotImplementedError

    def save_last_asked_complexity(self, user_id: str, topic: str, value: float) -> None:
        raise NotImplementedError


class InMemoryHistoryStore(HistoryStore):
    def __init__(self):
        self._profiles: dict[str, dict] = {}

    def _profile(self, user_id: str) -> dict:
        return self._profiles.setdefault(user_id, {
            "answered_questions": [],
            "answered_question_bank_ids": [],
            "last_asked_complexity_by_topic": {},
        })

    def record_answer(self, user_id: str, record: dict) -> None:
        self._profile(user_id)["answered_questions"].append(dict(record))
        if record.get("source") in ("questionBank", "sharedQuestionBank") and record.get("question_id"):
            self._profile(user_id)["answered_question_bank_ids"].append(record["question_id"])

    def load_answered_history(self, user_id):
        if not user_id:
            return []
        return list(self._profile(user_id)["answered_questions"])

    def load_answered_bank_ids(self, user_id):
        if not user_id:
            return []
        return list(self._profile(user_id)["answered_question_bank_ids"])

    def load_last_asked_complexity(self, user_id):
        if not user_id:
            return {}
        return dict(self._profile(user_id)["last_asked_complexity_by_topic"])

    def save_last_asked_complexity(self, user_id, topic, value):
        self._profile(user_id)["last_asked_complexity_by_topic"][topic] = float(value)


class SupabaseHistoryStore(HistoryStore):
    def __init__(self, supabase_client):
        self.sb = supabase_client

    def _profile(self, user_id: str) -> dict:
        if not user_id:
            return {}
        try:
            r = (
                self.sb.table(PROFILE_TABLE)
                .select("answered_questions, answered_question_bank_ids, last_asked_complexity_by_topic")
                .eq("user_id", user_id)
                .maybe_single()
                .execute()
            )
        except Exception as exc:
            logger.warning("[history_store._profile] Failed to load profile %s: %s", user_id, exc)
            return {}
        return getattr(r, "data", None) or {}

    def load_answered_history(self, user_id):
        return list(self._profile(user_id).get("answered_questions") or [])

    def load_answered_bank_ids(self, user_id):
        return [str(i) for i in (self._profile(user_id).get("answered_question_bank_ids") or [])]

    def load_last_asked_complexity(self, user_id):
        raw = self._profile(user_id).get("last_asked_complexity_by_topic") or {}
        out = {}
        for topic, value in raw.items():
            try:
                out[topic] = float(value)
            except (TypeError, ValueError):
                continue
        return out

    def save_last_asked_complexity(self, user_id, topic, value):
        current = self.load_last_asked_complexity(user_id)
        current[topic] = float(value)
        (
            self.sb.table(PROFILE_TABLE)
            .upsert({"user_id": user_id, "last_asked_complexity_by_topic": current}, on_conflict="user_id")
            .execute()
        )


HISTORY_STORE = InMemoryHistoryStore()


def get_history_store(supabase_client: Optional[object] = None) -> HistoryStore:
    if supabase_client is not None:
        return SupabaseHistoryStore(supabase_client)

    from app.core.deps import use_supabase_stores
    if not use_supabase_stores():
        return HISTORY_STORE

    try:
        from app.core.deps import get_supabase_client
        return SupabaseHistoryStore(get_supabase_client())
    except Exception as exc:
        logger.warning("[history_store.get_history_store] Falling back to memory store: %s", exc)
        return HISTORY_STORE
