"""
Question bank stores.

Three collections feed quizzes:
  class_questions       questions assigned to a class (highest priority)
  question_bank         a user's personal questions
  shared_question_bank  questions every learner can draw from

Each query filters by topic + grade and returns row dicts carrying a stable
`question_id`. Queries may raise; retries and isolation live in
app.services.question_fetcher.
"""
from __future__ import annotations

import copy
import logging
from typing import Optional

import httpx
from postgrest.exceptions import APIError

from app.core.errors import TransientSourceError

logger = logging.getLogger(__name__)

CLASS_TABLE = "class_questions"
PERSONAL_TABLE = "question_bank"
SHARED_TABLE = "shared_question_bank"


class QuestionBankStore:
    def class_questions(self, class_id: str, topic: str, grade: str, app_id: str) -> list[dict]:
        raise NotImplementedError

    def user_questions(self, user_id: str, topic: str, grade: str, app_id: str) -> list[dict]:
        raise NotImplementedError

    def shared_questions(self, topic: str, grade: str, app_id: str) -> list[dict]:
        raise NotImplementedError


class InMemoryQuestionBankStore(QuestionBankStore):
    def __init__(self):
        self._class: dict[str, list[dict]] = {}
        self._user: dict[str, list[dict]] = {}
        self._shared: list[dict] = []

    @staticmethod
    def _matching(rows: list[dict], topic: str, grade: str) -> list[dict]:
        return [copy.deepcopy(r) for r in rows if r.get("topic") == topic and r.get("grade") == grade]

    def add_class_question(self, class_id: str, question: dict) -> None:
        self._class.setdefault(class_id, []).append(question)

    def add_user_question(self, user_id: str, question: dict) -> None:
        self._user.setdefault(user_id, []).append(question)

    def add_shared_question(self, question: dict) -> None:
        self._shared.append(question)

    def class_questions(self, class_id, topic, grade, app_id):
        return self._matching(self._class.get(class_id, []), topic, grade)

    def user_questions(self, user_id, topic, grade, app_id):
        return self._matching(self._user.get(user_id, []), topic, grade)

    def shared_questions(self, topic, grade, app_id):
        return self._matching(self._shared, topic, grade)


# Postgres SQLSTATE codes worth retrying: connection failures (08xxx), statement
# timeout, too many connections, serialization failure, deadlock
TRANSIENT_SQLSTATES = ("57014", "53300", "40001", "40P01")


def _is_transient_api_error(exc: APIError) -> bool:
    code = str(exc.code or "")
    if code.startswith("08") or code in TRANSIENT_SQLSTATES:
        return True
    # PostgREST surfaces gateway failures with the HTTP status as the code
    return code == "429" or (len(code) == 3 and code.startswith("5"))


def _as_source_error(table: str, exc: Exception) -> Exception:
    """Map client failures onto TransientSourceError; anything else is returned unchanged."""
    if isinstance(exc, httpx.TransportError):
        return TransientSourceError(f"{table}: {exc.__class__.__name__}: {exc}", code="unavailable")
    if isinstance(exc, APIError) and _is_transient_api_error(exc):
        return TransientSourceError(f"{table}: {exc.message}", code=str(exc.code))
    return exc


def _row_to_question(row: dict) -> dict:
    question = dict(row)
    question["question_id"] = str(question.pop("id", None) or question.get("question_id") or "")
    return question


class SupabaseQuestionBankStore(QuestionBankStore):
    def __init__(self, supabase_client):
        self.sb = supabase_client

    def _select(self, table: str, topic: str, grade: str, app_id: str, **scope) -> list[dict]:
        q = (
            self.sb.table(table)
            .select("*")
            .eq("app_id", app_id)
            .eq("topic", topic)
            .eq("grade", grade)
        )
        for column, value in scope.items():
            q = q.eq(column, value)
        try:
            r = q.execute()
        except (httpx.TransportError, APIError) as exc:
            mapped = _as_source_error(table, exc)
            if mapped is exc:
                raise
            raise mapped from exc
        rows = getattr(r, "data", None) or []
        return [_row_to_question(row) for row in rows]

    def class_questions(self, class_id, topic, grade, app_id):
        return self._select(CLASS_TABLE, topic, grade, app_id, class_id=class_id)

    def user_questions(self, user_id, topic, grade, app_id):
        return self._select(PERSONAL_TABLE, topic, grade, app_id, user_id=user_id)

    def shared_questions(self, topic, grade, app_id):
        return self._select(SHARED_TABLE, topic, grade, app_id)


BANK_STORE = InMemoryQuestionBankStore()


def get_question_bank_store(supabase_client: Optional[object] = None) -> QuestionBankStore:
    if supabase_client is not None:
        return SupabaseQuestionBankStore(supabase_client)

    from app.core.deps import use_supabase_stores
    if not use_supabase_stores():
        return BANK_STORE

    try:
        from app.core.deps import get_supabase_client
        return SupabaseQuestionBankStore(get_supabase_client())
    except Exception as exc:
        logger.warning("[bank_store.get_question_bank_store] Falling back to memory store: %s", exc)
        return BANK_STORE
