"""
Tests for the question bank stores.

The Supabase store runs against a small fake client that records filters and
can fail on execute(), so error mapping is checked without a network.
"""
import sys
import os
from types import SimpleNamespace

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import httpx
import pytest
from postgrest.exceptions import APIError

from app.core.errors import QuestionFetchError, TransientSourceError
from app.services.bank_store import InMemoryQuestionBankStore, SupabaseQuestionBankStore
from app.services.question_fetcher import SHARED_SOURCE, SourceFetcher


# ---------------------------------------------------------------------------
# Fake Supabase client
# ---------------------------------------------------------------------------

class FakeQuery:
    def __init__(self, client):
        self.client = client

    def select(self, *_):
        return self

    def eq(self, column, value):
        self.client.filters.append((column, value))
        return self

    def execute(self):
        self.client.executions += 1
        if self.client.failures:
            raise self.client.failures.pop(0)
        return SimpleNamespace(data=list(self.client.rows))


class FakeSupabase:
    def __init__(self, rows=None, failures=None):
        self.rows = rows or []
        self.failures = list(failures or [])
        self.tables = []
        self.filters = []
        self.executions = 0

    def table(self, name):
        self.tables.append(name)
        return FakeQuery(self)


def _row(rid, **kw):
    base = {"id": rid, "question": f"Q{rid}", "correct_answer": "1", "topic": "Fractions", "grade": "G3"}
    base.update(kw)
    return base


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


# ---------------------------------------------------------------------------
# InMemoryQuestionBankStore
# ---------------------------------------------------------------------------

class TestInMemoryQuestionBankStore:
    def test_matches_topic_and_grade(self):
        store = InMemoryQuestionBankStore()
        store.add_shared_question({"question_id": "a", "topic": "Fractions", "grade": "G3"})
        store.add_shared_question({"question_id": "b", "topic": "Fractions", "grade": "G4"})
        store.add_shared_question({"question_id": "c", "topic": "Division", "grade": "G3"})
        assert [q["question_id"] for q in store.shared_questions("Fractions", "G3", "app")] == ["a"]

    def test_rows_are_copies(self):
        store = InMemoryQuestionBankStore()
        store.add_user_question("u1", {"question_id": "a", "topic": "Fractions", "grade": "G3"})
        store.user_questions("u1", "Fractions", "G3", "app")[0]["question_id"] = "changed"
        assert store.user_questions("u1", "Fractions", "G3", "app")[0]["question_id"] == "a"


# ---------------------------------------------------------------------------
# SupabaseQuestionBankStore
# ---------------------------------------------------------------------------

class TestSupabaseQuestionBankStore:
    def test_queries_scoped_table_and_maps_ids(self):
        client = FakeSupabase(rows=[_row(7)])
        rows = SupabaseQuestionBankStore(client).class_questions("class-1", "Fractions", "G3", "app")
        assert client.tables == ["class_questions"]
        assert ("class_id", "class-1") in client.filters
        assert ("app_id", "app") in client.filters
        assert rows[0]["question_id"] == "7"
        assert "id" not in rows[0]

    @pytest.mark.parametrize("exc", [
        httpx.ReadTimeout("timed out"),
        httpx.ConnectError("connection refused"),
        APIError({"message": "canceling statement due to statement timeout", "code": "57014"}),
        APIError({"message": "Service Unavailable", "code": "503"}),
        APIError({"message": "Too Many Requests", "code": "429"}),
        APIError({"message": "could not connect to server", "code": "08006"}),
    ])
    def test_transient_client_failures_become_transient_errors(self, exc):
        client = FakeSupabase(failures=[exc])
        with pytest.raises(TransientSourceError) as exc_info:
            SupabaseQuestionBankStore(client).shared_questions("Fractions", "G3", "app")
        assert exc_info.value.__cause__ is exc
        assert "shared_question_bank" in str(exc_info.value)

    def test_permanent_api_errors_pass_through(self):
        exc = APIError({"message": "permission denied for table question_bank", "code": "42501"})
        client = FakeSupabase(failures=[exc])
        with pytest.raises(APIError) as exc_info:
            SupabaseQuestionBankStore(client).user_questions("u1", "Fractions", "G3", "app")
        assert exc_info.value is exc


class TestSupabaseStoreRetries:
    def test_fetcher_retries_timeouts_then_succeeds(self):
        client = FakeSupabase(
            rows=[_row(1)],
            failures=[httpx.ConnectTimeout("connect timed out"), httpx.ReadTimeout("timed out")],
        )
        sleep = RecordingSleep()
        fetcher = SourceFetcher(SupabaseQuestionBankStore(client), sleep=sleep)

        result = fetcher.fetch("Fractions", "G3")
        assert [q["question_id"] for q in result.questions] == ["1"]
        assert result.errors == {}
        assert client.executions == 3
        assert sleep.delays == [0.5, 1.0]

    def test_exhausted_retries_recorded_as_query_error(self):
        client = FakeSupabase(failures=[httpx.ReadTimeout("timed out")] * 3)
        fetcher = SourceFetcher(SupabaseQuestionBankStore(client), sleep=RecordingSleep())

        with pytest.raises(QuestionFetchError) as exc_info:
            fetcher.fetch("Fractions", "G3")
        assert exc_info.value.errors[SHARED_SOURCE].kind == "query"
        assert client.executions == 3
