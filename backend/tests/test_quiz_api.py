"""HTTP tests for the /api/quiz routes using FastAPI's TestClient."""
import sys
import os
import random

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.core.errors import MissingIndexError
from app.services.bank_store import InMemoryQuestionBankStore
from app.services.enrollment import InMemoryEnrollmentService
from app.services.history_store import InMemoryHistoryStore
from app.services.question_fetcher import SourceFetcher
from app.services.quiz_assembler import QuizAssembler, get_quiz_assembler
from app.services.quiz_session import QuizSessionService, get_quiz_session_service


async def _no_sleep(_seconds):
    return None


def _assembler(store):
    return QuizAssembler(SourceFetcher(store, sleep=_no_sleep), rng=random.Random(3))


@pytest.fixture
def store():
    return InMemoryQuestionBankStore()


@pytest.fixture
def client(store):
    assembler = _assembler(store)
    service = QuizSessionService(assembler, InMemoryHistoryStore(), InMemoryEnrollmentService())
    app.dependency_overrides[get_quiz_assembler] = lambda: assembler
    app.dependency_overrides[get_quiz_session_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestAssembleEndpoint:
    def test_assembles_generated_quiz(self, client):
        r = client.post("/api/quiz/assemble", json={"topic": "Multiplication", "daily_goal": 3})
        assert r.status_code == 200
        body = r.json()
        assert len(body["questions"]) == 3
        assert body["warnings"] == []
        assert body["source_errors"] == {}

    def test_partial_quiz_reports_warning(self, client):
        r = client.post("/api/quiz/assemble", json={
            "topic": "Fractions",
            "daily_goal": 2,
            "subtopic_allowlist": {"Fractions": []},
        })
        assert r.status_code == 200
        body = r.json()
        assert body["questions"] == []
        assert body["warnings"][0]["no_results_under_restrictions"] is True

    def test_fetch_failure_maps_to_503(self, store, client):
        def broken(topic, grade, app_id):
            raise MissingIndexError()
        store.shared_questions = broken

        r = client.post("/api/quiz/assemble", json={"topic": "Fractions", "daily_goal": 2})
        assert r.status_code == 503
        detail = r.json()["detail"]
        assert detail["kind"] == "missing-index"
        assert detail["errors"]["sharedQuestions"]["kind"] == "index"

    def test_rejects_out_of_range_probability(self, client):
        r = client.post("/api/quiz/assemble", json={"topic": "Fractions", "bank_probability": 2})
        assert r.status_code == 422


class TestStartEndpoint:
    def test_start(self, client):
        r = client.post("/api/quiz/start", json={"user_id": "u1", "topic": "Division", "daily_goals": 2})
        assert r.status_code == 200
        body = r.json()
        assert len(body["questions"]) == 2
        assert body["target_difficulty"] == 0.5
        assert body["bank_probability"] == 0.7


class TestComplexityEndpoint:
    def test_report(self, client):
        history = [
            {"topic": "Fractions", "question": f"Q{i}", "correct_answer": str(i), "is_correct": True,
             "timestamp": f"2026-01-01T10:{i:02d}:00Z", "time_taken": 4}
            for i in range(5)
        ]
        r = client.post("/api/quiz/complexity", json={
            "history": history, "topic": "Fractions", "last_asked_complexity": 0.5,
        })
        assert r.status_code == 200
        body = r.json()
        assert body["per_topic"][0]["count"] == 5
        assert len(body["ranked"]) == 5
        assert body["next_target"] == pytest.approx(0.58)


class TestTopicsEndpoint:
    def test_grade_topics(self, client):
        r = client.get("/api/quiz/topics/G4")
        assert r.status_code == 200
        assert r.json()["topics"] == [
            {"topic": "Base Ten", "subtopics": ["place value", "rounding", "addition"]}
        ]

    def test_unknown_grade(self, client):
        assert client.get("/api/quiz/topics/G12").status_code == 404
