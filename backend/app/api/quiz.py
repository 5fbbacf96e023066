import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from app.core.config import get_settings
from app.core.errors import QuestionFetchError
from app.generators.registry import subtopics_for_topic, topics_for_grade
from app.models.quiz import (
    AssembleRequest,
    AssembleResponse,
    ComplexityRequest,
    ComplexityResponse,
    StartQuizRequest,
    StartQuizResponse,
    TopicOut,
    TopicsResponse,
)
from app.services.mastery_model import (
    adapt_history,
    next_target_complexity,
    per_topic_complexity,
    rank_by_complexity,
)
from app.services.quiz_assembler import AssemblyResult, QuizAssembler, get_quiz_assembler, resolve_daily_goal
from app.services.quiz_session import QuizSessionService, get_quiz_session_service
from app.services.telemetry import emit_assembly_event, instrument

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quiz", tags=["quiz"])

VERSION = "v1"


def _fetch_error(exc: QuestionFetchError) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={
            "kind": exc.kind,
            "message": str(exc),
            "errors": {source: e.to_dict() for source, e in exc.errors.items()},
        },
    )


def _result_payload(result: AssemblyResult) -> dict:
    return {
        "questions": result.questions,
        "warnings": [w.to_dict() for w in result.warnings],
        "source_errors": {source: e.to_dict() for source, e in result.source_errors.items()},
    }


# ---------------------------------------------------------------------------
# Endpoint 1: assemble a quiz from explicit inputs
# ---------------------------------------------------------------------------

@router.post("/assemble", response_model=AssembleResponse)
@instrument(route="/api/quiz/assemble", version=VERSION)
async def assemble_quiz(
    req: AssembleRequest,
    assembler: QuizAssembler = Depends(get_quiz_assembler),
):
    settings = get_settings()
    t0 = time.time()
    try:
        result = await assembler.assemble_async(
            topic=req.topic,
            daily_goal=req.daily_goal,
            history=[h.model_dump() for h in req.history],
            target_difficulty=req.target_difficulty,
            grade=req.grade,
            user_id=req.user_id,
            class_id=req.class_id,
            excluded_ids=req.excluded_ids,
            app_id=req.app_id or settings.app_id,
            bank_probability=(
                req.bank_probability if req.bank_probability is not None else settings.default_bank_probability
            ),
            subtopic_allowlist=req.subtopic_allowlist,
        )
    except QuestionFetchError as exc:
        logger.error("[quiz.assemble_quiz] %s (kind=%s)", exc, exc.kind)
        raise _fetch_error(exc)

    emit_assembly_event(
        "/api/quiz/assemble", VERSION,
        topic=req.topic, grade=req.grade, user_id=req.user_id,
        requested=resolve_daily_goal(req.daily_goal, req.topic, settings.default_daily_goal),
        achieved=len(result.questions),
        latency_ms=int((time.time() - t0) * 1000),
    )
    return _result_payload(result)


# ---------------------------------------------------------------------------
# Endpoint 2: start a quiz for a learner (loads history + enrollment)
# ---------------------------------------------------------------------------

@router.post("/start", response_model=StartQuizResponse)
@instrument(route="/api/quiz/start", version=VERSION)
async def start_quiz(
    req: StartQuizRequest,
    service: QuizSessionService = Depends(get_quiz_session_service),
):
    try:
        session = await service.start_quiz_async(
            user_id=req.user_id,
            topic=req.topic,
            grade=req.grade,
            daily_goals=req.daily_goals,
            mode=req.mode,
        )
    except QuestionFetchError as exc:
        logger.error("[quiz.start_quiz] %s (kind=%s)", exc, exc.kind)
        raise _fetch_error(exc)

    return {
        **_result_payload(session.result),
        "topic": session.topic,
        "grade": session.grade,
        "target_difficulty": session.target_difficulty,
        "class_id": session.class_id,
        "bank_probability": session.bank_probability,
        "diagnostics": session.diagnostics,
    }


# ---------------------------------------------------------------------------
# Endpoint 3: complexity report (reporting only, not used for assembly)
# ---------------------------------------------------------------------------

@router.post("/complexity", response_model=ComplexityResponse)
@instrument(route="/api/quiz/complexity", version=VERSION)
def complexity_report(req: ComplexityRequest):
    adapted = adapt_history([h.model_dump() for h in req.history])
    next_target = None
    if req.topic:
        next_target = next_target_complexity(
            adapted, req.topic, mode=req.mode, last_asked_complexity=req.last_asked_complexity,
        )
    return {
        "per_topic": [t.to_dict() for t in per_topic_complexity(adapted)],
        "ranked": [r.to_dict() for r in rank_by_complexity(adapted)[:req.limit]],
        "next_target": next_target,
    }


# ---------------------------------------------------------------------------
# Endpoint 4: registered topics and subtopics for a grade
# ---------------------------------------------------------------------------

@router.get("/topics/{grade}", response_model=TopicsResponse)
@instrument(route="/api/quiz/topics", version=VERSION)
def list_topics(grade: str):
    topics = topics_for_grade(grade)
    if not topics:
        raise HTTPException(status_code=404, detail=f"No topics registered for grade {grade}")
    return {
        "grade": grade,
        "topics": [TopicOut(topic=t, subtopics=subtopics_for_topic(t, grade)) for t in topics],
    }
