from pydantic import BaseModel, Field
from typing import Any, Literal, Optional


class AnsweredQuestion(BaseModel):
    topic: str
    question: str = ""
    correct_answer: Optional[str] = None
    is_correct: bool = False
    timestamp: Optional[str] = None
    time_taken: float = 0.0
    subtopic: Optional[str] = None
    id: Optional[str] = None
    date: Optional[str] = None


class AssembleRequest(BaseModel):
    topic: str
    grade: str = "G3"
    daily_goal: int | dict[str, int] | None = None
    history: list[AnsweredQuestion] = []
    target_difficulty: float = Field(0.5, ge=0.0, le=1.0)
    user_id: Optional[str] = None
    class_id: Optional[str] = None
    excluded_ids: list[str] = []
    app_id: Optional[str] = None
    bank_probability: Optional[float] = Field(None, ge=0.0, le=1.0)
    subtopic_allowlist: Optional[dict[str, list[str]]] = None


class SourceErrorOut(BaseModel):
    kind: str
    message: str
    details: Optional[str] = None


class WarningOut(BaseModel):
    topic: str
    requested: int
    achieved: int
    attempts: int
    max_attempts: int
    hit_attempt_cap: bool
    filtered_by_subtopic: int
    stopped_on_consecutive_filter: bool
    no_results_under_restrictions: bool
    message: str


class AssembleResponse(BaseModel):
    questions: list[dict[str, Any]]
    warnings: list[WarningOut] = []
    source_errors: dict[str, SourceErrorOut] = {}


class StartQuizRequest(BaseModel):
    user_id: str
    topic: str
    grade: str = "G3"
    daily_goals: int | dict[str, int] | None = None
    mode: Literal["progressive", "random"] = "progressive"


class StartQuizResponse(AssembleResponse):
    topic: str
    grade: str
    target_difficulty: float
    class_id: Optional[str] = None
    bank_probability: float
    diagnostics: dict = {}


class ComplexityRequest(BaseModel):
    history: list[AnsweredQuestion] = []
    topic: Optional[str] = None
    mode: Literal["progressive", "random"] = "progressive"
    last_asked_complexity: Optional[float] = Field(None, ge=0.0, le=1.0)
    limit: int = Field(20, ge=1, le=200)


class ComplexityResponse(BaseModel):
    per_topic: list[dict]
    ranked: list[dict]
    next_target: Optional[float] = None


class TopicOut(BaseModel):
    topic: str
    subtopics: list[str]


class TopicsResponse(BaseModel):
    grade: str
    topics: list[TopicOut]
