"""
Mastery model: turns raw answer history into complexity signals.

  adapt_history()           AnsweredRecord list -> AdaptedRecord list with a
                            complexity_score in [0, 1] (higher = more struggle)
  rank_by_complexity()      complexity descending, most recent first on ties
  per_topic_complexity()    average complexity per topic (reporting only)
  next_target_complexity()  difficulty the next quiz should aim for
  build_mastery_index()     signature -> MasteryEntry, read by the assembler

Scoring combines three components:
  - latency: answer time relative to the topic median, capped at 2x
  - correctness: 1 for a wrong answer, 0 otherwise
  - repeated errors: recency-weighted share of earlier wrong attempts at the
    same question signature

Every function is pure and fail-open: malformed records are dropped, missing
history degrades to neutral defaults, nothing raises.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from app.services.signature import question_signature

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Tunables
# ---------------------------------------------------------------------------

TIME_WEIGHT = 0.5
INCORRECT_WEIGHT = 0.35
REPEAT_ERROR_WEIGHT = 0.15
MAX_TIME_MULTIPLIER = 2.0     # cap normalisation for extreme outliers
ERROR_DECAY = 0.5             # weight halves for each older attempt
HISTORY_WINDOW = 20           # last N answers per topic
PROGRESS_STEP = 0.08          # largest nudge per quiz
MIN_COMPLEXITY = 0.15
MAX_COMPLEXITY = 0.95
NEUTRAL_TARGET = 0.5

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def _pick(raw: dict, *keys):
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _parse_timestamp(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class AnsweredRecord:
    topic: str
    question: str
    correct_answer: str
    is_correct: bool
    timestamp: Optional[str] = None
    time_taken: float = 0.0          # seconds
    subtopic: Optional[str] = None
    id: Optional[str] = None
    date: Optional[str] = None       # legacy YYYY-MM-DD, used when timestamp is absent

    @classmethod
    def from_dict(cls, raw) -> Optional["AnsweredRecord"]:
        """Build a record from a stored history row; None when malformed."""
        if isinstance(raw, AnsweredRecord):
            return raw
        if not isinstance(raw, dict):
            return None
        topic = _pick(raw, "topic")
        if not topic:
            return None
        try:
            time_taken = float(_pick(raw, "time_taken", "timeTaken") or 0)
        except (TypeError, ValueError):
            time_taken = 0.0
        answer = _pick(raw, "correct_answer", "correctAnswer")
        return cls(
            topic=str(topic),
            question=str(_pick(raw, "question") or ""),
            correct_answer="" if answer is None else str(answer),
            is_correct=bool(_pick(raw, "is_correct", "isCorrect")),
            timestamp=_pick(raw, "timestamp"),
            time_taken=max(0.0, time_taken),
            subtopic=_pick(raw, "subtopic"),
            id=_pick(raw, "id", "question_id"),
            date=_pick(raw, "date"),
        )

    @property
    def created_at(self) -> datetime:
        parsed = _parse_timestamp(self.timestamp)
        if parsed is None and self.date:
            parsed = _parse_timestamp(f"{self.date}T00:00:00+00:00")
        return parsed or _EPOCH


@dataclass
class AdaptedRecord:
    user_id: str
    question_id: str
    topic: str
    question: str
    correct_answer: str
    is_correct: bool
    time_spent_ms: float
    created_at: datetime
    subtopic: Optional[str] = None
    complexity_score: float = 0.0

    @property
    def signature(self) -> str:
        return question_signature({"question": self.question, "correct_answer": self.correct_answer})

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "question_id": self.question_id,
            "topic": self.topic,
            "subtopic": self.subtopic,
            "question": self.question,
            "correct_answer": self.correct_answer,
            "is_correct": self.is_correct,
            "time_spent_ms": self.time_spent_ms,
            "created_at": self.created_at.isoformat(),
            "complexity_score": round(self.complexity_score, 4),
        }


@dataclass
class MasteryEntry:
    total_complexity: float = 0.0
    count: int = 0

    @property
    def need(self) -> float:
        if self.count <= 0:
            return 0.0
        return min(1.0, self.total_complexity / self.count)


@dataclass
class TopicComplexity:
    topic: str
    avg: float
    count: int
    last_answered_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "topic": self.topic,
            "avg": round(self.avg, 4),
            "count": self.count,
            "last_answered_at": self.last_answered_at.isoformat() if self.last_answered_at else None,
        }


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------

def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def _percentile(sorted_values: list[float], p: float) -> float:
    if not sorted_values:
        return 0.0
    idx = (len(sorted_values) - 1) * _clamp01(p)
    lo = int(idx)
    hi = min(lo + 1, len(sorted_values) - 1)
    if lo == hi:
        return sorted_values[lo]
    w = idx - lo
    return sorted_values[lo] * (1 - w) + sorted_values[hi] * w


def _topic_medians(records: list[AnsweredRecord]) -> dict[str, float]:
    times: dict[str, list[float]] = {}
    for r in records:
        times.setdefault(r.topic, []).append(r.time_taken * 1000)
    return {topic: (_percentile(sorted(vals), 0.5) or 1.0) for topic, vals in times.items()}


def _time_component(record: AnsweredRecord, medians: dict[str, float]) -> float:
    """Latency relative to the topic median mapped to [0, 1]; the median lands at 0.5."""
    median = medians.get(record.topic) or 1.0
    ratio = (record.time_taken * 1000) / median
    return _clamp01(min(ratio, MAX_TIME_MULTIPLIER) / MAX_TIME_MULTIPLIER)


def _repeat_error_components(records: list[AnsweredRecord]) -> list[float]:
    """
    For each record, the recency-weighted share of earlier wrong attempts at
    the same signature. The most recent prior attempt weighs 1, the one before
    ERROR_DECAY, and so on. First attempts score 0.
    """
    order = sorted(range(len(records)), key=lambda i: (records[i].created_at, i))
    prior: dict[str, list[bool]] = {}
    out = [0.0] * len(records)
    for i in order:
        r = records[i]
        sig = question_signature({"question": r.question, "correct_answer": r.correct_answer})
        earlier = prior.setdefault(sig, [])
        if earlier:
            weighted = 0.0
            total = 0.0
            weight = 1.0
            for was_correct in reversed(earlier):
                total += weight
                if not was_correct:
                    weighted += weight
                weight *= ERROR_DECAY
            out[i] = weighted / total
        earlier.append(r.is_correct)
    return out


def _coerce_records(history) -> list[AnsweredRecord]:
    if not history or isinstance(history, (str, bytes, dict)):
        return []
    try:
        items = list(history)
    except TypeError:
        return []
    records = []
    for raw in items:
        rec = AnsweredRecord.from_dict(raw)
        if rec is not None:
            records.append(rec)
    return records


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def adapt_history(history, user_id: Optional[str] = None) -> list[AdaptedRecord]:
    """Enrich each answered record with its complexity score."""
    records = _coerce_records(history)
    if not records:
        return []

    medians = _topic_medians(records)
    repeats = _repeat_error_components(records)

    adapted = []
    for r, repeat in zip(records, repeats):
        score = (
            TIME_WEIGHT * _time_component(r, medians)
            + INCORRECT_WEIGHT * (0.0 if r.is_correct else 1.0)
            + REPEAT_ERROR_WEIGHT * repeat
        )
        adapted.append(AdaptedRecord(
            user_id=user_id or "unknown",
            question_id=r.id or f"{r.topic}|{r.question[:40] or 'unknown'}",
            topic=r.topic,
            subtopic=r.subtopic,
            question=r.question,
            correct_answer=r.correct_answer,
            is_correct=r.is_correct,
            time_spent_ms=r.time_taken * 1000,
            created_at=r.created_at,
            complexity_score=_clamp01(score),
        ))
    return adapted


def rank_by_complexity(adapted: Iterable[AdaptedRecord]) -> list[AdaptedRecord]:
    """Complexity descending; ties broken by most recent first."""
    return sorted(
        adapted or [],
        key=lambda r: (r.complexity_score, r.created_at),
        reverse=True,
    )


def _recent_window(records: list[AdaptedRecord]) -> list[AdaptedRecord]:
    return sorted(records, key=lambda r: r.created_at, reverse=True)[:HISTORY_WINDOW]


def per_topic_complexity(adapted: Iterable[AdaptedRecord]) -> list[TopicComplexity]:
    """Average complexity over the last HISTORY_WINDOW answers of each topic."""
    by_topic: dict[str, list[AdaptedRecord]] = {}
    for r in adapted or []:
        by_topic.setdefault(r.topic, []).append(r)

    topics = []
    for topic, recs in by_topic.items():
        window = _recent_window(recs)
        avg = sum(r.complexity_score for r in window) / max(1, len(window))
        last = max(r.created_at for r in recs)
        topics.append(TopicComplexity(
            topic=topic,
            avg=_clamp01(avg),
            count=len(recs),
            last_answered_at=None if last == _EPOCH else last,
        ))

    topics.sort(key=lambda t: t.last_answered_at or _EPOCH, reverse=True)
    return topics


def recent_accuracy(adapted: Iterable[AdaptedRecord], topic: str) -> Optional[float]:
    """Share of correct answers among the last HISTORY_WINDOW for a topic; None without history."""
    window = _recent_window([r for r in adapted or [] if r.topic == topic])
    if not window:
        return None
    return sum(1 for r in window if r.is_correct) / len(window)


def next_target_complexity(
    history,
    topic: str,
    mode: str = "progressive",
    last_asked_complexity: Optional[float] = None,
) -> float:
    """
    Difficulty the next quiz on `topic` should aim for.

    progressive: start from last_asked_complexity (or, without one, the topic's
    average complexity, or NEUTRAL_TARGET with no history) and move it by up to
    PROGRESS_STEP: up when recent accuracy is above 50%, down when below.
    The result is non-decreasing in recent accuracy for a fixed
    last_asked_complexity and stays within [MIN_COMPLEXITY, MAX_COMPLEXITY].

    random: always NEUTRAL_TARGET.
    """
    if mode == "random":
        return NEUTRAL_TARGET

    try:
        items = list(history or [])
        if items and all(isinstance(h, AdaptedRecord) for h in items):
            adapted = items
        else:
            adapted = adapt_history(items)
    except Exception as exc:
        logger.warning("[mastery_model.next_target_complexity] Unusable history for %r: %s", topic, exc)
        adapted = []

    has_last = isinstance(last_asked_complexity, (int, float)) and not isinstance(last_asked_complexity, bool)
    accuracy = recent_accuracy(adapted, topic)

    if accuracy is None:
        if has_last:
            return _clamp01(min(MAX_COMPLEXITY, max(MIN_COMPLEXITY, float(last_asked_complexity))))
        return NEUTRAL_TARGET

    if has_last:
        base = float(last_asked_complexity)
    else:
        stats = per_topic_complexity([r for r in adapted if r.topic == topic])
        base = stats[0].avg if stats else NEUTRAL_TARGET

    target = base + PROGRESS_STEP * (2 * accuracy - 1)
    return _clamp01(min(MAX_COMPLEXITY, max(MIN_COMPLEXITY, target)))


def build_mastery_index(ranked: Iterable[AdaptedRecord]) -> dict[str, MasteryEntry]:
    """Aggregate complexity per question signature (sum and count)."""
    index: dict[str, MasteryEntry] = {}
    for r in ranked or []:
        entry = index.setdefault(r.signature, MasteryEntry())
        entry.total_complexity += r.complexity_score or 0.0
        entry.count += 1
    return index
