"""
Quiz assembler: builds one practice quiz of up to N unique questions.

Combines:
  - the mastery index (signature -> MasteryEntry) from the learner's history
  - bank candidates from SourceFetcher (fetched once, read with a cursor)
  - the topic's registered generator
  - the subtopic allow-list

Each attempt either takes the next bank candidate (with probability
bank_probability while unread candidates remain) or asks the generator for a
fresh question. Bank candidates are accepted whenever unique; generated ones
are accepted with a probability driven by the learner's need for that
signature:

    unseen signature      accept 0.7
    seen signature        accept 0.1 + 0.9 * min(1, avg complexity)

The loop is bounded by numQuestions * (30 with restrictions, else 10)
attempts and stops early after 50 consecutive subtopic rejections. A short
quiz is returned with a PartialAssemblyWarning instead of raising.
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field, asdict
from typing import Callable, Iterable, Optional, Union

from app.core.errors import SourceErrorInfo
from app.generators.registry import get_generator
from app.services.mastery_model import MasteryEntry, adapt_history, build_mastery_index, rank_by_complexity
from app.services.question_fetcher import SourceFetcher
from app.services.signature import question_signature
from app.services.subtopic_filter import has_restrictions, is_subtopic_allowed

logger = logging.getLogger(__name__)

DEFAULT_DAILY_GOAL = 4
DEFAULT_BANK_PROBABILITY = 0.7
UNSEEN_ACCEPT_PROB = 0.7
MIN_ACCEPT_PROB = 0.1
BASE_ATTEMPT_MULTIPLIER = 10
RESTRICTED_ATTEMPT_MULTIPLIER = 30
MAX_CONSECUTIVE_FILTERED = 50


@dataclass
class PartialAssemblyWarning:
    topic: str
    requested: int
    achieved: int
    attempts: int
    max_attempts: int
    hit_attempt_cap: bool
    filtered_by_subtopic: int
    stopped_on_consecutive_filter: bool
    no_results_under_restrictions: bool
    message: str = ""

    def to_dict(self):
        return asdict(self)


@dataclass
class AssemblyResult:
    questions: list[dict] = field(default_factory=list)
    warnings: list[PartialAssemblyWarning] = field(default_factory=list)
    source_errors: dict[str, SourceErrorInfo] = field(default_factory=dict)


def resolve_daily_goal(daily_goal: Union[int, dict, None], topic: str, default: int = DEFAULT_DAILY_GOAL) -> int:
    """
    Daily goal as an int, or a {topic: goal} mapping.

    Missing, zero or unparsable goals fall back to `default`; negative goals
    clamp to 1.
    """
    if isinstance(daily_goal, dict):
        daily_goal = daily_goal.get(topic)
    try:
        goal = int(daily_goal) if daily_goal is not None else 0
    except (TypeError, ValueError):
        goal = 0
    if goal == 0:
        return default
    return max(1, goal)


def acceptance_probability(
    entry: Optional[MasteryEntry],
    attempts: int = 0,
    max_attempts: int = 1,
    relax_after: Optional[float] = None,
) -> float:
    """
    Probability of accepting a generated question given its mastery entry.

    With relax_after set, the probability for known signatures rises linearly
    toward 1.0 once attempts/max_attempts passes that ratio.
    """
    if entry is None or entry.count <= 0:
        return UNSEEN_ACCEPT_PROB

    prob = MIN_ACCEPT_PROB + (1 - MIN_ACCEPT_PROB) * entry.need

    if relax_after is not None and max_attempts > 0:
        progress = attempts / max_attempts
        if progress > relax_after:
            factor = min(1.0, (progress - relax_after) / max(1e-9, 1 - relax_after))
            prob = prob + (1 - prob) * factor
    return prob


def _build_warning(
    topic: str,
    requested: int,
    achieved: int,
    attempts: int,
    max_attempts: int,
    filtered: int,
    stopped_early: bool,
    restricted: bool,
) -> PartialAssemblyWarning:
    parts = [f"Could only generate {achieved} unique questions out of {requested} requested for {topic}"]
    if attempts >= max_attempts:
        parts.append(f"(reached maximum attempts limit: {max_attempts})")
    if stopped_early:
        parts.append(f"stopped after {MAX_CONSECUTIVE_FILTERED} consecutive questions were filtered by subtopic restrictions")
    if filtered > 0:
        parts.append(f"{filtered} question{'s were' if filtered > 1 else ' was'} filtered out due to subtopic restrictions")
    no_results = restricted and achieved == 0
    if no_results:
        parts.append("No valid questions found matching the subtopic restrictions. Consider reviewing the focus settings for this student")

    return PartialAssemblyWarning(
        topic=topic,
        requested=requested,
        achieved=achieved,
        attempts=attempts,
        max_attempts=max_attempts,
        hit_attempt_cap=attempts >= max_attempts,
        filtered_by_subtopic=filtered,
        stopped_on_consecutive_filter=stopped_early,
        no_results_under_restrictions=no_results,
        message=". ".join(parts) + ".",
    )


class QuizAssembler:
    """
    Usage:
        assembler = QuizAssembler(fetcher)
        result = assembler.assemble(topic="Multiplication", daily_goal=4, history=[...],
                                    target_difficulty=0.5, grade="G3")
    """

    def __init__(
        self,
        fetcher: SourceFetcher,
        generator_lookup: Callable = get_generator,
        rng: Optional[random.Random] = None,
        relax_after: Optional[float] = None,
        default_daily_goal: int = DEFAULT_DAILY_GOAL,
    ):
        self.fetcher = fetcher
        self.generator_lookup = generator_lookup
        self.rng = rng or random.Random()
        self.relax_after = relax_after
        self.default_daily_goal = default_daily_goal

    def _generate(self, topic: str, grade: str, difficulty: float, allowed_for_topic) -> Optional[dict]:
        generator = self.generator_lookup(topic, grade)
        if generator is None:
            return None
        try:
            return generator.generate_question(difficulty, allowed_for_topic, rng=self.rng)
        except Exception as exc:
            logger.warning("[quiz_assembler._generate] Generator for %r failed: %s", topic, exc)
            return None

    async def assemble_async(
        self,
        topic: str,
        daily_goal: Union[int, dict, None],
        history: Optional[Iterable] = None,
        target_difficulty: float = 0.5,
        grade: str = "G3",
        user_id: Optional[str] = None,
        class_id: Optional[str] = None,
        excluded_ids: Optional[Iterable[str]] = None,
        app_id: str = "default-app-id",
        bank_probability: float = DEFAULT_BANK_PROBABILITY,
        subtopic_allowlist: Optional[dict] = None,
    ) -> AssemblyResult:
        num_questions = max(1, resolve_daily_goal(daily_goal, topic, self.default_daily_goal))
        restricted = has_restrictions(subtopic_allowlist)
        max_attempts = num_questions * (RESTRICTED_ATTEMPT_MULTIPLIER if restricted else BASE_ATTEMPT_MULTIPLIER)
        allowed_for_topic = (subtopic_allowlist or {}).get(topic)
        bank_probability = max(0.0, min(1.0, float(bank_probability)))

        mastery = build_mastery_index(rank_by_complexity(adapt_history(history, user_id)))

        # QuestionFetchError (no candidates and a source failed) propagates
        fetched = await self.fetcher.fetch_async(
            topic, grade, user_id, class_id, excluded_ids, app_id, subtopic_allowlist,
        )
        pool = fetched.questions
        cursor = 0

        if self.generator_lookup(topic, grade) is None:
            logger.warning("[quiz_assembler.assemble] No generator registered for topic %r grade %s", topic, grade)

        questions: list[dict] = []
        used: set[str] = set()
        attempts = 0
        filtered = 0
        consecutive_filtered = 0
        stopped_early = False

        while len(questions) < num_questions and attempts < max_attempts:
            attempts += 1

            if consecutive_filtered >= MAX_CONSECUTIVE_FILTERED:
                stopped_early = True
                logger.warning(
                    "[quiz_assembler.assemble] Stopped after %d consecutive subtopic rejections for %r (%d/%d generated)",
                    MAX_CONSECUTIVE_FILTERED, topic, len(questions), num_questions,
                )
                break

            candidate = None
            from_bank = False
            if cursor < len(pool) and self.rng.random() < bank_probability:
                bank_candidate = pool[cursor]
                cursor += 1  # always advance so duplicates can't stall the cursor
                if question_signature(bank_candidate) not in used:
                    candidate = bank_candidate
                    from_bank = True

            if not from_bank:
                candidate = self._generate(topic, grade, target_difficulty, allowed_for_topic)

            if not candidate or not candidate.get("question"):
                # malformed or nothing generated; costs an extra attempt
                attempts += 1
                continue

            if not is_subtopic_allowed(candidate, topic, subtopic_allowlist):
                filtered += 1
                consecutive_filtered += 1
                continue

            sig = question_signature(candidate)
            if from_bank:
                accept = sig not in used
            else:
                prob = acceptance_probability(mastery.get(sig), attempts, max_attempts, self.relax_after)
                accept = self.rng.random() <= prob and sig not in used

            if accept:
                if from_bank:
                    candidate = {**candidate, "concept": candidate.get("topic") or candidate.get("concept") or topic}
                else:
                    candidate = {**candidate, "concept": topic}
                used.add(sig)
                questions.append(candidate)
                consecutive_filtered = 0

        result = AssemblyResult(questions=questions, source_errors=dict(fetched.errors))

        if len(questions) < num_questions:
            warning = _build_warning(
                topic, num_questions, len(questions), attempts, max_attempts,
                filtered, stopped_early, restricted,
            )
            logger.warning("[quiz_assembler.assemble] %s", warning.message)
            result.warnings.append(warning)

        logger.info(
            "[quiz_assembler.assemble] topic=%r grade=%s -> %d/%d questions in %d attempts (bank pool %d, read %d)",
            topic, grade, len(questions), num_questions, attempts, len(pool), cursor,
        )
        return result

    def assemble(self, *args, **kwargs) -> AssemblyResult:
        """Blocking entry point; see assemble_async."""
        return asyncio.run(self.assemble_async(*args, **kwargs))


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_ASSEMBLER: Optional[QuizAssembler] = None


def get_quiz_assembler() -> QuizAssembler:
    """Return the process-wide assembler; its fetcher owns the shared class cache."""
    global _ASSEMBLER
    if _ASSEMBLER is None:
        from app.core.config import get_settings
        from app.services.bank_store import get_question_bank_store
        from app.services.question_cache import ClassQuestionCache

        settings = get_settings()
        fetcher = SourceFetcher(
            get_question_bank_store(),
            ClassQuestionCache(ttl_seconds=settings.class_cache_ttl_seconds),
        )
        _ASSEMBLER = QuizAssembler(
            fetcher,
            relax_after=settings.acceptance_relax_after,
            default_daily_goal=settings.default_daily_goal,
        )
    return _ASSEMBLER
