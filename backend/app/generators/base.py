"""Base generator contract for machine-generated quiz questions.

Every topic-specific generator (e.g. Multiplication, Fractions) subclasses
QuestionGenerator, declares its subtopics and returns one builder per
subtopic from builders().
"""

import random
from typing import Callable, Optional


def clamp_difficulty(difficulty) -> float:
    try:
        value = float(difficulty)
    except (TypeError, ValueError):
        return 0.5
    return max(0.0, min(1.0, value))


def scaled_max(low: int, span: int, difficulty: float) -> int:
    """Upper bound that grows from `low` by up to `span` with difficulty."""
    return low + int(span * difficulty)


def build_options(rng: random.Random, answer: str, distractors: list) -> list[str]:
    """Answer plus unique distractors, shuffled."""
    options = [str(answer)]
    for d in distractors:
        d = str(d)
        if d not in options:
            options.append(d)
    rng.shuffle(options)
    return options


class QuestionGenerator:
    topic: str = ""          # display name, e.g. "Multiplication"
    grade: str = ""          # e.g. "G3"
    topic_key: str = ""      # registry key, e.g. "multiplication"
    standard: str = ""
    subtopics: tuple[str, ...] = ()

    def builders(self) -> dict[str, Callable[[random.Random, float], dict]]:
        return {}

    def allowed_subtopics(self, allowed: Optional[list[str]] = None) -> list[str]:
        if allowed is None:
            return list(self.subtopics)
        wanted = {str(a).strip().lower() for a in allowed}
        return [s for s in self.subtopics if s.lower() in wanted]

    def generate_question(
        self,
        difficulty: float = 0.5,
        allowed_subtopics: Optional[list[str]] = None,
        rng: Optional[random.Random] = None,
    ) -> Optional[dict]:
        """
        Build one question at `difficulty` (0..1).

        Returns None when no declared subtopic is in `allowed_subtopics`.
        """
        rng = rng or random.Random()
        choices = [s for s in self.allowed_subtopics(allowed_subtopics) if s in self.builders()]
        if not choices:
            return None

        subtopic = rng.choice(choices)
        question = self.builders()[subtopic](rng, clamp_difficulty(difficulty))
        question.setdefault("standard", self.standard)
        question.update({
            "concept": self.topic,
            "topic": self.topic,
            "grade": self.grade,
            "subtopic": subtopic,
            "source": "generated",
        })
        return question
