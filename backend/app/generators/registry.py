"""Generator registry: maps (grade, topic_key) to a generator instance.

Topics are resolved by display name through TOPIC_CONTENT_MAP, so adding a
topic means registering a generator here; the assembler never branches on
topic names.
"""
from typing import Optional

from .base import QuestionGenerator
from .base_ten import BaseTenGenerator
from .division import DivisionGenerator
from .fractions import FractionsGenerator
from .multiplication import MultiplicationGenerator

GENERATOR_REGISTRY: dict[tuple[str, str], QuestionGenerator] = {}
TOPIC_CONTENT_MAP: dict[str, tuple[str, str]] = {}


def register_generator(generator: QuestionGenerator, topic: Optional[str] = None) -> None:
    key = (generator.grade.lower(), generator.topic_key)
    GENERATOR_REGISTRY[key] = generator
    TOPIC_CONTENT_MAP[topic or generator.topic] = key


for _generator in (
    MultiplicationGenerator(),
    DivisionGenerator(),
    FractionsGenerator(),
    BaseTenGenerator(),
):
    register_generator(_generator)


def get_generator(topic: str, grade: Optional[str] = None) -> Optional[QuestionGenerator]:
    """Generator for `topic`; None for unknown topics or when registered under another grade."""
    key = TOPIC_CONTENT_MAP.get(topic)
    if key is None:
        return None
    if grade is not None and key[0] != grade.lower():
        return None
    return GENERATOR_REGISTRY.get(key)


def topics_for_grade(grade: str) -> list[str]:
    grade_id = (grade or "").lower()
    return [topic for topic, (g, _) in TOPIC_CONTENT_MAP.items() if g == grade_id]


def subtopics_for_topic(topic: str, grade: Optional[str] = None) -> list[str]:
    """Subtopics the generator for `topic` declares; empty for unknown topics or grade mismatch."""
    generator = get_generator(topic, grade)
    return list(generator.subtopics) if generator else []
