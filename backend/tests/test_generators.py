"""Tests for the topic generators and the generator registry."""
import sys
import os
import random

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from app.generators.base import build_options, clamp_difficulty
from app.generators.fractions import simplify
from app.generators.registry import (
    GENERATOR_REGISTRY,
    get_generator,
    subtopics_for_topic,
    topics_for_grade,
)

ALL_TOPICS = ["Multiplication", "Division", "Fractions", "Base Ten"]


class TestRegistry:
    def test_topics_by_grade(self):
        assert set(topics_for_grade("G3")) == {"Multiplication", "Division", "Fractions"}
        assert topics_for_grade("g4") == ["Base Ten"]
        assert topics_for_grade("G9") == []

    def test_lookup(self):
        assert get_generator("Fractions").topic_key == "fractions"
        assert get_generator("Astronomy") is None

    def test_lookup_checks_grade(self):
        assert get_generator("Multiplication", "G3").topic == "Multiplication"
        assert get_generator("Multiplication", "G4") is None
        assert get_generator("Base Ten", "g4").grade == "G4"
        assert ("g4", "base-ten") in GENERATOR_REGISTRY

    def test_subtopics(self):
        assert subtopics_for_topic("Fractions") == ["equivalent fractions", "comparison", "addition"]
        assert subtopics_for_topic("Fractions", "G4") == []
        assert subtopics_for_topic("Astronomy") == []


class TestGeneratedQuestions:
    @pytest.mark.parametrize("topic", ALL_TOPICS)
    def test_shape(self, topic):
        gen = get_generator(topic)
        rng = random.Random(3)
        for difficulty in (0.0, 0.5, 1.0):
            q = gen.generate_question(difficulty, rng=rng)
            assert q["question"]
            assert q["correct_answer"] in q["options"]
            assert len(q["options"]) == len(set(q["options"]))
            assert q["topic"] == topic and q["concept"] == topic
            assert q["grade"] == gen.grade
            assert q["subtopic"] in gen.subtopics
            assert q["source"] == "generated"

    @pytest.mark.parametrize("topic", ALL_TOPICS)
    def test_respects_allowed_subtopics(self, topic):
        gen = get_generator(topic)
        wanted = gen.subtopics[1]
        rng = random.Random(11)
        for _ in range(20):
            q = gen.generate_question(0.5, [wanted.upper()], rng=rng)
            assert q["subtopic"] == wanted

    def test_none_when_nothing_allowed(self):
        gen = get_generator("Division")
        assert gen.generate_question(0.5, []) is None
        assert gen.generate_question(0.5, ["fractions-addition"]) is None

    def test_seeded_rng_is_reproducible(self):
        gen = get_generator("Multiplication")
        a = gen.generate_question(0.7, rng=random.Random(42))
        b = gen.generate_question(0.7, rng=random.Random(42))
        assert a == b

    def test_fraction_addition_answers_are_simplified(self):
        gen = get_generator("Fractions")
        rng = random.Random(5)
        for _ in range(30):
            q = gen.generate_question(0.8, ["addition"], rng=rng)
            num, _, den = q["correct_answer"].partition("/")
            if den:
                assert simplify(int(num), int(den)) == q["correct_answer"]


class TestHelpers:
    def test_clamp_difficulty(self):
        assert clamp_difficulty(-1) == 0.0
        assert clamp_difficulty(2) == 1.0
        assert clamp_difficulty("hard") == 0.5

    def test_build_options_dedupes(self):
        opts = build_options(random.Random(0), "4", [4, "5", "5"])
        assert sorted(opts) == ["4", "5"]

    def test_simplify(self):
        assert simplify(2, 4) == "1/2"
        assert simplify(6, 3) == "2"
