"""Grade 3 fractions: QuestionGenerator implementation."""

from math import gcd

from .base import QuestionGenerator, build_options, scaled_max


def simplify(num: int, den: int) -> str:
    divisor = gcd(abs(num), abs(den)) or 1
    num, den = num // divisor, den // divisor
    return str(num) if den == 1 else f"{num}/{den}"


class FractionsGenerator(QuestionGenerator):
    topic = "Fractions"
    grade = "G3"
    topic_key = "fractions"
    standard = "3.NF.A.3"
    subtopics = ("equivalent fractions", "comparison", "addition")

    def builders(self):
        return {
            "equivalent fractions": self._equivalent,
            "comparison": self._comparison,
            "addition": self._addition,
        }

    def _equivalent(self, rng, difficulty):
        num = rng.randint(1, 8)
        den = rng.randint(num + 1, 9)
        multiplier = rng.randint(2, scaled_max(2, 3, difficulty))
        answer = f"{num * multiplier}/{den * multiplier}"
        return {
            "question": f"Which fraction is equivalent to {num}/{den}?",
            "correct_answer": answer,
            "options": build_options(rng, answer, [
                f"{num + 1}/{den}",
                f"{num}/{den + 1}",
                f"{num * multiplier}/{den * multiplier + multiplier}",
            ]),
            "hint": "Equivalent fractions have the same value. Multiply the top and bottom by the same number.",
            "standard": "3.NF.A.3.b",
        }

    def _comparison(self, rng, difficulty):
        den = rng.randint(3, scaled_max(4, 8, difficulty))
        a, b = rng.sample(range(1, den), 2)
        return {
            "question": f"Which symbol makes this true? {a}/{den} ___ {b}/{den}",
            "correct_answer": ">" if a > b else "<",
            "options": build_options(rng, ">", ["<", "="]),
            "hint": "If the bottom numbers are the same, the fraction with the bigger top number is greater.",
            "standard": "3.NF.A.3.d",
        }

    def _addition(self, rng, difficulty):
        den = rng.randint(3, scaled_max(4, 8, difficulty))
        a = rng.randint(1, den - 2)
        b = rng.randint(1, den - 1 - a)
        answer = simplify(a + b, den)
        return {
            "question": f"What is {a}/{den} + {b}/{den}?",
            "correct_answer": answer,
            "options": build_options(rng, answer, [
                simplify(a + b, den * 2),
                simplify(a + b + 1, den),
                f"{a + b}/{den + den}",
            ]),
            "hint": "When the bottom numbers match, add the top numbers and keep the bottom number.",
            "standard": "3.NF.A.1",
        }
