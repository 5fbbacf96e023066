"""Grade 4 base ten: QuestionGenerator implementation."""

from .base import QuestionGenerator, build_options, scaled_max

_PLACES = ["ones", "tens", "hundreds", "thousands", "ten thousands"]


class BaseTenGenerator(QuestionGenerator):
    topic = "Base Ten"
    grade = "G4"
    topic_key = "base-ten"
    standard = "4.NBT.A.2"
    subtopics = ("place value", "rounding", "addition")

    def builders(self):
        return {
            "place value": self._place_value,
            "rounding": self._rounding,
            "addition": self._addition,
        }

    def _place_value(self, rng, difficulty):
        digits = scaled_max(3, 2, difficulty)
        number = rng.randint(10 ** (digits - 1), 10 ** digits - 1)
        place = rng.randint(0, digits - 1)
        digit = (number // 10 ** place) % 10
        answer = digit * 10 ** place
        return {
            "question": f"What is the value of the digit in the {_PLACES[place]} place of {number:,}?",
            "correct_answer": str(answer),
            "options": build_options(rng, answer, [digit, answer * 10, (digit + 1) * 10 ** place]),
            "hint": "A digit's value depends on its place. Count the places from the right.",
        }

    def _rounding(self, rng, difficulty):
        place = 1 if difficulty < 0.5 else 2
        unit = 10 ** place
        number = rng.randint(unit + 1, scaled_max(999, 9000, difficulty))
        answer = int((number + unit // 2) // unit * unit)
        return {
            "question": f"Round {number:,} to the nearest {_PLACES[place][:-1]}.",
            "correct_answer": str(answer),
            "options": build_options(rng, answer, [answer - unit, answer + unit, number // unit * unit + unit * 2]),
            "hint": "Look at the digit to the right of the rounding place: 5 or more rounds up.",
            "standard": "4.NBT.A.3",
        }

    def _addition(self, rng, difficulty):
        upper = scaled_max(999, 9000, difficulty)
        a = rng.randint(100, upper)
        b = rng.randint(100, upper)
        answer = a + b
        return {
            "question": f"What is {a:,} + {b:,}?",
            "correct_answer": str(answer),
            "options": build_options(rng, answer, [answer + 10, answer - 100, answer + 1]),
            "hint": "Line the numbers up by place value and add from the ones place.",
            "standard": "4.NBT.B.4",
        }
