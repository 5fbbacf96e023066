"""Grade 3 multiplication: QuestionGenerator implementation."""

from .base import QuestionGenerator, build_options, scaled_max


class MultiplicationGenerator(QuestionGenerator):
    topic = "Multiplication"
    grade = "G3"
    topic_key = "multiplication"
    standard = "3.OA.C.7"
    subtopics = ("basic multiplication", "skip counting", "arrays and groups")

    def builders(self):
        return {
            "basic multiplication": self._basic,
            "skip counting": self._skip_counting,
            "arrays and groups": self._arrays,
        }

    def _basic(self, rng, difficulty):
        a = rng.randint(2, scaled_max(2, 10, difficulty))
        b = rng.randint(2, scaled_max(2, 7, difficulty))
        answer = a * b
        return {
            "question": f"What is {a} x {b}?",
            "correct_answer": str(answer),
            "options": build_options(rng, answer, [answer + rng.randint(1, 5), a * (b + 1), (a - 1) * b]),
            "hint": f"Try skip-counting by {b}, {a} times!",
        }

    def _skip_counting(self, rng, difficulty):
        factor = rng.randint(2, scaled_max(3, 7, difficulty))
        count = rng.randint(3, scaled_max(4, 6, difficulty))
        answer = factor * count
        return {
            "question": f"If you skip count by {factor}s, {count} times, what number do you land on?",
            "correct_answer": str(answer),
            "options": build_options(rng, answer, [answer + factor, answer - factor, factor + count]),
            "hint": f"Start at 0 and add {factor} each time: {factor}, {factor * 2}, {factor * 3}...",
        }

    def _arrays(self, rng, difficulty):
        rows = rng.randint(2, scaled_max(3, 5, difficulty))
        cols = rng.randint(2, scaled_max(3, 7, difficulty))
        answer = rows * cols
        return {
            "question": (
                f"There are {rows} rows of objects with {cols} objects in each row. "
                "How many objects are there in total?"
            ),
            "correct_answer": str(answer),
            "options": build_options(rng, answer, [rows + cols, answer + cols, answer - rows]),
            "hint": "Multiply the number of rows by the number in each row.",
        }
