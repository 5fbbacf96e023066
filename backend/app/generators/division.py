"""Grade 3 division: QuestionGenerator implementation."""

from .base import QuestionGenerator, build_options, scaled_max


class DivisionGenerator(QuestionGenerator):
    topic = "Division"
    grade = "G3"
    topic_key = "division"
    standard = "3.OA.A.2"
    subtopics = ("basic division", "equal sharing", "remainders")

    def builders(self):
        return {
            "basic division": self._basic,
            "equal sharing": self._equal_sharing,
            "remainders": self._remainders,
        }

    def _basic(self, rng, difficulty):
        divisor = rng.randint(2, scaled_max(3, 7, difficulty))
        quotient = rng.randint(2, scaled_max(3, 7, difficulty))
        dividend = divisor * quotient
        return {
            "question": f"What is {dividend} ÷ {divisor}?",
            "correct_answer": str(quotient),
            "options": build_options(rng, quotient, [quotient + 1, quotient - 1, divisor]),
            "hint": f"Think: {divisor} times what number equals {dividend}?",
        }

    def _equal_sharing(self, rng, difficulty):
        friends = rng.randint(2, scaled_max(3, 6, difficulty))
        each = rng.randint(2, scaled_max(3, 7, difficulty))
        total = friends * each
        return {
            "question": f"{total} stickers are shared equally among {friends} friends. How many stickers does each friend get?",
            "correct_answer": str(each),
            "options": build_options(rng, each, [each + 1, total - friends, friends]),
            "hint": "Sharing equally means dividing the total by the number of friends.",
        }

    def _remainders(self, rng, difficulty):
        divisor = rng.randint(2, scaled_max(3, 6, difficulty))
        quotient = rng.randint(2, scaled_max(3, 7, difficulty))
        remainder = rng.randint(1, divisor - 1)
        dividend = divisor * quotient + remainder
        answer = f"{quotient} R{remainder}"
        return {
            "question": f"What is {dividend} ÷ {divisor}? Write your answer with a remainder.",
            "correct_answer": answer,
            "options": build_options(rng, answer, [
                f"{quotient + 1} R{remainder}",
                f"{quotient} R{(remainder + 1) % divisor or divisor}",
                f"{quotient - 1} R{remainder}",
            ]),
            "hint": f"Find the biggest multiple of {divisor} that fits, then see what is left over.",
        }
