"""Question signature: the dedup identity of a question (text + correct answer)."""

SIGNATURE_SEPARATOR = "|||"


def question_signature(question: dict) -> str:
    """
    Build the dedup key for a question dict.

    Two renderings of the same prompt with different correct answers (e.g.
    clock reading) are distinct; identical prompt+answer pairs collapse.
    """
    text = question.get("question")
    answer = question.get("correct_answer")
    return f"{'' if text is None else text}{SIGNATURE_SEPARATOR}{'' if answer is None else answer}"
