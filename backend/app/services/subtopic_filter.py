"""Subtopic allow-list checks derived from enrollment configuration."""
from typing import Optional


def _normalize(value: str) -> str:
    return str(value).strip().lower()


def is_subtopic_allowed(question: dict, topic: str, allowed_by_topic: Optional[dict]) -> bool:
    """
    True when `question` may be used for `topic` under the allow-list.

    - no allow-list, or no entry for this topic: everything allowed
    - empty list for the topic: nothing allowed
    - the question's subtopic must match case-insensitively (whitespace-trimmed);
      generated questions without a subtopic are matched on their concept tag
    - bank question without a subtopic: allowed (legacy content)
    """
    if not allowed_by_topic or topic not in allowed_by_topic or allowed_by_topic[topic] is None:
        return True

    allowed = allowed_by_topic[topic]
    if len(allowed) == 0:
        return False

    tag = question.get("subtopic")
    if not tag and question.get("source") == "generated":
        tag = question.get("concept")
    if not tag:
        return True

    target = _normalize(tag)
    return any(_normalize(a) == target for a in allowed)


def has_restrictions(allowed_by_topic: Optional[dict]) -> bool:
    return bool(allowed_by_topic) and len(allowed_by_topic) > 0
