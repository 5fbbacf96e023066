"""
Enrollment lookups: which class a learner belongs to, the subtopic
allow-list their teacher configured, and how often the class draws from the
question bank.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

ENROLLMENT_TABLE = "class_students"
CLASS_TABLE = "classes"
DEFAULT_BANK_PROBABILITY = 0.7


@dataclass
class Enrollment:
    student_id: str
    class_id: Optional[str] = None
    allowed_subtopics_by_topic: dict[str, list[str]] = field(default_factory=dict)


def clamp_probability(value, default: float = DEFAULT_BANK_PROBABILITY) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(0.0, min(1.0, float(value)))


class EnrollmentService:
    def enrollment_for(self, user_id: str) -> Optional[Enrollment]:
        raise NotImplementedError

    def bank_sample_probability_for(self, class_id: Optional[str]) -> float:
        raise NotImplementedError

    def subtopic_allowlist_for(self, user_id: str) -> dict[str, list[str]]:
        enrollment = self.enrollment_for(user_id)
        return dict(enrollment.allowed_subtopics_by_topic) if enrollment else {}


class InMemoryEnrollmentService(EnrollmentService):
    def __init__(self, default_probability: float = DEFAULT_BANK_PROBABILITY):
        self.default_probability = default_probability
        self._enrollments: dict[str, Enrollment] = {}
        self._class_probability: dict[str, float] = {}

    def enroll(self, student_id: str, class_id: str, allowed_subtopics_by_topic: Optional[dict] = None) -> Enrollment:
        enrollment = Enrollment(student_id, class_id, dict(allowed_subtopics_by_topic or {}))
        self._enrollments[student_id] = enrollment
        return enrollment

    def set_bank_probability(self, class_id: str, probability: float) -> None:
        self._class_probability[class_id] = probability

    def enrollment_for(self, user_id):
        return self._enrollments.get(user_id)

    def bank_sample_probability_for(self, class_id):
        if not class_id:
            return self.default_probability
        return clamp_probability(self._class_probability.get(class_id), self.default_probability)


class SupabaseEnrollmentService(EnrollmentService):
    def __init__(self, supabase_client, default_probability: float = DEFAULT_BANK_PROBABILITY):
        self.sb = supabase_client
        self.default_probability = default_probability

    def enrollment_for(self, user_id):
        if not user_id:
            return None
        try:
            r = (
                self.sb.table(ENROLLMENT_TABLE)
                .select("student_id, class_id, allowed_subtopics_by_topic")
                .eq("student_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            logger.warning("[enrollment.enrollment_for] Could not fetch student class for %s: %s", user_id, exc)
            return None
        rows = getattr(r, "data", None) or []
        if not rows:
            return None
        row = rows[0]
        return Enrollment(
            student_id=row.get("student_id") or user_id,
            class_id=row.get("class_id"),
            allowed_subtopics_by_topic=row.get("allowed_subtopics_by_topic") or {},
        )

    def bank_sample_probability_for(self, class_id):
        if not class_id:
            return self.default_probability
        try:
            r = (
                self.sb.table(CLASS_TABLE)
                .select("question_bank_probability")
                .eq("id", class_id)
                .maybe_single()
                .execute()
            )
        except Exception as exc:
            logger.warning("[enrollment.bank_sample_probability_for] Could not fetch class %s: %s", class_id, exc)
            return self.default_probability
        data = getattr(r, "data", None) or {}
        return clamp_probability(data.get("question_bank_probability"), self.default_probability)


ENROLLMENT_SERVICE = InMemoryEnrollmentService()


def get_enrollment_service(supabase_client: Optional[object] = None) -> EnrollmentService:
    if supabase_client is not None:
        return SupabaseEnrollmentService(supabase_client)

    from app.core.deps import use_supabase_stores
    if not use_supabase_stores():
        return ENROLLMENT_SERVICE

    try:
        from app.core.deps import get_supabase_client
        return SupabaseEnrollmentService(get_supabase_client())
    except Exception as exc:
        logger.warning("[enrollment.get_enrollment_service] Falling back to memory store: %s", exc)
        return ENROLLMENT_SERVICE
