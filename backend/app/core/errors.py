"""
Error taxonomy for question sourcing.

  TransientSourceError  retryable network/quota failure from a bank query
  MissingIndexError     schema problem (missing index); never retried
  QuestionFetchError    the one hard failure: no candidates at all and at
                        least one source errored

Partial quizzes are not errors; see PartialAssemblyWarning in
app.services.quiz_assembler.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Optional

# Per-source error kinds recorded in MergedResult.errors
KIND_INDEX = "index"
KIND_QUERY = "query"

# Aggregated QuestionFetchError kinds
FETCH_MISSING_INDEX = "missing-index"
FETCH_CLASS_FAILURE = "class-source-failure"
FETCH_AGGREGATE = "aggregate"


@dataclass
class SourceErrorInfo:
    kind: str
    message: str
    details: Optional[str] = None

    def to_dict(self):
        return asdict(self)


class QuestionSourceError(Exception):
    """Base class for failures raised by a bank store query."""

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.code = code


class TransientSourceError(QuestionSourceError):
    pass


class MissingIndexError(QuestionSourceError):
    def __init__(self, message: str = "The query requires an index", code: str = "failed-precondition"):
        super().__init__(message, code)


class QuestionFetchError(Exception):
    def __init__(self, kind: str, message: str, errors: dict[str, SourceErrorInfo]):
        super().__init__(message)
        self.kind = kind
        self.errors = errors
