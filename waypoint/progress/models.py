"""Progress records, assessment attempts and update requests."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from waypoint.content.models import ContentKind


class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass
class ProgressRecord:
    """
    One student's progress on one piece of content.

    ``version`` is the optimistic-concurrency token: 0 means "not yet
    persisted", and every successful save increments it.
    """

    student_id: str
    content_id: str
    kind: ContentKind
    course_id: str | None = None
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    completion_percentage: float = 0.0
    best_score: float | None = None
    time_spent: int = 0
    attempts_count: int = 0
    last_accessed: datetime | None = None
    version: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status is ProgressStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "student_id": self.student_id,
            "content_id": self.content_id,
            "kind": self.kind.value,
            "course_id": self.course_id,
            "status": self.status.value,
            "completion_percentage": self.completion_percentage,
            "best_score": self.best_score,
            "time_spent": self.time_spent,
            "attempts_count": self.attempts_count,
            "last_accessed": self.last_accessed.isoformat() if self.last_accessed else None,
        }


@dataclass(frozen=True)
class AnswerRecord:
    question_id: str
    is_correct: bool
    points_earned: float = 0.0


@dataclass
class AssessmentAttempt:
    """A single submitted attempt. Append-only once persisted."""

    assessment_id: str
    student_id: str
    attempt_number: int
    score: float
    passed: bool
    answers: list[AnswerRecord] = field(default_factory=list)
    time_spent: int | None = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: str = field(default_factory=lambda: str(uuid4()))

    def wrong_question_ids(self) -> list[str]:
        return [answer.question_id for answer in self.answers if not answer.is_correct]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "student_id": self.student_id,
            "attempt_number": self.attempt_number,
            "score": self.score,
            "passed": self.passed,
            "time_spent": self.time_spent,
            "submitted_at": self.submitted_at.isoformat(),
            "answers": [
                {
                    "question_id": a.question_id,
                    "is_correct": a.is_correct,
                    "points_earned": a.points_earned,
                }
                for a in self.answers
            ],
        }


@dataclass
class ProgressUpdate:
    """
    A progress report from the surrounding application.

    ``time_spent`` is the number of seconds spent in this interaction and is
    added to the running total. ``score`` only ever raises ``best_score``.
    """

    student_id: str
    content_id: str
    kind: ContentKind
    status: ProgressStatus = ProgressStatus.IN_PROGRESS
    completion_percentage: float | None = None
    time_spent: int | None = None
    score: float | None = None
    mark_complete: bool = False

    def requests_completion(self) -> bool:
        return (
            self.mark_complete
            or self.status is ProgressStatus.COMPLETED
            or (self.completion_percentage is not None and self.completion_percentage >= 100)
        )


@dataclass(frozen=True)
class AccessibilitySnapshot:
    """Last computed accessible content ids for one (student, course)."""

    content_ids: frozenset[str]
    version: int = 1
