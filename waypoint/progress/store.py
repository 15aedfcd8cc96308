"""
Persistence interfaces for progress, attempts and enrollment.

Writes use optimistic concurrency: ``save_record`` inserts when the record's
version is 0 and otherwise updates only if the stored version still matches.
Either failure mode raises PersistenceConflictError. Accessibility snapshots
follow the same contract.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from waypoint.content.models import ContentKind
from waypoint.progress.models import AccessibilitySnapshot, AssessmentAttempt, ProgressRecord, ProgressStatus


class ProgressStore(ABC):
    """Per-student progress records, attempts and accessibility snapshots."""

    @abstractmethod
    def get_record(self, student_id: str, content_id: str, kind: ContentKind) -> ProgressRecord | None:
        ...

    @abstractmethod
    def list_records(
        self,
        student_id: str,
        course_id: str | None = None,
        status: ProgressStatus | None = None,
        limit: int | None = None,
    ) -> list[ProgressRecord]:
        """Records for a student, most recently accessed first."""

    @abstractmethod
    def save_record(self, record: ProgressRecord) -> ProgressRecord:
        """Persist and return the record with its new version."""

    @abstractmethod
    def list_attempts(self, student_id: str, assessment_id: str) -> list[AssessmentAttempt]:
        """Attempts ordered by attempt_number."""

    @abstractmethod
    def list_student_attempts(self, student_id: str, limit: int | None = None) -> list[AssessmentAttempt]:
        """All attempts of a student, newest first."""

    @abstractmethod
    def insert_attempt(self, attempt: AssessmentAttempt) -> AssessmentAttempt:
        """Append an attempt; a duplicate attempt_number raises PersistenceConflictError."""

    @abstractmethod
    def get_accessible_snapshot(self, student_id: str, course_id: str) -> AccessibilitySnapshot | None:
        """Last computed accessible set for the course, None if never computed."""

    @abstractmethod
    def save_accessible_snapshot(
        self,
        student_id: str,
        course_id: str,
        content_ids: set[str],
        version: int = 0,
    ) -> AccessibilitySnapshot:
        """Insert when ``version`` is 0, else replace only the stored snapshot at ``version``."""


class EnrollmentStore(ABC):
    @abstractmethod
    def is_enrolled(self, student_id: str, course_id: str) -> bool:
        ...

    @abstractmethod
    def enrolled_course_ids(self, student_id: str) -> list[str]:
        ...
