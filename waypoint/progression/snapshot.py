"""
Per-call read cache over the progress and enrollment stores.

A snapshot lives for the duration of one public operation. It memoizes
records, attempts, enrollment lookups and access results so a cascade over a
course reads each node's state once.
"""
from __future__ import annotations

from collections.abc import Iterable

from waypoint.content.models import ContentKind
from waypoint.progress.models import AssessmentAttempt, ProgressRecord, ProgressStatus
from waypoint.progress.store import EnrollmentStore, ProgressStore

RecordKey = tuple[str, ContentKind]


class ProgressSnapshot:
    def __init__(self, student_id: str, progress_store: ProgressStore, enrollments: EnrollmentStore):
        self.student_id = student_id
        self._store = progress_store
        self._enrollments = enrollments
        self._records: dict[RecordKey, ProgressRecord | None] = {}
        self._attempts: dict[str, list[AssessmentAttempt]] = {}
        self._enrolled: dict[str, bool] = {}
        self.access_results: dict[RecordKey, object] = {}

    def preload_course(self, course_id: str, keys: Iterable[RecordKey]) -> None:
        """Load every record of a course in one query; absent keys are cached as None."""
        found = {
            (record.content_id, record.kind): record
            for record in self._store.list_records(self.student_id, course_id=course_id)
        }
        for key in keys:
            self._records.setdefault(key, found.get(key))
        for key, record in found.items():
            self._records.setdefault(key, record)

    def record(self, content_id: str, kind: ContentKind) -> ProgressRecord | None:
        key = (content_id, kind)
        if key not in self._records:
            self._records[key] = self._store.get_record(self.student_id, content_id, kind)
        return self._records[key]

    def is_completed(self, content_id: str, kind: ContentKind) -> bool:
        record = self.record(content_id, kind)
        return record is not None and record.status is ProgressStatus.COMPLETED

    def attempts(self, assessment_id: str) -> list[AssessmentAttempt]:
        if assessment_id not in self._attempts:
            self._attempts[assessment_id] = self._store.list_attempts(self.student_id, assessment_id)
        return self._attempts[assessment_id]

    def best_attempt(self, assessment_id: str) -> AssessmentAttempt | None:
        """Highest-scoring attempt, passing attempts ranked first."""
        attempts = self.attempts(assessment_id)
        if not attempts:
            return None
        return max(attempts, key=lambda a: (a.passed, a.score))

    def has_passed(self, assessment_id: str) -> bool:
        return any(attempt.passed for attempt in self.attempts(assessment_id))

    def is_enrolled(self, course_id: str) -> bool:
        if course_id not in self._enrolled:
            self._enrolled[course_id] = self._enrollments.is_enrolled(self.student_id, course_id)
        return self._enrolled[course_id]
