"""Access results and course progress overviews."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from waypoint.content.models import Assessment, ContentKind, ContentNode, Lesson
from waypoint.progress.models import AssessmentAttempt, ProgressRecord


@dataclass(frozen=True)
class BlockedBy:
    """The item a student has to deal with before access is granted."""

    kind: ContentKind
    id: str
    title: str

    @classmethod
    def of(cls, node: ContentNode) -> BlockedBy:
        return cls(kind=node.kind, id=node.id, title=node.title)

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "id": self.id, "title": self.title}


@dataclass(frozen=True)
class PrerequisiteStatus:
    id: str
    title: str
    completed: bool
    score: float | None = None
    required_score: float | None = None
    passed: bool | None = None
    assessment_id: str | None = None

    @property
    def satisfied(self) -> bool:
        """Completed, and the bound assessment (if any) has a passing attempt."""
        return self.completed and self.passed is not False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "score": self.score,
            "required_score": self.required_score,
            "passed": self.passed,
            "assessment_id": self.assessment_id,
        }


@dataclass(frozen=True)
class AccessResult:
    can_access: bool
    reason: str | None = None
    blocked_by: BlockedBy | None = None
    prerequisite_statuses: tuple[PrerequisiteStatus, ...] = ()

    @classmethod
    def granted(cls, prerequisite_statuses: tuple[PrerequisiteStatus, ...] = ()) -> AccessResult:
        return cls(can_access=True, prerequisite_statuses=prerequisite_statuses)

    @classmethod
    def denied(
        cls,
        reason: str,
        blocked_by: BlockedBy | None = None,
        prerequisite_statuses: tuple[PrerequisiteStatus, ...] = (),
    ) -> AccessResult:
        return cls(
            can_access=False,
            reason=reason,
            blocked_by=blocked_by,
            prerequisite_statuses=prerequisite_statuses,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "can_access": self.can_access,
            "reason": self.reason,
            "blocked_by": self.blocked_by.to_dict() if self.blocked_by else None,
            "prerequisite_statuses": [s.to_dict() for s in self.prerequisite_statuses],
        }


@dataclass
class UnlockedContent:
    """Ids that became accessible as a result of one progress change."""

    lessons: list[str] = field(default_factory=list)
    assessments: list[str] = field(default_factory=list)
    courses: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.lessons or self.assessments or self.courses)

    def add(self, content_id: str, kind: ContentKind) -> None:
        if kind is ContentKind.LESSON:
            self.lessons.append(content_id)
        elif kind is ContentKind.ASSESSMENT:
            self.assessments.append(content_id)
        else:
            self.courses.append(content_id)

    def to_dict(self) -> dict[str, list[str]]:
        return {"lessons": self.lessons, "assessments": self.assessments, "courses": self.courses}


@dataclass
class AttemptOutcome:
    attempt: AssessmentAttempt
    record: ProgressRecord
    unlocked: UnlockedContent


@dataclass
class AssessmentOverview:
    assessment: Assessment
    can_access: bool
    passed: bool
    progress: ProgressRecord | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.assessment.id,
            "title": self.assessment.title,
            "can_access": self.can_access,
            "passed": self.passed,
            "reason": self.reason,
            "progress": self.progress.to_dict() if self.progress else None,
        }


@dataclass
class LessonOverview:
    lesson: Lesson
    can_access: bool
    progress: ProgressRecord | None = None
    blocked_by: BlockedBy | None = None
    assessment: AssessmentOverview | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.lesson.id,
            "title": self.lesson.title,
            "order_index": self.lesson.order_index,
            "can_access": self.can_access,
            "blocked_by": self.blocked_by.to_dict() if self.blocked_by else None,
            "progress": self.progress.to_dict() if self.progress else None,
            "assessment": self.assessment.to_dict() if self.assessment else None,
        }


@dataclass
class CourseProgressOverview:
    course_id: str
    course_title: str
    overall_progress: int
    total_lessons: int
    completed_lessons: int
    lessons: list[LessonOverview] = field(default_factory=list)
    final_assessment: AssessmentOverview | None = None
    is_completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "course_id": self.course_id,
            "course_title": self.course_title,
            "overall_progress": self.overall_progress,
            "total_lessons": self.total_lessons,
            "completed_lessons": self.completed_lessons,
            "lessons": [lesson.to_dict() for lesson in self.lessons],
            "final_assessment": self.final_assessment.to_dict() if self.final_assessment else None,
            "is_completed": self.is_completed,
        }
