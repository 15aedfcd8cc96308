"""ORM tables. Importing this package registers every table on Base.metadata."""

from .base import Base, JSONType
from .content import AssessmentRow, CourseRow, EnrollmentRow, LessonRow
from .progress import AccessibilitySnapshotRow, AssessmentAttemptRow, ProgressRecordRow
from .roadmap import RoadmapRow

__all__ = [
    "AccessibilitySnapshotRow",
    "AssessmentAttemptRow",
    "AssessmentRow",
    "Base",
    "CourseRow",
    "EnrollmentRow",
    "JSONType",
    "LessonRow",
    "ProgressRecordRow",
    "RoadmapRow",
]
