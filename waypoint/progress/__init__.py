"""Progress records, the progress state machine and store interfaces."""

from waypoint.progress.models import (
    AccessibilitySnapshot,
    AnswerRecord,
    AssessmentAttempt,
    ProgressRecord,
    ProgressStatus,
    ProgressUpdate,
)
from waypoint.progress.state_machine import ProgressEvent, apply_event
from waypoint.progress.store import EnrollmentStore, ProgressStore

__all__ = [
    "AccessibilitySnapshot",
    "AnswerRecord",
    "AssessmentAttempt",
    "EnrollmentStore",
    "ProgressEvent",
    "ProgressRecord",
    "ProgressStatus",
    "ProgressStore",
    "ProgressUpdate",
    "apply_event",
]
