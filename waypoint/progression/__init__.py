"""Access control, progress recording and the unlock cascade."""

from waypoint.progression.cascade import UnlockCascadeComputer
from waypoint.progression.controller import ProgressionController
from waypoint.progression.models import (
    AccessResult,
    AttemptOutcome,
    BlockedBy,
    CourseProgressOverview,
    PrerequisiteStatus,
    UnlockedContent,
)

__all__ = [
    "AccessResult",
    "AttemptOutcome",
    "BlockedBy",
    "CourseProgressOverview",
    "PrerequisiteStatus",
    "ProgressionController",
    "UnlockCascadeComputer",
    "UnlockedContent",
]
