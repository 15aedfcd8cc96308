"""
Error types for the progression and roadmap engine.

Access checks return denials as AccessResult values; only submitting an
attempt against a denial raises. Only the conditions below propagate to
callers:

- NotFound: unknown content, assessment, attempt or roadmap
- AttemptNotAllowed: a submission for an assessment the student cannot
  access (attempt limit reached, locked prerequisites)
- InvalidStateTransition: an administrative or status change the state machine forbids
- PersistenceConflict: a concurrent write won the race twice in a row
- GenerationUnavailable: the external path generator timed out or failed
  (always recovered locally, never surfaced by the public operations)
- CyclicPrerequisite: the content graph contains a prerequisite cycle
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


class WaypointError(Exception):
    """Base class for all engine errors."""

    code = "WAYPOINT_ERROR"

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        self.timestamp = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and audit logs."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ContentNotFoundError(WaypointError):
    """A course, lesson or assessment does not exist (or has a different kind)."""

    code = "CONTENT_NOT_FOUND"

    def __init__(self, content_id: str, kind: str):
        super().__init__(
            f"{kind.capitalize()} not found: {content_id}",
            details={"content_id": content_id, "kind": kind},
        )
        self.content_id = content_id
        self.kind = kind


class RoadmapNotFoundError(WaypointError):
    """The student has no active roadmap."""

    code = "ROADMAP_NOT_FOUND"

    def __init__(self, student_id: str):
        super().__init__(
            f"No active roadmap for student {student_id}",
            details={"student_id": student_id},
        )
        self.student_id = student_id


class InvalidStateTransitionError(WaypointError):
    """A requested status change is not allowed from the current state."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, current: str, requested: str, reason: str = ""):
        message = f"Cannot apply '{requested}' to content in state '{current}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"current": current, "requested": requested})
        self.current = current
        self.requested = requested


class PersistenceConflictError(WaypointError):
    """An optimistic-concurrency check failed (stale version or duplicate key)."""

    code = "PERSISTENCE_CONFLICT"


class GenerationUnavailableError(WaypointError):
    """The external path generator timed out, errored, or returned garbage."""

    code = "GENERATION_UNAVAILABLE"


class CyclicPrerequisiteError(WaypointError):
    """Prerequisite edges form a cycle."""

    code = "CYCLIC_PREREQUISITES"

    def __init__(self, cycles: list[list[str]]):
        rendered = "; ".join(" -> ".join(cycle + cycle[:1]) for cycle in cycles)
        super().__init__(f"Prerequisite cycle detected: {rendered}", details={"cycles": cycles})
        self.cycles = cycles


class AttemptNotFoundError(WaypointError):
    """No stored attempt matches the requested (student, assessment, number)."""

    code = "ATTEMPT_NOT_FOUND"

    def __init__(self, student_id: str, assessment_id: str, attempt_number: int | None = None):
        which = f"attempt {attempt_number}" if attempt_number is not None else "any attempt"
        super().__init__(
            f"No {which} by {student_id} on assessment {assessment_id}",
            details={
                "student_id": student_id,
                "assessment_id": assessment_id,
                "attempt_number": attempt_number,
            },
        )


class AttemptNotAllowedError(WaypointError):
    """An attempt was submitted for an assessment the student cannot access."""

    code = "ATTEMPT_NOT_ALLOWED"

    def __init__(
        self,
        student_id: str,
        assessment_id: str,
        reason: str,
        blocked_by: dict[str, str] | None = None,
    ):
        super().__init__(
            f"Attempt on {assessment_id} rejected: {reason}",
            details={
                "student_id": student_id,
                "assessment_id": assessment_id,
                "reason": reason,
                "blocked_by": blocked_by,
            },
        )
        self.reason = reason
