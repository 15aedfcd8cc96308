"""Roadmap persistence interface."""
from __future__ import annotations

from abc import ABC, abstractmethod

from waypoint.roadmap.models import Roadmap


class RoadmapStore(ABC):
    """
    Roadmap rows keyed by id, with at most one active row per student.

    ``replace_active`` and ``save`` are single atomic writes. A stale
    version or a second concurrent active roadmap raises
    PersistenceConflictError.
    """

    @abstractmethod
    def get_active(self, student_id: str) -> Roadmap | None:
        ...

    @abstractmethod
    def list_for_student(self, student_id: str) -> list[Roadmap]:
        """Every roadmap of the student, newest first."""

    @abstractmethod
    def replace_active(self, roadmap: Roadmap) -> Roadmap:
        """Pause the current active roadmap (if any) and insert ``roadmap`` as active."""

    @abstractmethod
    def save(self, roadmap: Roadmap) -> Roadmap:
        """Update an existing roadmap if its version still matches."""
