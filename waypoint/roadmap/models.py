"""
Roadmap domain types.

A Roadmap is an ordered list of LearningPathItems. order_index is always
contiguous from 0, and every prerequisite of an item sits at a smaller index.
Remedial items carry a ``topic`` and no graph node behind them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from waypoint.content.models import ContentKind, DifficultyLevel
from waypoint.errors import InvalidStateTransitionError
from waypoint.progress.models import ProgressStatus


class RoadmapStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


ROADMAP_TRANSITIONS: dict[RoadmapStatus, frozenset[RoadmapStatus]] = {
    RoadmapStatus.ACTIVE: frozenset({RoadmapStatus.PAUSED, RoadmapStatus.COMPLETED}),
    RoadmapStatus.PAUSED: frozenset(),
    RoadmapStatus.COMPLETED: frozenset(),
}


class PatternType(str, Enum):
    LEARNING_PACE = "learning_pace"
    STRUGGLE_AREA = "struggle_area"


@dataclass
class LearningPathItem:
    content_id: str
    content_kind: ContentKind
    title: str
    order_index: int = 0
    estimated_time: int = 60
    prerequisites: list[str] = field(default_factory=list)
    learning_objectives: list[str] = field(default_factory=list)
    personalization_notes: str = ""
    difficulty: DifficultyLevel = DifficultyLevel.BEGINNER
    topic: str | None = None
    is_unlocked: bool = False
    completion_status: ProgressStatus = ProgressStatus.NOT_STARTED

    @property
    def is_remedial(self) -> bool:
        return self.topic is not None

    def matches_topic(self, topic: str) -> bool:
        """Case-insensitive match of a topic against the title or any objective."""
        needle = topic.strip().lower()
        if not needle:
            return False
        if needle in self.title.lower():
            return True
        return any(needle in objective.lower() for objective in self.learning_objectives)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content_id": self.content_id,
            "content_kind": self.content_kind.value,
            "title": self.title,
            "order_index": self.order_index,
            "estimated_time": self.estimated_time,
            "prerequisites": list(self.prerequisites),
            "learning_objectives": list(self.learning_objectives),
            "personalization_notes": self.personalization_notes,
            "difficulty": self.difficulty.value,
            "topic": self.topic,
            "is_unlocked": self.is_unlocked,
            "completion_status": self.completion_status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearningPathItem:
        return cls(
            content_id=data["content_id"],
            content_kind=ContentKind(data.get("content_kind", ContentKind.LESSON.value)),
            title=data.get("title", ""),
            order_index=int(data.get("order_index", 0)),
            estimated_time=int(data.get("estimated_time", 60)),
            prerequisites=list(data.get("prerequisites", [])),
            learning_objectives=list(data.get("learning_objectives", [])),
            personalization_notes=data.get("personalization_notes", ""),
            difficulty=DifficultyLevel.parse(data.get("difficulty")),
            topic=data.get("topic"),
            is_unlocked=bool(data.get("is_unlocked", False)),
            completion_status=ProgressStatus(data.get("completion_status", ProgressStatus.NOT_STARTED.value)),
        )


@dataclass
class TimeConstraints:
    hours_per_week: float | None = None
    target_completion_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hours_per_week": self.hours_per_week,
            "target_completion_date": (
                self.target_completion_date.isoformat() if self.target_completion_date else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TimeConstraints | None:
        if not data:
            return None
        target = data.get("target_completion_date")
        return cls(
            hours_per_week=data.get("hours_per_week"),
            target_completion_date=date.fromisoformat(target) if target else None,
        )


@dataclass
class Roadmap:
    """
    A student's learning path.

    ``version`` is the optimistic-concurrency token (0 = not yet persisted).
    ``pace_factor`` records a pace scaling already applied to the estimates.
    """

    student_id: str
    items: list[LearningPathItem] = field(default_factory=list)
    status: RoadmapStatus = RoadmapStatus.ACTIVE
    rationale: str = ""
    knowledge_gaps: list[str] = field(default_factory=list)
    target_skills: list[str] = field(default_factory=list)
    time_constraints: TimeConstraints | None = None
    pace_factor: float = 1.0
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: str = field(default_factory=lambda: str(uuid4()))
    version: int = 0

    @property
    def total_estimated_time(self) -> int:
        return sum(item.estimated_time for item in self.items)

    def renumber(self) -> None:
        for index, item in enumerate(self.items):
            item.order_index = index

    def append_rationale(self, sentence: str) -> None:
        """Rationale is append-only."""
        sentence = sentence.strip()
        if not sentence:
            return
        self.rationale = f"{self.rationale}\n\n{sentence}" if self.rationale else sentence

    def transition_to(self, status: RoadmapStatus) -> None:
        if status not in ROADMAP_TRANSITIONS[self.status]:
            raise InvalidStateTransitionError(
                self.status.value,
                status.value,
                "roadmaps only move from active to paused or completed",
            )
        self.status = status
        self.updated_at = datetime.now(UTC)

    def remedial_topics(self) -> set[str]:
        return {item.topic.strip().lower() for item in self.items if item.topic}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "status": self.status.value,
            "rationale": self.rationale,
            "items": [item.to_dict() for item in self.items],
            "total_estimated_time": self.total_estimated_time,
            "knowledge_gaps": list(self.knowledge_gaps),
            "target_skills": list(self.target_skills),
            "time_constraints": self.time_constraints.to_dict() if self.time_constraints else None,
            "pace_factor": self.pace_factor,
            "generated_at": self.generated_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class StudentProfile:
    student_id: str
    completed_content_ids: list[str] = field(default_factory=list)
    knowledge_gaps: list[str] = field(default_factory=list)
    enrolled_course_ids: list[str] = field(default_factory=list)
    preferences: dict[str, Any] = field(default_factory=dict)
    assessment_history: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "completed_content_ids": list(self.completed_content_ids),
            "knowledge_gaps": list(self.knowledge_gaps),
            "enrolled_course_ids": list(self.enrolled_course_ids),
            "preferences": dict(self.preferences),
            "assessment_history": list(self.assessment_history),
        }


@dataclass
class FailureAnalysis:
    """Root-cause summary of a failed assessment attempt."""

    student_id: str
    assessment_id: str
    assessment_title: str
    score: float
    attempt_number: int
    attempt_count: int
    topic_gaps: list[str] = field(default_factory=list)
    struggling: bool = False
    consistent_errors: list[str] = field(default_factory=list)
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "assessment_id": self.assessment_id,
            "assessment_title": self.assessment_title,
            "score": self.score,
            "attempt_number": self.attempt_number,
            "attempt_count": self.attempt_count,
            "topic_gaps": list(self.topic_gaps),
            "struggling": self.struggling,
            "consistent_errors": list(self.consistent_errors),
            "reasoning": self.reasoning,
        }


@dataclass
class AlternativePath:
    """Other published lessons covering a topic the student is stuck on."""

    id: str
    original_content_id: str
    topic: str
    items: list[LearningPathItem] = field(default_factory=list)
    reason: str = ""
    difficulty_adjustment: str = "easier"
    estimated_time_difference: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "original_content_id": self.original_content_id,
            "topic": self.topic,
            "items": [item.to_dict() for item in self.items],
            "reason": self.reason,
            "difficulty_adjustment": self.difficulty_adjustment,
            "estimated_time_difference": self.estimated_time_difference,
        }


@dataclass
class LearningPattern:
    student_id: str
    pattern_type: PatternType
    data: dict[str, Any]
    confidence: float
    detected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
