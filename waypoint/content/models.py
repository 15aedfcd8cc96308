"""
Content node types.

Courses, lessons and assessments are separate frozen dataclasses tagged by
``ContentKind``. Prerequisite edges point from a lesson to the lesson ids it
depends on, in declared order.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Union


class ContentKind(str, Enum):
    """Discriminator for content nodes."""

    COURSE = "course"
    LESSON = "lesson"
    ASSESSMENT = "assessment"


class DifficultyLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @classmethod
    def parse(cls, value: object, default: DifficultyLevel | None = None) -> DifficultyLevel:
        """Coerce untrusted input into a known level, falling back to ``default``."""
        fallback = default or cls.BEGINNER
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return fallback
        return fallback


@dataclass(frozen=True)
class Question:
    id: str
    topics: tuple[str, ...] = ()
    points: int = 1
    text: str = ""


@dataclass(frozen=True)
class Course:
    id: str
    title: str
    published: bool = True
    description: str = ""
    tags: tuple[str, ...] = ()
    difficulty: DifficultyLevel = DifficultyLevel.BEGINNER
    estimated_time: int = 0
    final_assessment_id: str | None = None

    kind: ClassVar[ContentKind] = ContentKind.COURSE


@dataclass(frozen=True)
class Lesson:
    id: str
    course_id: str
    title: str
    order_index: int = 0
    prerequisites: tuple[str, ...] = ()
    published: bool = True
    learning_objectives: tuple[str, ...] = ()
    estimated_time: int = 60
    difficulty: DifficultyLevel = DifficultyLevel.BEGINNER
    assessment_id: str | None = None

    kind: ClassVar[ContentKind] = ContentKind.LESSON


@dataclass(frozen=True)
class Assessment:
    """
    A quiz bound either to one lesson or to a whole course (final assessment).

    Exactly one of ``lesson_id`` / ``course_id`` is set.
    """

    id: str
    title: str
    lesson_id: str | None = None
    course_id: str | None = None
    questions: tuple[Question, ...] = field(default_factory=tuple)
    is_mandatory: bool = False
    minimum_passing_score: float = 70.0
    max_attempts: int | None = None
    estimated_time: int = 30

    kind: ClassVar[ContentKind] = ContentKind.ASSESSMENT

    def __post_init__(self) -> None:
        if (self.lesson_id is None) == (self.course_id is None):
            raise ValueError(
                f"Assessment {self.id} must be bound to exactly one of lesson_id/course_id"
            )

    @property
    def is_final(self) -> bool:
        return self.course_id is not None

    def question(self, question_id: str) -> Question | None:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


ContentNode = Union[Course, Lesson, Assessment]
