"""
Catalog files.

A catalog is a JSON document with flat ``courses``, ``lessons`` and
``assessments`` lists. Entries are validated with pydantic and converted to
the frozen content dataclasses; lessons are returned before the assessments
that bind to them so repositories can insert in order.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from waypoint.content.models import Assessment, ContentNode, Course, DifficultyLevel, Lesson, Question
from waypoint.errors import WaypointError


class QuestionEntry(BaseModel):
    id: str
    topics: list[str] = Field(default_factory=list)
    points: int = 1
    text: str = ""


class CourseEntry(BaseModel):
    id: str
    title: str
    published: bool = True
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    difficulty: DifficultyLevel = DifficultyLevel.BEGINNER
    estimated_time: int = 0
    final_assessment_id: str | None = None


class LessonEntry(BaseModel):
    id: str
    course_id: str
    title: str
    order_index: int = 0
    prerequisites: list[str] = Field(default_factory=list)
    published: bool = True
    learning_objectives: list[str] = Field(default_factory=list)
    estimated_time: int = 60
    difficulty: DifficultyLevel = DifficultyLevel.BEGINNER
    assessment_id: str | None = None


class AssessmentEntry(BaseModel):
    id: str
    title: str
    lesson_id: str | None = None
    course_id: str | None = None
    questions: list[QuestionEntry] = Field(default_factory=list)
    is_mandatory: bool = False
    minimum_passing_score: float = Field(70.0, ge=0, le=100)
    max_attempts: int | None = Field(None, ge=1)
    estimated_time: int = 30

    @model_validator(mode="after")
    def _one_binding(self) -> AssessmentEntry:
        if (self.lesson_id is None) == (self.course_id is None):
            raise ValueError("exactly one of lesson_id/course_id must be set")
        return self


class CatalogDocument(BaseModel):
    courses: list[CourseEntry] = Field(default_factory=list)
    lessons: list[LessonEntry] = Field(default_factory=list)
    assessments: list[AssessmentEntry] = Field(default_factory=list)


class CatalogError(WaypointError):
    """Catalog file could not be read or validated."""

    def __init__(self, source: str, message: str):
        super().__init__(f"Invalid catalog {source}: {message}", code="INVALID_CATALOG", details={"source": source})


def parse_catalog(data: dict[str, Any], source: str = "<data>") -> list[ContentNode]:
    try:
        document = CatalogDocument.model_validate(data)
    except ValidationError as e:
        raise CatalogError(source, str(e)) from e

    nodes: list[ContentNode] = []
    for course in document.courses:
        nodes.append(
            Course(**{**course.model_dump(), "tags": tuple(course.tags)})
        )
    for lesson in document.lessons:
        nodes.append(
            Lesson(
                **{
                    **lesson.model_dump(),
                    "prerequisites": tuple(lesson.prerequisites),
                    "learning_objectives": tuple(lesson.learning_objectives),
                }
            )
        )
    for assessment in document.assessments:
        questions = tuple(
            Question(id=q.id, topics=tuple(q.topics), points=q.points, text=q.text) for q in assessment.questions
        )
        nodes.append(Assessment(**{**assessment.model_dump(), "questions": questions}))
    return nodes


def load_catalog(path: str | Path) -> list[ContentNode]:
    """Read and validate a catalog JSON file."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise CatalogError(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise CatalogError(str(path), "top level must be an object")
    return parse_catalog(data, source=str(path))
