"""
Content Graph.

Read-only view of courses, lessons and assessments plus their prerequisite
edges. Backed by a ContentRepository (SQL in production, in-memory in tests).

Provides:
- Typed lookups that raise ContentNotFoundError for unknown ids
- Per-course subgraphs in topological order (cycle-aware)
- Catalog descriptions handed to the path-generation service
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger

from waypoint.content.models import (
    Assessment,
    ContentKind,
    ContentNode,
    Course,
    Lesson,
)
from waypoint.content.toposort import TopologicalOrder, topological_sort
from waypoint.errors import ContentNotFoundError, CyclicPrerequisiteError


class ContentRepository(Protocol):
    """Read access to content. Implementations must not mutate returned nodes."""

    def get_course(self, course_id: str) -> Course | None: ...

    def get_lesson(self, lesson_id: str) -> Lesson | None: ...

    def get_assessment(self, assessment_id: str) -> Assessment | None: ...

    def lessons_for_course(self, course_id: str) -> list[Lesson]: ...

    def list_courses(self) -> list[Course]: ...


class InMemoryContentRepository:
    """Dictionary-backed repository for tests and fixtures."""

    def __init__(self, nodes: Iterable[ContentNode] = ()):
        self._courses: dict[str, Course] = {}
        self._lessons: dict[str, Lesson] = {}
        self._assessments: dict[str, Assessment] = {}
        for node in nodes:
            self.add(node)

    def add(self, node: ContentNode) -> None:
        if isinstance(node, Course):
            self._courses[node.id] = node
        elif isinstance(node, Lesson):
            self._lessons[node.id] = node
        elif isinstance(node, Assessment):
            self._assessments[node.id] = node
        else:
            raise TypeError(f"Unsupported content node: {node!r}")

    def get_course(self, course_id: str) -> Course | None:
        return self._courses.get(course_id)

    def get_lesson(self, lesson_id: str) -> Lesson | None:
        return self._lessons.get(lesson_id)

    def get_assessment(self, assessment_id: str) -> Assessment | None:
        return self._assessments.get(assessment_id)

    def lessons_for_course(self, course_id: str) -> list[Lesson]:
        lessons = [lesson for lesson in self._lessons.values() if lesson.course_id == course_id]
        return sorted(lessons, key=lambda lesson: lesson.order_index)

    def list_courses(self) -> list[Course]:
        return list(self._courses.values())


@dataclass
class CourseSubgraph:
    """One course's lessons and assessments, lessons in prerequisite order."""

    course: Course
    lessons: list[Lesson]
    assessments: dict[str, Assessment] = field(default_factory=dict)
    cyclic_lesson_ids: list[str] = field(default_factory=list)

    @property
    def final_assessment(self) -> Assessment | None:
        if self.course.final_assessment_id:
            return self.assessments.get(self.course.final_assessment_id)
        return None

    def lesson_assessment(self, lesson: Lesson) -> Assessment | None:
        if lesson.assessment_id:
            return self.assessments.get(lesson.assessment_id)
        return None


class ContentGraph:
    """
    Typed, read-only access to the content graph.

    All lookups go through the repository on each call; nothing is cached
    between calls so the graph always reflects persisted content.
    """

    def __init__(self, repository: ContentRepository):
        self._repository = repository

    # =========================================================================
    # Lookups
    # =========================================================================

    def find_course(self, course_id: str) -> Course | None:
        return self._repository.get_course(course_id)

    def find_lesson(self, lesson_id: str) -> Lesson | None:
        return self._repository.get_lesson(lesson_id)

    def find_assessment(self, assessment_id: str) -> Assessment | None:
        return self._repository.get_assessment(assessment_id)

    def course(self, course_id: str) -> Course:
        course = self.find_course(course_id)
        if course is None:
            raise ContentNotFoundError(course_id, ContentKind.COURSE.value)
        return course

    def lesson(self, lesson_id: str) -> Lesson:
        lesson = self.find_lesson(lesson_id)
        if lesson is None:
            raise ContentNotFoundError(lesson_id, ContentKind.LESSON.value)
        return lesson

    def assessment(self, assessment_id: str) -> Assessment:
        assessment = self.find_assessment(assessment_id)
        if assessment is None:
            raise ContentNotFoundError(assessment_id, ContentKind.ASSESSMENT.value)
        return assessment

    def node(self, content_id: str, kind: ContentKind | str) -> ContentNode:
        """Look up a node by id and kind; a kind mismatch counts as not found."""
        kind = ContentKind(kind)
        if kind is ContentKind.COURSE:
            return self.course(content_id)
        if kind is ContentKind.LESSON:
            return self.lesson(content_id)
        return self.assessment(content_id)

    def find_any(self, content_id: str) -> ContentNode | None:
        """Resolve an id of unknown kind (used for untrusted roadmap candidates)."""
        return (
            self.find_lesson(content_id)
            or self.find_assessment(content_id)
            or self.find_course(content_id)
        )

    def lessons_in_course(self, course_id: str) -> list[Lesson]:
        return self._repository.lessons_for_course(course_id)

    def list_courses(self) -> list[Course]:
        return self._repository.list_courses()

    def owning_course_id(self, node: ContentNode) -> str:
        """Course that scopes cascade computation for a node."""
        if isinstance(node, Course):
            return node.id
        if isinstance(node, Lesson):
            return node.course_id
        if node.course_id is not None:
            return node.course_id
        return self.lesson(node.lesson_id).course_id

    def is_published(self, node: ContentNode) -> bool:
        """Assessments carry no flag of their own; they follow their binding."""
        if isinstance(node, (Course, Lesson)):
            return node.published
        if node.lesson_id is not None:
            lesson = self.find_lesson(node.lesson_id)
            return lesson is not None and lesson.published
        course = self.find_course(node.course_id)
        return course is not None and course.published

    def prerequisites_of(self, node: ContentNode) -> tuple[str, ...]:
        """
        Authoritative prerequisite ids for a node.

        Lessons use their declared edges, a lesson-bound assessment depends on
        its lesson, and a final assessment depends on every lesson of its course.
        """
        if isinstance(node, Lesson):
            return node.prerequisites
        if isinstance(node, Assessment):
            if node.lesson_id is not None:
                return (node.lesson_id,)
            return tuple(lesson.id for lesson in self.lessons_in_course(node.course_id))
        return ()

    # =========================================================================
    # Ordering
    # =========================================================================

    def topological_lessons(self, course_id: str) -> TopologicalOrder:
        """Lessons of a course in prerequisite order; cross-course edges are ignored."""
        lessons = self.lessons_in_course(course_id)
        edges = {lesson.id: lesson.prerequisites for lesson in lessons}
        ordering = topological_sort(edges.keys(), lambda lesson_id: edges[lesson_id])
        if ordering.has_cycles:
            logger.warning(
                f"Prerequisite cycle in course {course_id}: {ordering.cycles} "
                f"({len(ordering.rejected)} lessons unplaceable)"
            )
        return ordering

    def check_acyclic(self, course_id: str) -> None:
        """Raise CyclicPrerequisiteError if the course's lessons form a cycle."""
        ordering = self.topological_lessons(course_id)
        if ordering.has_cycles:
            raise CyclicPrerequisiteError(ordering.cycles)

    def course_subgraph(self, course_id: str) -> CourseSubgraph:
        course = self.course(course_id)
        by_id = {lesson.id: lesson for lesson in self.lessons_in_course(course_id)}
        ordering = self.topological_lessons(course_id)

        assessments: dict[str, Assessment] = {}
        assessment_ids = [lesson.assessment_id for lesson in by_id.values() if lesson.assessment_id]
        if course.final_assessment_id:
            assessment_ids.append(course.final_assessment_id)
        for assessment_id in assessment_ids:
            assessment = self.find_assessment(assessment_id)
            if assessment is None:
                logger.warning(f"Course {course_id} references missing assessment {assessment_id}")
                continue
            assessments[assessment_id] = assessment

        return CourseSubgraph(
            course=course,
            lessons=[by_id[lesson_id] for lesson_id in ordering.order],
            assessments=assessments,
            cyclic_lesson_ids=ordering.rejected,
        )

    # =========================================================================
    # Catalog
    # =========================================================================

    def describe_catalog(self, course_ids: Iterable[str] | None = None) -> list[dict[str, Any]]:
        """
        Published content as plain dicts for the path-generation service.

        Args:
            course_ids: Restrict to these courses (default: every course)
        """
        if course_ids is None:
            courses = self.list_courses()
        else:
            courses = [c for c in (self.find_course(cid) for cid in course_ids) if c is not None]

        catalog: list[dict[str, Any]] = []
        for course in courses:
            if not course.published:
                continue
            catalog.append({
                "id": course.id,
                "kind": ContentKind.COURSE.value,
                "title": course.title,
                "description": course.description,
                "tags": list(course.tags),
                "difficulty": course.difficulty.value,
                "estimated_time": course.estimated_time,
                "prerequisites": [],
            })
            for lesson in self.lessons_in_course(course.id):
                if not lesson.published:
                    continue
                catalog.append({
                    "id": lesson.id,
                    "kind": ContentKind.LESSON.value,
                    "course_id": course.id,
                    "title": lesson.title,
                    "learning_objectives": list(lesson.learning_objectives),
                    "difficulty": lesson.difficulty.value,
                    "estimated_time": lesson.estimated_time,
                    "prerequisites": list(lesson.prerequisites),
                })
                if lesson.assessment_id:
                    assessment = self.find_assessment(lesson.assessment_id)
                    if assessment is not None:
                        catalog.append(self._describe_assessment(assessment, course.id))
            if course.final_assessment_id:
                final = self.find_assessment(course.final_assessment_id)
                if final is not None:
                    catalog.append(self._describe_assessment(final, course.id))
        return catalog

    def _describe_assessment(self, assessment: Assessment, course_id: str) -> dict[str, Any]:
        return {
            "id": assessment.id,
            "kind": ContentKind.ASSESSMENT.value,
            "course_id": course_id,
            "title": assessment.title,
            "estimated_time": assessment.estimated_time,
            "prerequisites": list(self.prerequisites_of(assessment)),
            "topics": sorted({topic for q in assessment.questions for topic in q.topics}),
        }
