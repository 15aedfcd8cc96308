"""Content graph: courses, lessons, assessments and prerequisite edges."""

from waypoint.content.graph import (
    ContentGraph,
    ContentRepository,
    CourseSubgraph,
    InMemoryContentRepository,
)
from waypoint.content.models import (
    Assessment,
    ContentKind,
    ContentNode,
    Course,
    DifficultyLevel,
    Lesson,
    Question,
)

__all__ = [
    "Assessment",
    "ContentGraph",
    "ContentKind",
    "ContentNode",
    "ContentRepository",
    "Course",
    "CourseSubgraph",
    "DifficultyLevel",
    "InMemoryContentRepository",
    "Lesson",
    "Question",
]
