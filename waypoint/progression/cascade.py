"""
Unlock Cascade.

After a progress change, re-evaluates access across the owning course and
diffs the result against the persisted accessibility set. The walk covers the
course node, its lessons in prerequisite order, each lesson's assessment and
the final assessment, so the cost is bounded by that one course.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from waypoint.concurrency import retry_once_on_conflict
from waypoint.content.graph import ContentGraph
from waypoint.content.models import ContentKind
from waypoint.progress.store import ProgressStore
from waypoint.progression.models import UnlockedContent

if TYPE_CHECKING:
    from waypoint.progression.controller import ProgressionController


class UnlockCascadeComputer:
    def __init__(
        self,
        graph: ContentGraph,
        progress_store: ProgressStore,
        controller: ProgressionController,
    ):
        self._graph = graph
        self._store = progress_store
        self._controller = controller

    def accessible_content(self, student_id: str, course_id: str) -> list[tuple[str, ContentKind]]:
        """Everything in the course the student can access right now, in walk order."""
        subgraph = self._graph.course_subgraph(course_id)
        snapshot = self._controller.snapshot(student_id)
        self._controller.preload(snapshot, subgraph)

        accessible: list[tuple[str, ContentKind]] = []
        if self._controller.evaluate(snapshot, subgraph.course).can_access:
            accessible.append((subgraph.course.id, ContentKind.COURSE))

        for lesson in subgraph.lessons:
            if not self._controller.evaluate(snapshot, lesson).can_access:
                continue
            accessible.append((lesson.id, ContentKind.LESSON))
            assessment = subgraph.lesson_assessment(lesson)
            if assessment and self._controller.evaluate(snapshot, assessment).can_access:
                accessible.append((assessment.id, ContentKind.ASSESSMENT))

        # Cyclic lessons were never placed in the walk, so they stay locked.
        final = subgraph.final_assessment
        if final and self._controller.evaluate(snapshot, final).can_access:
            accessible.append((final.id, ContentKind.ASSESSMENT))

        return accessible

    def ensure_baseline(self, student_id: str, course_id: str) -> None:
        """Record the current accessibility set if none has been stored yet."""

        def record() -> None:
            if self._store.get_accessible_snapshot(student_id, course_id) is not None:
                return
            current = self.accessible_content(student_id, course_id)
            self._store.save_accessible_snapshot(student_id, course_id, {cid for cid, _ in current})

        retry_once_on_conflict(record, f"accessibility baseline for {student_id} in {course_id}")

    def compute(self, student_id: str, course_id: str) -> UnlockedContent:
        """
        Content that became accessible since the last stored set.

        The first call for a (student, course) only records the baseline and
        reports nothing. Repeating the call without a progress change reports
        nothing either. The stored set is replaced only at the version that
        was diffed, so concurrent callers never report the same unlock twice.
        """

        def diff() -> UnlockedContent:
            previous = self._store.get_accessible_snapshot(student_id, course_id)
            current = self.accessible_content(student_id, course_id)
            current_ids = {content_id for content_id, _ in current}

            unlocked = UnlockedContent()
            if previous is not None:
                for content_id, kind in current:
                    if content_id not in previous.content_ids:
                        unlocked.add(content_id, kind)

            if previous is None or previous.content_ids != current_ids:
                self._store.save_accessible_snapshot(
                    student_id, course_id, current_ids, previous.version if previous else 0
                )
            return unlocked

        unlocked = retry_once_on_conflict(diff, f"unlock cascade for {student_id} in {course_id}")
        if not unlocked.is_empty:
            logger.info(
                f"Unlocked for {student_id} in course {course_id}: "
                f"{len(unlocked.lessons)} lessons, {len(unlocked.assessments)} assessments"
            )
        return unlocked
