"""
Progression Controller.

Answers "can student S access content C" and records progress.

Access rules:
- Course: published and enrolled
- Lesson: published, enrolled, and every prerequisite lesson completed
  (with its bound assessment passed, when it has one)
- Lesson assessment: inherits the lesson's access; mandatory ones also need
  the lesson itself completed
- Final assessment: course access; mandatory ones also need every lesson
  completed and every lesson assessment passed
- Attempt limit: checked last, independent of prerequisites

Denials are returned as AccessResult values, never raised.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import UTC, datetime

from loguru import logger

from waypoint.concurrency import retry_once_on_conflict
from waypoint.content.graph import ContentGraph, CourseSubgraph
from waypoint.content.models import Assessment, ContentKind, ContentNode, Course, Lesson
from waypoint.errors import AttemptNotAllowedError, InvalidStateTransitionError
from waypoint.progress.models import (
    AnswerRecord,
    AssessmentAttempt,
    ProgressRecord,
    ProgressStatus,
    ProgressUpdate,
)
from waypoint.progress.state_machine import ProgressEvent, apply_event
from waypoint.progress.store import EnrollmentStore, ProgressStore
from waypoint.progression.cascade import UnlockCascadeComputer
from waypoint.progression.models import (
    AccessResult,
    AssessmentOverview,
    AttemptOutcome,
    BlockedBy,
    CourseProgressOverview,
    LessonOverview,
    PrerequisiteStatus,
    UnlockedContent,
)
from waypoint.progression.snapshot import ProgressSnapshot


class ProgressionController:
    """
    Access decisions and progress state transitions.

    Collaborators are injected; the controller keeps no state between calls.
    """

    def __init__(
        self,
        graph: ContentGraph,
        progress_store: ProgressStore,
        enrollments: EnrollmentStore,
    ):
        self._graph = graph
        self._store = progress_store
        self._enrollments = enrollments
        self.cascade = UnlockCascadeComputer(graph, progress_store, self)

    def snapshot(self, student_id: str) -> ProgressSnapshot:
        return ProgressSnapshot(student_id, self._store, self._enrollments)

    def preload(self, snapshot: ProgressSnapshot, subgraph: CourseSubgraph) -> None:
        keys = [(lesson.id, ContentKind.LESSON) for lesson in subgraph.lessons]
        keys += [(assessment_id, ContentKind.ASSESSMENT) for assessment_id in subgraph.assessments]
        snapshot.preload_course(subgraph.course.id, keys)

    # =========================================================================
    # Access checks
    # =========================================================================

    def can_access_content(
        self,
        student_id: str,
        content_id: str,
        kind: ContentKind | str,
    ) -> AccessResult:
        """
        Decide whether a student may access a piece of content.

        Raises:
            ContentNotFoundError: Unknown id, or the id belongs to another kind
        """
        node = self._graph.node(content_id, kind)
        return self.evaluate(self.snapshot(student_id), node)

    def check_access(self, student_id: str, content_id: str, kind: ContentKind | str) -> AccessResult:
        return self.can_access_content(student_id, content_id, kind)

    def evaluate(self, snapshot: ProgressSnapshot, node: ContentNode) -> AccessResult:
        """Access decision against a snapshot, memoized per node."""
        key = (node.id, node.kind)
        cached = snapshot.access_results.get(key)
        if cached is not None:
            return cached

        if isinstance(node, Course):
            result = self._course_access(snapshot, node)
        elif isinstance(node, Lesson):
            result = self._lesson_access(snapshot, node)
        else:
            result = self._assessment_access(snapshot, node)

        snapshot.access_results[key] = result
        return result

    def _course_access(self, snapshot: ProgressSnapshot, course: Course) -> AccessResult:
        if not course.published:
            return AccessResult.denied("Course is not published", BlockedBy.of(course))
        if not snapshot.is_enrolled(course.id):
            return AccessResult.denied("Not enrolled in course", BlockedBy.of(course))
        return AccessResult.granted()

    def _lesson_access(self, snapshot: ProgressSnapshot, lesson: Lesson) -> AccessResult:
        if not lesson.published:
            return AccessResult.denied("Lesson is not published", BlockedBy.of(lesson))

        if not snapshot.is_enrolled(lesson.course_id):
            course = self._graph.find_course(lesson.course_id)
            return AccessResult.denied(
                "Not enrolled in course",
                BlockedBy.of(course) if course else None,
            )

        statuses = tuple(self._prerequisite_statuses(snapshot, lesson))
        for status in statuses:
            if not status.satisfied:
                return AccessResult.denied(
                    "Prerequisites not met",
                    self._prerequisite_blocker(status),
                    statuses,
                )
        return AccessResult.granted(statuses)

    def _prerequisite_statuses(self, snapshot: ProgressSnapshot, lesson: Lesson) -> Iterable[PrerequisiteStatus]:
        for prereq_id in lesson.prerequisites:
            prereq = self._graph.find_lesson(prereq_id)
            if prereq is None:
                logger.warning(f"Lesson {lesson.id} lists missing prerequisite {prereq_id}, skipping")
                continue

            completed = snapshot.is_completed(prereq.id, ContentKind.LESSON)
            assessment = self._graph.find_assessment(prereq.assessment_id) if prereq.assessment_id else None
            if assessment is None:
                yield PrerequisiteStatus(id=prereq.id, title=prereq.title, completed=completed)
                continue

            best = snapshot.best_attempt(assessment.id)
            yield PrerequisiteStatus(
                id=prereq.id,
                title=prereq.title,
                completed=completed,
                score=best.score if best else None,
                required_score=assessment.minimum_passing_score,
                passed=snapshot.has_passed(assessment.id),
                assessment_id=assessment.id,
            )

    def _prerequisite_blocker(self, status: PrerequisiteStatus) -> BlockedBy:
        if status.completed and status.assessment_id:
            assessment = self._graph.find_assessment(status.assessment_id)
            if assessment is not None:
                return BlockedBy.of(assessment)
        return BlockedBy(kind=ContentKind.LESSON, id=status.id, title=status.title)

    def _assessment_access(self, snapshot: ProgressSnapshot, assessment: Assessment) -> AccessResult:
        if assessment.lesson_id is not None:
            lesson = self._graph.lesson(assessment.lesson_id)
            result = self.evaluate(snapshot, lesson)
            if not result.can_access:
                return result
            if assessment.is_mandatory and not snapshot.is_completed(lesson.id, ContentKind.LESSON):
                return AccessResult.denied(
                    "Must complete lesson content first",
                    BlockedBy.of(lesson),
                    result.prerequisite_statuses,
                )
        else:
            course = self._graph.course(assessment.course_id)
            result = self.evaluate(snapshot, course)
            if not result.can_access:
                return result
            if assessment.is_mandatory:
                blocker = self._first_incomplete_course_item(snapshot, course.id)
                if blocker is not None:
                    return AccessResult.denied("Must complete all course lessons first", blocker)

        if assessment.max_attempts is not None:
            taken = len(snapshot.attempts(assessment.id))
            if taken >= assessment.max_attempts:
                return AccessResult.denied(
                    f"Maximum attempts ({assessment.max_attempts}) reached",
                    BlockedBy.of(assessment),
                    result.prerequisite_statuses,
                )

        return AccessResult.granted(result.prerequisite_statuses)

    def _first_incomplete_course_item(self, snapshot: ProgressSnapshot, course_id: str) -> BlockedBy | None:
        for lesson in self._graph.lessons_in_course(course_id):
            if not snapshot.is_completed(lesson.id, ContentKind.LESSON):
                return BlockedBy.of(lesson)
            if lesson.assessment_id:
                assessment = self._graph.find_assessment(lesson.assessment_id)
                if assessment is not None and not snapshot.has_passed(assessment.id):
                    return BlockedBy.of(assessment)
        return None

    # =========================================================================
    # Progress updates
    # =========================================================================

    def update_progress(self, update: ProgressUpdate) -> UnlockedContent:
        """
        Record progress and return content unlocked by it.

        Raises:
            ContentNotFoundError: Unknown content
            InvalidStateTransitionError: The update asks for blocked/failed
            PersistenceConflictError: The write lost two races in a row
        """
        kind = ContentKind(update.kind)
        node = self._graph.node(update.content_id, kind)

        if update.status in (ProgressStatus.BLOCKED, ProgressStatus.FAILED):
            current = self._store.get_record(update.student_id, node.id, kind)
            raise InvalidStateTransitionError(
                (current.status if current else ProgressStatus.NOT_STARTED).value,
                update.status.value,
                "blocked is administrative and failed is set from attempts only",
            )

        if update.requests_completion():
            events = [ProgressEvent.COMPLETE]
        elif update.status is ProgressStatus.NOT_STARTED:
            events = []
        else:
            events = [ProgressEvent.ACCESS]

        course_id = self._graph.owning_course_id(node)
        self.cascade.ensure_baseline(update.student_id, course_id)

        record = retry_once_on_conflict(
            lambda: self._write_progress(
                update.student_id,
                node,
                course_id,
                events,
                completion_percentage=update.completion_percentage,
                time_spent=update.time_spent,
                score=update.score,
            ),
            f"progress update for {kind.value} {node.id}",
        )
        logger.debug(f"Progress for {update.student_id} on {kind.value} {node.id}: {record.status.value}")

        return self.cascade.compute(update.student_id, course_id)

    def record_attempt(
        self,
        student_id: str,
        assessment_id: str,
        answers: Iterable[AnswerRecord],
        score: float,
        passed: bool,
        time_spent: int | None = None,
    ) -> AttemptOutcome:
        """
        Append an assessment attempt and fold its score into progress.

        The attempt number is the prior attempt count plus one. When the
        attempt limit is reached without any passing attempt, the progress
        record moves to failed.

        Raises:
            ContentNotFoundError: Unknown assessment
            AttemptNotAllowedError: Access is denied (attempt limit reached,
                prerequisites or lesson content incomplete)
        """
        assessment = self._graph.assessment(assessment_id)
        course_id = self._graph.owning_course_id(assessment)
        answers = list(answers)
        self.cascade.ensure_baseline(student_id, course_id)

        def insert() -> AssessmentAttempt:
            access = self.evaluate(self.snapshot(student_id), assessment)
            if not access.can_access:
                logger.info(f"Rejected attempt by {student_id} on {assessment_id}: {access.reason}")
                raise AttemptNotAllowedError(
                    student_id,
                    assessment_id,
                    access.reason or "Access denied",
                    access.blocked_by.to_dict() if access.blocked_by else None,
                )
            prior = self._store.list_attempts(student_id, assessment_id)
            return self._store.insert_attempt(
                AssessmentAttempt(
                    assessment_id=assessment_id,
                    student_id=student_id,
                    attempt_number=len(prior) + 1,
                    score=score,
                    passed=passed,
                    answers=answers,
                    time_spent=time_spent,
                )
            )

        attempt = retry_once_on_conflict(insert, f"attempt insert for assessment {assessment_id}")

        def write() -> ProgressRecord:
            events = [ProgressEvent.COMPLETE if passed else ProgressEvent.ACCESS]
            if (
                not passed
                and assessment.max_attempts is not None
                and attempt.attempt_number >= assessment.max_attempts
                and not any(a.passed for a in self._store.list_attempts(student_id, assessment_id))
            ):
                events.append(ProgressEvent.EXHAUST_ATTEMPTS)
            return self._write_progress(
                student_id,
                assessment,
                course_id,
                events,
                time_spent=time_spent,
                score=score,
                attempt_number=attempt.attempt_number,
            )

        record = retry_once_on_conflict(write, f"attempt progress for assessment {assessment_id}")
        if record.status is ProgressStatus.FAILED:
            logger.info(
                f"Student {student_id} exhausted {assessment.max_attempts} attempts on {assessment_id}"
            )

        unlocked = self.cascade.compute(student_id, course_id)
        return AttemptOutcome(attempt=attempt, record=record, unlocked=unlocked)

    def _write_progress(
        self,
        student_id: str,
        node: ContentNode,
        course_id: str,
        events: list[ProgressEvent],
        completion_percentage: float | None = None,
        time_spent: int | None = None,
        score: float | None = None,
        attempt_number: int | None = None,
        touch: bool = True,
    ) -> ProgressRecord:
        existing = self._store.get_record(student_id, node.id, node.kind)
        record = existing or ProgressRecord(
            student_id=student_id,
            content_id=node.id,
            kind=node.kind,
            course_id=course_id,
        )

        status = record.status
        for event in events:
            status = apply_event(status, event)

        if status is ProgressStatus.COMPLETED:
            percentage = 100.0
        elif completion_percentage is not None:
            percentage = min(max(float(completion_percentage), 0.0), 100.0)
        else:
            percentage = record.completion_percentage

        best_score = record.best_score
        if score is not None:
            best_score = score if best_score is None else max(best_score, score)

        updated = replace(
            record,
            status=status,
            completion_percentage=percentage,
            best_score=best_score,
            time_spent=record.time_spent + max(time_spent or 0, 0),
            attempts_count=max(record.attempts_count, attempt_number or 0),
            last_accessed=datetime.now(UTC) if touch else record.last_accessed,
        )
        return self._store.save_record(updated)

    # =========================================================================
    # Administrative overrides
    # =========================================================================

    def block_progress(
        self,
        student_id: str,
        content_id: str,
        kind: ContentKind | str,
        reason: str = "",
    ) -> ProgressRecord:
        """Block content for a student. Blocking blocked content raises."""
        record = self._administer(student_id, content_id, kind, ProgressEvent.BLOCK)
        logger.info(f"Blocked {record.kind.value} {content_id} for {student_id}: {reason or 'no reason given'}")
        return record

    def unblock_progress(self, student_id: str, content_id: str, kind: ContentKind | str) -> ProgressRecord:
        """Return blocked content to in_progress. Unblocking anything else raises."""
        record = self._administer(student_id, content_id, kind, ProgressEvent.UNBLOCK)
        logger.info(f"Unblocked {record.kind.value} {content_id} for {student_id}")
        return record

    def reset_failed_progress(self, student_id: str, content_id: str, kind: ContentKind | str) -> ProgressRecord:
        record = self._administer(student_id, content_id, kind, ProgressEvent.RESET)
        logger.info(f"Reset failed {record.kind.value} {content_id} for {student_id}")
        return record

    def _administer(
        self,
        student_id: str,
        content_id: str,
        kind: ContentKind | str,
        event: ProgressEvent,
    ) -> ProgressRecord:
        node = self._graph.node(content_id, kind)
        course_id = self._graph.owning_course_id(node)
        self.cascade.ensure_baseline(student_id, course_id)

        record = retry_once_on_conflict(
            lambda: self._write_progress(student_id, node, course_id, [event], touch=False),
            f"{event.value} of {node.kind.value} {content_id}",
        )
        # Keeps the stored accessibility set in step with the override.
        self.cascade.compute(student_id, course_id)
        return record

    # =========================================================================
    # Queries
    # =========================================================================

    def get_content_progress(
        self,
        student_id: str,
        content_id: str,
        kind: ContentKind | str,
    ) -> ProgressRecord | None:
        node = self._graph.node(content_id, kind)
        return self._store.get_record(student_id, node.id, node.kind)

    def has_passed_assessment(self, student_id: str, assessment_id: str) -> bool:
        self._graph.assessment(assessment_id)
        return any(a.passed for a in self._store.list_attempts(student_id, assessment_id))

    def list_attempts(self, student_id: str, assessment_id: str) -> list[AssessmentAttempt]:
        self._graph.assessment(assessment_id)
        return self._store.list_attempts(student_id, assessment_id)

    def get_blocked_content(self, student_id: str) -> list[ProgressRecord]:
        return self._store.list_records(student_id, status=ProgressStatus.BLOCKED)

    def get_course_progress_overview(self, student_id: str, course_id: str) -> CourseProgressOverview:
        """
        Per-lesson progress and access for one course.

        Lessons are listed in course order. Overall progress is the rounded
        percentage of completed lessons.
        """
        subgraph = self._graph.course_subgraph(course_id)
        snapshot = self.snapshot(student_id)
        self.preload(snapshot, subgraph)

        lessons: list[LessonOverview] = []
        for lesson in self._graph.lessons_in_course(course_id):
            access = self.evaluate(snapshot, lesson)
            assessment = subgraph.lesson_assessment(lesson)
            lessons.append(
                LessonOverview(
                    lesson=lesson,
                    can_access=access.can_access,
                    progress=snapshot.record(lesson.id, ContentKind.LESSON),
                    blocked_by=access.blocked_by,
                    assessment=self._assessment_overview(snapshot, assessment) if assessment else None,
                )
            )

        total = len(lessons)
        completed = sum(
            1 for item in lessons if item.progress and item.progress.status is ProgressStatus.COMPLETED
        )
        final = subgraph.final_assessment
        final_overview = self._assessment_overview(snapshot, final) if final else None

        return CourseProgressOverview(
            course_id=course_id,
            course_title=subgraph.course.title,
            overall_progress=int(completed * 100 / total + 0.5) if total else 0,
            total_lessons=total,
            completed_lessons=completed,
            lessons=lessons,
            final_assessment=final_overview,
            is_completed=(
                total > 0
                and completed == total
                and (final_overview is None or final_overview.passed)
            ),
        )

    def _assessment_overview(self, snapshot: ProgressSnapshot, assessment: Assessment) -> AssessmentOverview:
        access = self.evaluate(snapshot, assessment)
        return AssessmentOverview(
            assessment=assessment,
            can_access=access.can_access,
            passed=snapshot.has_passed(assessment.id),
            progress=snapshot.record(assessment.id, ContentKind.ASSESSMENT),
            reason=access.reason,
        )
