"""
Unit tests for the ProgressionController.

Covers access decisions (prerequisites, bound assessments, attempt limits,
enrollment), attempt gating, progress recording with unlock cascades,
write-conflict retries, administrative overrides and course overviews.
"""

import pytest

from tests.conftest import STUDENT
from tests.fakes import InMemoryEnrollmentStore, InMemoryProgressStore
from waypoint.content.graph import ContentGraph, InMemoryContentRepository
from waypoint.content.models import ContentKind, Course, Lesson
from waypoint.errors import (
    AttemptNotAllowedError,
    ContentNotFoundError,
    InvalidStateTransitionError,
    PersistenceConflictError,
)
from waypoint.progress.models import AnswerRecord, ProgressStatus, ProgressUpdate
from waypoint.progression.controller import ProgressionController

LESSON = ContentKind.LESSON
ASSESSMENT = ContentKind.ASSESSMENT


def complete(controller, content_id, kind=LESSON, **fields):
    return controller.update_progress(
        ProgressUpdate(student_id=STUDENT, content_id=content_id, kind=kind, mark_complete=True, **fields)
    )


@pytest.fixture
def simple_controller():
    """Lesson A (no prerequisites) and lesson B (requires A), no assessments."""
    graph = ContentGraph(InMemoryContentRepository([
        Course(id="c", title="Course"),
        Lesson(id="a", course_id="c", title="Lesson A", order_index=0),
        Lesson(id="b", course_id="c", title="Lesson B", order_index=1, prerequisites=("a",)),
    ]))
    enrollments = InMemoryEnrollmentStore()
    enrollments.enroll(STUDENT, "c")
    return ProgressionController(graph, InMemoryProgressStore(), enrollments)


class TestPrerequisiteScenarios:
    def test_untouched_prerequisite_blocks_lesson(self, simple_controller):
        """Lesson B is denied and blocked by lesson A until A is completed."""
        result = simple_controller.can_access_content(STUDENT, "b", LESSON)

        assert result.can_access is False
        assert result.reason == "Prerequisites not met"
        assert result.blocked_by.id == "a"
        assert result.blocked_by.kind is LESSON
        assert [s.id for s in result.prerequisite_statuses] == ["a"]
        assert result.prerequisite_statuses[0].completed is False

    def test_completing_prerequisite_grants_access(self, simple_controller):
        unlocked = complete(simple_controller, "a")

        result = simple_controller.can_access_content(STUDENT, "b", LESSON)
        assert result.can_access is True
        assert result.blocked_by is None
        assert unlocked.lessons == ["b"]

    def test_lesson_without_prerequisites_is_open(self, simple_controller):
        assert simple_controller.check_access(STUDENT, "a", "lesson").can_access


class TestAccessRules:
    def test_not_enrolled_denied_by_course(self, controller):
        result = controller.can_access_content("stranger", "intro", LESSON)

        assert not result.can_access
        assert result.reason == "Not enrolled in course"
        assert result.blocked_by.id == "net"

    def test_unpublished_lesson_denied(self, repository, controller):
        repository.add(Lesson(id="draft", course_id="net", title="Draft", order_index=5, published=False))

        result = controller.can_access_content(STUDENT, "draft", LESSON)
        assert not result.can_access
        assert result.reason == "Lesson is not published"

    def test_unknown_content_raises(self, controller):
        with pytest.raises(ContentNotFoundError):
            controller.can_access_content(STUDENT, "nope", LESSON)

    def test_completed_prerequisite_with_unpassed_assessment_blocks_on_assessment(
        self, controller, progress_store
    ):
        """A completed prerequisite still blocks until its bound assessment is passed."""
        progress_store.put(STUDENT, "intro", LESSON, "completed")
        progress_store.add_attempt(STUDENT, "intro-quiz", score=55, passed=False)

        result = controller.can_access_content(STUDENT, "subnets", LESSON)

        assert not result.can_access
        assert result.blocked_by.id == "intro-quiz"
        assert result.blocked_by.kind is ASSESSMENT
        status = result.prerequisite_statuses[0]
        assert status.completed is True
        assert status.passed is False
        assert status.score == 55
        assert status.required_score == 70

    def test_mandatory_lesson_assessment_requires_lesson(self, controller, progress_store):
        result = controller.can_access_content(STUDENT, "intro-quiz", ASSESSMENT)

        assert not result.can_access
        assert result.reason == "Must complete lesson content first"
        assert result.blocked_by.id == "intro"

        progress_store.put(STUDENT, "intro", LESSON, "completed")
        assert controller.can_access_content(STUDENT, "intro-quiz", ASSESSMENT).can_access

    def test_optional_assessment_inherits_lesson_access(self, controller, progress_store):
        assert not controller.can_access_content(STUDENT, "subnets-quiz", ASSESSMENT).can_access

        progress_store.put(STUDENT, "intro", LESSON, "completed")
        progress_store.add_attempt(STUDENT, "intro-quiz", score=90, passed=True)

        assert controller.can_access_content(STUDENT, "subnets-quiz", ASSESSMENT).can_access

    def test_mandatory_final_blocked_by_first_incomplete_item(self, controller, progress_store):
        result = controller.can_access_content(STUDENT, "net-final", ASSESSMENT)
        assert result.reason == "Must complete all course lessons first"
        assert result.blocked_by.id == "intro"

        progress_store.put(STUDENT, "intro", LESSON, "completed")
        result = controller.can_access_content(STUDENT, "net-final", ASSESSMENT)
        assert result.blocked_by.id == "intro-quiz"

    def test_final_open_once_course_done(self, controller, progress_store):
        for lesson_id in ("intro", "subnets", "routing"):
            progress_store.put(STUDENT, lesson_id, LESSON, "completed")
        progress_store.add_attempt(STUDENT, "intro-quiz", score=90, passed=True)
        progress_store.add_attempt(STUDENT, "subnets-quiz", score=80, passed=True)

        assert controller.can_access_content(STUDENT, "net-final", ASSESSMENT).can_access

    def test_attempt_limit_reached(self, controller, progress_store):
        """Two prior attempts on a two-attempt assessment deny access, naming the limit."""
        progress_store.put(STUDENT, "intro", LESSON, "completed")
        progress_store.add_attempt(STUDENT, "intro-quiz", score=90, passed=True)
        progress_store.add_attempt(STUDENT, "subnets-quiz", score=40, passed=False)
        progress_store.add_attempt(STUDENT, "subnets-quiz", score=50, passed=False)

        result = controller.can_access_content(STUDENT, "subnets-quiz", ASSESSMENT)

        assert not result.can_access
        assert "2" in result.reason
        assert result.reason == "Maximum attempts (2) reached"
        assert result.blocked_by.id == "subnets-quiz"

    def test_blocked_record_does_not_change_access(self, controller):
        controller.block_progress(STUDENT, "intro", LESSON, "review")

        assert controller.can_access_content(STUDENT, "intro", LESSON).can_access


class TestProgressUpdates:
    def test_completion_unlocks_bound_assessment(self, controller):
        unlocked = complete(controller, "intro")

        assert unlocked.lessons == []
        assert unlocked.assessments == ["intro-quiz"]
        assert unlocked.courses == []

    def test_passing_attempt_unlocks_next_lesson(self, controller):
        complete(controller, "intro")

        outcome = controller.record_attempt(
            STUDENT, "intro-quiz", [AnswerRecord("q1", True, 1), AnswerRecord("q2", True, 1)], 100, True
        )

        assert outcome.attempt.attempt_number == 1
        assert outcome.record.status is ProgressStatus.COMPLETED
        assert outcome.unlocked.lessons == ["subnets"]
        assert outcome.unlocked.assessments == ["subnets-quiz"]

    def test_progress_is_monotonic(self, controller):
        """Completed stays completed, best score only rises, time accumulates."""
        complete(controller, "intro", score=90, time_spent=300)
        controller.update_progress(
            ProgressUpdate(
                student_id=STUDENT,
                content_id="intro",
                kind=LESSON,
                completion_percentage=20,
                score=40,
                time_spent=100,
            )
        )

        record = controller.get_content_progress(STUDENT, "intro", LESSON)
        assert record.status is ProgressStatus.COMPLETED
        assert record.completion_percentage == 100
        assert record.best_score == 90
        assert record.time_spent == 400
        assert record.last_accessed is not None

    def test_partial_progress_is_in_progress(self, controller):
        controller.update_progress(
            ProgressUpdate(student_id=STUDENT, content_id="intro", kind=LESSON, completion_percentage=40)
        )

        record = controller.get_content_progress(STUDENT, "intro", LESSON)
        assert record.status is ProgressStatus.IN_PROGRESS
        assert record.completion_percentage == 40

    def test_full_percentage_counts_as_completion(self, controller):
        controller.update_progress(
            ProgressUpdate(student_id=STUDENT, content_id="intro", kind=LESSON, completion_percentage=100)
        )

        assert controller.get_content_progress(STUDENT, "intro", LESSON).is_completed

    @pytest.mark.parametrize("status", [ProgressStatus.BLOCKED, ProgressStatus.FAILED])
    def test_reported_blocked_or_failed_is_rejected(self, controller, status):
        with pytest.raises(InvalidStateTransitionError):
            controller.update_progress(
                ProgressUpdate(student_id=STUDENT, content_id="intro", kind=LESSON, status=status)
            )

    def test_update_on_unknown_content_raises(self, controller):
        with pytest.raises(ContentNotFoundError):
            complete(controller, "nope")

    def test_repeated_update_reports_nothing_new(self, controller):
        complete(controller, "intro")

        assert complete(controller, "intro").is_empty


def unlock_subnets_quiz(controller):
    complete(controller, "intro")
    controller.record_attempt(STUDENT, "intro-quiz", [AnswerRecord("q1", True, 1)], 90, True)


class TestAttempts:
    def test_attempt_numbers_are_sequential(self, controller):
        complete(controller, "intro")
        first = controller.record_attempt(STUDENT, "intro-quiz", [], 30, False)
        second = controller.record_attempt(STUDENT, "intro-quiz", [], 60, False)

        assert (first.attempt.attempt_number, second.attempt.attempt_number) == (1, 2)
        assert second.record.attempts_count == 2
        assert second.record.best_score == 60
        assert [a.score for a in controller.list_attempts(STUDENT, "intro-quiz")] == [30, 60]

    def test_exhausting_attempts_marks_failed(self, controller):
        unlock_subnets_quiz(controller)
        controller.record_attempt(STUDENT, "subnets-quiz", [], 30, False)
        outcome = controller.record_attempt(STUDENT, "subnets-quiz", [], 40, False)

        assert outcome.record.status is ProgressStatus.FAILED

    def test_attempt_beyond_limit_is_rejected(self, controller, progress_store):
        unlock_subnets_quiz(controller)
        controller.record_attempt(STUDENT, "subnets-quiz", [], 30, False)
        controller.record_attempt(STUDENT, "subnets-quiz", [], 40, False)

        with pytest.raises(AttemptNotAllowedError) as excinfo:
            controller.record_attempt(STUDENT, "subnets-quiz", [], 100, True)

        assert excinfo.value.reason == "Maximum attempts (2) reached"
        assert excinfo.value.details["blocked_by"]["id"] == "subnets-quiz"
        assert [a.score for a in progress_store.list_attempts(STUDENT, "subnets-quiz")] == [30, 40]
        assert not controller.has_passed_assessment(STUDENT, "subnets-quiz")
        assert not controller.can_access_content(STUDENT, "routing", LESSON).can_access

    def test_attempt_on_locked_assessment_is_rejected(self, controller, progress_store):
        with pytest.raises(AttemptNotAllowedError) as excinfo:
            controller.record_attempt(STUDENT, "net-final", [], 95, True)

        assert excinfo.value.reason == "Must complete all course lessons first"
        assert excinfo.value.code == "ATTEMPT_NOT_ALLOWED"
        assert progress_store.attempts == []
        assert progress_store.records == {}

    def test_mandatory_quiz_needs_its_lesson(self, controller):
        with pytest.raises(AttemptNotAllowedError) as excinfo:
            controller.record_attempt(STUDENT, "intro-quiz", [], 100, True)

        assert excinfo.value.reason == "Must complete lesson content first"

    def test_reset_failed_progress(self, controller):
        unlock_subnets_quiz(controller)
        controller.record_attempt(STUDENT, "subnets-quiz", [], 30, False)
        controller.record_attempt(STUDENT, "subnets-quiz", [], 40, False)

        record = controller.reset_failed_progress(STUDENT, "subnets-quiz", ASSESSMENT)
        assert record.status is ProgressStatus.IN_PROGRESS

    def test_has_passed_assessment(self, controller):
        assert not controller.has_passed_assessment(STUDENT, "intro-quiz")

        complete(controller, "intro")
        controller.record_attempt(STUDENT, "intro-quiz", [], 85, True)
        assert controller.has_passed_assessment(STUDENT, "intro-quiz")

    def test_attempt_on_unknown_assessment_raises(self, controller):
        with pytest.raises(ContentNotFoundError):
            controller.record_attempt(STUDENT, "ghost-quiz", [], 10, False)


class TestWriteConflicts:
    def test_retry_rereads_and_keeps_best_score(self, controller, progress_store):
        progress_store.put(STUDENT, "intro", LESSON, "in_progress", best_score=70)

        def competing_writer(store):
            store.put(STUDENT, "intro", LESSON, "in_progress", best_score=95, time_spent=120)

        progress_store.conflicts_to_raise = 1
        progress_store.concurrent_write = competing_writer

        controller.update_progress(
            ProgressUpdate(student_id=STUDENT, content_id="intro", kind=LESSON, score=80, time_spent=30)
        )

        record = controller.get_content_progress(STUDENT, "intro", LESSON)
        assert record.best_score == 95
        assert record.time_spent == 150
        assert progress_store.conflicts_to_raise == 0

    def test_second_conflict_surfaces(self, controller, progress_store):
        progress_store.put(STUDENT, "intro", LESSON, "in_progress", best_score=70)
        progress_store.conflicts_to_raise = 2

        with pytest.raises(PersistenceConflictError):
            controller.update_progress(
                ProgressUpdate(student_id=STUDENT, content_id="intro", kind=LESSON, score=80)
            )

        assert controller.get_content_progress(STUDENT, "intro", LESSON).best_score == 70


class TestAdministrativeOverrides:
    def test_block_and_unblock(self, controller):
        blocked = controller.block_progress(STUDENT, "routing", LESSON, "plagiarism review")
        assert blocked.status is ProgressStatus.BLOCKED
        assert [r.content_id for r in controller.get_blocked_content(STUDENT)] == ["routing"]

        unblocked = controller.unblock_progress(STUDENT, "routing", LESSON)
        assert unblocked.status is ProgressStatus.IN_PROGRESS
        assert controller.get_blocked_content(STUDENT) == []

    def test_double_block_raises(self, controller):
        controller.block_progress(STUDENT, "routing", LESSON)

        with pytest.raises(InvalidStateTransitionError):
            controller.block_progress(STUDENT, "routing", LESSON)

    def test_unblock_unblocked_raises(self, controller):
        with pytest.raises(InvalidStateTransitionError):
            controller.unblock_progress(STUDENT, "routing", LESSON)

    def test_blocked_content_ignores_learner_activity(self, controller):
        controller.block_progress(STUDENT, "intro", LESSON)
        complete(controller, "intro")

        record = controller.get_content_progress(STUDENT, "intro", LESSON)
        assert record.status is ProgressStatus.BLOCKED


class TestCourseOverview:
    def test_empty_progress(self, controller):
        overview = controller.get_course_progress_overview(STUDENT, "net")

        assert overview.course_title == "Networking Fundamentals"
        assert overview.total_lessons == 3
        assert overview.completed_lessons == 0
        assert overview.overall_progress == 0
        assert [entry.lesson.id for entry in overview.lessons] == ["intro", "subnets", "routing"]
        assert [entry.can_access for entry in overview.lessons] == [True, False, False]
        assert overview.lessons[1].blocked_by.id == "intro"
        assert overview.final_assessment.can_access is False
        assert overview.is_completed is False

    def test_partial_progress_is_rounded(self, controller, progress_store):
        progress_store.put(STUDENT, "intro", LESSON, "completed")
        assert controller.get_course_progress_overview(STUDENT, "net").overall_progress == 33

        progress_store.put(STUDENT, "subnets", LESSON, "completed")
        assert controller.get_course_progress_overview(STUDENT, "net").overall_progress == 67

    def test_completed_course(self, controller, progress_store):
        for lesson_id in ("intro", "subnets", "routing"):
            progress_store.put(STUDENT, lesson_id, LESSON, "completed")
        progress_store.add_attempt(STUDENT, "intro-quiz", score=90, passed=True)
        progress_store.add_attempt(STUDENT, "subnets-quiz", score=90, passed=True)
        progress_store.add_attempt(STUDENT, "net-final", score=85, passed=True)

        overview = controller.get_course_progress_overview(STUDENT, "net")

        assert overview.overall_progress == 100
        assert overview.final_assessment.passed
        assert overview.is_completed
        assert overview.to_dict()["lessons"][0]["assessment"]["passed"] is True

    def test_overview_reads_each_record_once(self, controller, progress_store):
        """Records are preloaded per course instead of fetched per node."""
        controller.get_course_progress_overview(STUDENT, "net")

        assert progress_store.reads < 15
