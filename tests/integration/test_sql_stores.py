"""
Integration Tests for the SQL stores.

Runs the SQLAlchemy stores against an in-memory SQLite database:
1. Progress records are version-checked
2. Attempts are append-only and unique per attempt number
3. At most one roadmap per student is active
4. The controller and planner work end to end over SQL
"""

from dataclasses import replace

import pytest
from sqlalchemy.exc import IntegrityError

from tests.conftest import STUDENT, networking_catalog
from waypoint.content.graph import ContentGraph
from waypoint.content.models import ContentKind
from waypoint.db.database import create_db_engine, create_session_factory, init_db, session_scope
from waypoint.db.models import RoadmapRow
from waypoint.db.stores import SqlContentRepository, SqlEnrollmentStore, SqlProgressStore, SqlRoadmapStore
from waypoint.errors import PersistenceConflictError
from waypoint.progress.models import AnswerRecord, AssessmentAttempt, ProgressRecord, ProgressStatus, ProgressUpdate
from waypoint.roadmap.models import LearningPathItem, Roadmap, RoadmapStatus, TimeConstraints
from waypoint.service import ProgressionService

pytestmark = pytest.mark.integration


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield create_session_factory(engine=engine)
    engine.dispose()


@pytest.fixture
def sql_repository(session_factory):
    repository = SqlContentRepository(session_factory)
    for node in networking_catalog():
        repository.add(node)
    return repository


@pytest.fixture
def progress(session_factory):
    return SqlProgressStore(session_factory)


@pytest.fixture
def roadmaps(session_factory):
    return SqlRoadmapStore(session_factory)


class TestContentRepository:
    def test_nodes_round_trip(self, sql_repository):
        lesson = sql_repository.get_lesson("subnets")
        quiz = sql_repository.get_assessment("subnets-quiz")

        assert lesson.prerequisites == ("intro",)
        assert lesson.published is True
        assert quiz.max_attempts == 2
        assert quiz.question("s3").topics == ("subnetting",)
        assert sql_repository.get_course("net").final_assessment_id == "net-final"

    def test_lessons_in_order(self, sql_repository):
        assert [lesson.id for lesson in sql_repository.lessons_for_course("net")] == ["intro", "subnets", "routing"]

    def test_missing_nodes(self, sql_repository):
        assert sql_repository.get_lesson("ghost") is None
        assert sql_repository.get_course("ghost") is None


class TestProgressStore:
    def test_versions_increment(self, progress):
        record = ProgressRecord(STUDENT, "intro", ContentKind.LESSON, course_id="net")

        first = progress.save_record(record)
        second = progress.save_record(replace(first, status=ProgressStatus.COMPLETED))

        assert (first.version, second.version) == (1, 2)
        assert progress.get_record(STUDENT, "intro", ContentKind.LESSON).status is ProgressStatus.COMPLETED

    def test_stale_version_conflicts(self, progress):
        saved = progress.save_record(ProgressRecord(STUDENT, "intro", ContentKind.LESSON, course_id="net"))
        progress.save_record(saved)

        with pytest.raises(PersistenceConflictError):
            progress.save_record(saved)

    def test_concurrent_create_conflicts(self, progress):
        progress.save_record(ProgressRecord(STUDENT, "intro", ContentKind.LESSON))

        with pytest.raises(PersistenceConflictError):
            progress.save_record(ProgressRecord(STUDENT, "intro", ContentKind.LESSON))

    def test_duplicate_attempt_number_conflicts(self, progress):
        attempt = AssessmentAttempt("intro-quiz", STUDENT, 1, 50, False, [AnswerRecord("q1", False)])
        progress.insert_attempt(attempt)

        with pytest.raises(PersistenceConflictError):
            progress.insert_attempt(AssessmentAttempt("intro-quiz", STUDENT, 1, 90, True))

        stored = progress.list_attempts(STUDENT, "intro-quiz")
        assert len(stored) == 1
        assert stored[0].wrong_question_ids() == ["q1"]
        assert stored[0].submitted_at.tzinfo is not None

    def test_snapshot_round_trip(self, progress):
        assert progress.get_accessible_snapshot(STUDENT, "net") is None

        first = progress.save_accessible_snapshot(STUDENT, "net", {"net", "intro"})
        progress.save_accessible_snapshot(STUDENT, "net", {"net", "intro", "intro-quiz"}, version=first.version)

        stored = progress.get_accessible_snapshot(STUDENT, "net")
        assert stored.content_ids == {"net", "intro", "intro-quiz"}
        assert stored.version == 2

    def test_snapshot_writes_are_version_checked(self, progress):
        progress.save_accessible_snapshot(STUDENT, "net", {"net"})
        progress.save_accessible_snapshot(STUDENT, "net", {"net", "intro"}, version=1)

        with pytest.raises(PersistenceConflictError):
            progress.save_accessible_snapshot(STUDENT, "net", {"net"}, version=1)
        with pytest.raises(PersistenceConflictError):
            progress.save_accessible_snapshot(STUDENT, "net", {"net"})

        assert progress.get_accessible_snapshot(STUDENT, "net").content_ids == {"net", "intro"}

    def test_list_records_filters(self, progress):
        progress.save_record(ProgressRecord(STUDENT, "intro", ContentKind.LESSON, course_id="net"))
        progress.save_record(
            ProgressRecord(STUDENT, "routing", ContentKind.LESSON, course_id="net", status=ProgressStatus.BLOCKED)
        )

        blocked = progress.list_records(STUDENT, status=ProgressStatus.BLOCKED)
        assert [record.content_id for record in blocked] == ["routing"]
        assert len(progress.list_records(STUDENT, course_id="net")) == 2
        assert progress.list_records("someone-else") == []


class TestRoadmapStore:
    def _roadmap(self):
        return Roadmap(
            student_id=STUDENT,
            items=[
                LearningPathItem(content_id="intro", content_kind=ContentKind.LESSON, title="IP Addressing"),
                LearningPathItem(
                    content_id="remedial-binary",
                    content_kind=ContentKind.LESSON,
                    title="Review: binary",
                    order_index=1,
                    topic="binary",
                ),
            ],
            time_constraints=TimeConstraints(hours_per_week=3),
        )

    def test_round_trip(self, roadmaps):
        saved = roadmaps.replace_active(self._roadmap())

        loaded = roadmaps.get_active(STUDENT)
        assert loaded.id == saved.id
        assert loaded.version == 1
        assert loaded.items[1].is_remedial
        assert loaded.time_constraints.hours_per_week == 3
        assert loaded.generated_at.tzinfo is not None

    def test_replace_pauses_previous(self, roadmaps):
        first = roadmaps.replace_active(self._roadmap())
        second = roadmaps.replace_active(self._roadmap())

        assert roadmaps.get_active(STUDENT).id == second.id
        statuses = {r.id: r.status for r in roadmaps.list_for_student(STUDENT)}
        assert statuses[first.id] is RoadmapStatus.PAUSED

    def test_save_is_version_checked(self, roadmaps):
        saved = roadmaps.replace_active(self._roadmap())
        saved.rationale = "updated"
        roadmaps.save(saved)

        with pytest.raises(PersistenceConflictError):
            roadmaps.save(saved)

    def test_database_allows_one_active_roadmap(self, session_factory):
        roadmap = self._roadmap()
        with pytest.raises(IntegrityError):
            with session_scope(session_factory) as session:
                for suffix in ("a", "b"):
                    session.add(RoadmapRow(
                        id=f"{roadmap.id}-{suffix}",
                        student_id=STUDENT,
                        status="active",
                        generated_at=roadmap.generated_at,
                        updated_at=roadmap.updated_at,
                    ))


class TestEndToEnd:
    @pytest.fixture
    def service(self, session_factory, sql_repository, settings):
        SqlEnrollmentStore(session_factory).enroll(STUDENT, "net")
        return ProgressionService(
            ContentGraph(sql_repository),
            SqlProgressStore(session_factory),
            SqlEnrollmentStore(session_factory),
            SqlRoadmapStore(session_factory),
            settings=settings,
        )

    def test_progression_flow(self, service):
        """Complete intro, pass its quiz, and see the next lesson unlock."""
        assert not service.check_access(STUDENT, "subnets", "lesson").can_access

        unlocked = service.update_progress(
            ProgressUpdate(student_id=STUDENT, content_id="intro", kind=ContentKind.LESSON, mark_complete=True)
        )
        assert unlocked.assessments == ["intro-quiz"]

        submission = service.submit_attempt(STUDENT, "intro-quiz", [AnswerRecord("q1", True, 1)], 100, True)
        assert submission.outcome.unlocked.lessons == ["subnets"]
        assert service.check_access(STUDENT, "subnets", "lesson").can_access
        assert service.get_course_progress_overview(STUDENT, "net").overall_progress == 33

    def test_roadmap_flow(self, service):
        """Generate, fail a quiz, and see a remedial item land in the roadmap."""
        roadmap = service.generate_roadmap(STUDENT, target_skills=["routing"])
        assert [item.content_id for item in roadmap.items] == ["intro", "subnets", "routing"]

        service.update_progress(
            ProgressUpdate(student_id=STUDENT, content_id="intro", kind=ContentKind.LESSON, mark_complete=True)
        )
        submission = service.submit_attempt(STUDENT, "intro-quiz", [AnswerRecord("q2", False)], 50, False)

        adjusted = service.get_roadmap_with_progress(STUDENT)
        assert submission.roadmap.id == roadmap.id
        assert adjusted.items[0].topic == "binary"
