"""
SQLAlchemy-backed stores and content repository.

Optimistic concurrency:
- Inserts rely on unique constraints; an IntegrityError becomes PersistenceConflictError
- Updates match on the expected version; zero matched rows becomes PersistenceConflictError
"""
from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from waypoint.content.models import (
    Assessment,
    ContentKind,
    ContentNode,
    Course,
    DifficultyLevel,
    Lesson,
    Question,
)
from waypoint.db.database import session_scope
from waypoint.db.models import (
    AccessibilitySnapshotRow,
    AssessmentAttemptRow,
    AssessmentRow,
    CourseRow,
    EnrollmentRow,
    LessonRow,
    ProgressRecordRow,
    RoadmapRow,
)
from waypoint.errors import PersistenceConflictError
from waypoint.progress.models import (
    AccessibilitySnapshot,
    AnswerRecord,
    AssessmentAttempt,
    ProgressRecord,
    ProgressStatus,
)
from waypoint.progress.store import EnrollmentStore, ProgressStore
from waypoint.roadmap.models import LearningPathItem, Roadmap, RoadmapStatus, TimeConstraints
from waypoint.roadmap.store import RoadmapStore


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; every stored timestamp is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# =============================================================================
# Content
# =============================================================================


class SqlContentRepository:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get_course(self, course_id: str) -> Course | None:
        with session_scope(self._session_factory) as session:
            row = session.get(CourseRow, course_id)
            return self._course(row) if row else None

    def get_lesson(self, lesson_id: str) -> Lesson | None:
        with session_scope(self._session_factory) as session:
            row = session.get(LessonRow, lesson_id)
            return self._lesson(row) if row else None

    def get_assessment(self, assessment_id: str) -> Assessment | None:
        with session_scope(self._session_factory) as session:
            row = session.get(AssessmentRow, assessment_id)
            return self._assessment(row) if row else None

    def lessons_for_course(self, course_id: str) -> list[Lesson]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(LessonRow)
                .where(LessonRow.course_id == course_id)
                .order_by(LessonRow.order_index, LessonRow.id)
            ).all()
            return [self._lesson(row) for row in rows]

    def list_courses(self) -> list[Course]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(select(CourseRow).order_by(CourseRow.title)).all()
            return [self._course(row) for row in rows]

    def add(self, node: ContentNode) -> None:
        """Insert or replace a content node (fixtures and admin tooling)."""
        with session_scope(self._session_factory) as session:
            if isinstance(node, Course):
                session.merge(CourseRow(
                    id=node.id,
                    title=node.title,
                    description=node.description,
                    tags=list(node.tags),
                    difficulty=node.difficulty.value,
                    estimated_time=node.estimated_time,
                    published=node.published,
                    final_assessment_id=node.final_assessment_id,
                ))
            elif isinstance(node, Lesson):
                session.merge(LessonRow(
                    id=node.id,
                    course_id=node.course_id,
                    title=node.title,
                    order_index=node.order_index,
                    prerequisites=list(node.prerequisites),
                    learning_objectives=list(node.learning_objectives),
                    estimated_time=node.estimated_time,
                    difficulty=node.difficulty.value,
                    published=node.published,
                    assessment_id=node.assessment_id,
                ))
            else:
                session.merge(AssessmentRow(
                    id=node.id,
                    title=node.title,
                    lesson_id=node.lesson_id,
                    course_id=node.course_id,
                    questions=[
                        {"id": q.id, "topics": list(q.topics), "points": q.points, "text": q.text}
                        for q in node.questions
                    ],
                    is_mandatory=node.is_mandatory,
                    minimum_passing_score=node.minimum_passing_score,
                    max_attempts=node.max_attempts,
                    estimated_time=node.estimated_time,
                ))

    @staticmethod
    def _course(row: CourseRow) -> Course:
        return Course(
            id=row.id,
            title=row.title,
            published=bool(row.published),
            description=row.description or "",
            tags=tuple(row.tags or ()),
            difficulty=DifficultyLevel.parse(row.difficulty),
            estimated_time=row.estimated_time or 0,
            final_assessment_id=row.final_assessment_id,
        )

    @staticmethod
    def _lesson(row: LessonRow) -> Lesson:
        return Lesson(
            id=row.id,
            course_id=row.course_id,
            title=row.title,
            order_index=row.order_index or 0,
            prerequisites=tuple(row.prerequisites or ()),
            published=bool(row.published),
            learning_objectives=tuple(row.learning_objectives or ()),
            estimated_time=row.estimated_time or 0,
            difficulty=DifficultyLevel.parse(row.difficulty),
            assessment_id=row.assessment_id,
        )

    @staticmethod
    def _assessment(row: AssessmentRow) -> Assessment:
        return Assessment(
            id=row.id,
            title=row.title,
            lesson_id=row.lesson_id,
            course_id=row.course_id,
            questions=tuple(
                Question(
                    id=q["id"],
                    topics=tuple(q.get("topics", ())),
                    points=q.get("points", 1),
                    text=q.get("text", ""),
                )
                for q in row.questions or ()
            ),
            is_mandatory=bool(row.is_mandatory),
            minimum_passing_score=row.minimum_passing_score,
            max_attempts=row.max_attempts,
            estimated_time=row.estimated_time or 0,
        )


class SqlEnrollmentStore(EnrollmentStore):
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def is_enrolled(self, student_id: str, course_id: str) -> bool:
        with session_scope(self._session_factory) as session:
            return session.get(EnrollmentRow, (student_id, course_id)) is not None

    def enrolled_course_ids(self, student_id: str) -> list[str]:
        with session_scope(self._session_factory) as session:
            return list(session.scalars(
                select(EnrollmentRow.course_id)
                .where(EnrollmentRow.student_id == student_id)
                .order_by(EnrollmentRow.enrolled_at, EnrollmentRow.course_id)
            ))

    def enroll(self, student_id: str, course_id: str) -> None:
        with session_scope(self._session_factory) as session:
            if session.get(EnrollmentRow, (student_id, course_id)) is None:
                session.add(EnrollmentRow(
                    student_id=student_id,
                    course_id=course_id,
                    enrolled_at=datetime.now(UTC),
                ))

    def unenroll(self, student_id: str, course_id: str) -> None:
        with session_scope(self._session_factory) as session:
            session.execute(
                delete(EnrollmentRow).where(
                    EnrollmentRow.student_id == student_id,
                    EnrollmentRow.course_id == course_id,
                )
            )


# =============================================================================
# Progress
# =============================================================================


class SqlProgressStore(ProgressStore):
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get_record(self, student_id: str, content_id: str, kind: ContentKind) -> ProgressRecord | None:
        with session_scope(self._session_factory) as session:
            row = session.scalars(
                select(ProgressRecordRow).where(
                    ProgressRecordRow.student_id == student_id,
                    ProgressRecordRow.content_id == content_id,
                    ProgressRecordRow.content_kind == ContentKind(kind).value,
                )
            ).first()
            return self._record(row) if row else None

    def list_records(
        self,
        student_id: str,
        course_id: str | None = None,
        status: ProgressStatus | None = None,
        limit: int | None = None,
    ) -> list[ProgressRecord]:
        query = select(ProgressRecordRow).where(ProgressRecordRow.student_id == student_id)
        if course_id is not None:
            query = query.where(ProgressRecordRow.course_id == course_id)
        if status is not None:
            query = query.where(ProgressRecordRow.status == status.value)
        query = query.order_by(
            ProgressRecordRow.last_accessed.desc().nulls_last(),
            ProgressRecordRow.id.desc(),
        )
        if limit is not None:
            query = query.limit(limit)

        with session_scope(self._session_factory) as session:
            return [self._record(row) for row in session.scalars(query)]

    def save_record(self, record: ProgressRecord) -> ProgressRecord:
        values = {
            "course_id": record.course_id,
            "status": record.status.value,
            "completion_percentage": record.completion_percentage,
            "best_score": record.best_score,
            "time_spent": record.time_spent,
            "attempts_count": record.attempts_count,
            "last_accessed": record.last_accessed,
        }
        with session_scope(self._session_factory) as session:
            if record.version == 0:
                session.add(ProgressRecordRow(
                    student_id=record.student_id,
                    content_id=record.content_id,
                    content_kind=record.kind.value,
                    version=1,
                    **values,
                ))
                try:
                    session.flush()
                except IntegrityError as e:
                    raise PersistenceConflictError(
                        f"Progress for {record.kind.value} {record.content_id} was created concurrently",
                        details={"student_id": record.student_id, "content_id": record.content_id},
                    ) from e
            else:
                result = session.execute(
                    update(ProgressRecordRow)
                    .where(
                        ProgressRecordRow.student_id == record.student_id,
                        ProgressRecordRow.content_id == record.content_id,
                        ProgressRecordRow.content_kind == record.kind.value,
                        ProgressRecordRow.version == record.version,
                    )
                    .values(version=record.version + 1, **values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise PersistenceConflictError(
                        f"Progress for {record.kind.value} {record.content_id} changed concurrently",
                        details={
                            "student_id": record.student_id,
                            "content_id": record.content_id,
                            "expected_version": record.version,
                        },
                    )
        return replace(record, version=record.version + 1)

    def list_attempts(self, student_id: str, assessment_id: str) -> list[AssessmentAttempt]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(AssessmentAttemptRow)
                .where(
                    AssessmentAttemptRow.student_id == student_id,
                    AssessmentAttemptRow.assessment_id == assessment_id,
                )
                .order_by(AssessmentAttemptRow.attempt_number)
            )
            return [self._attempt(row) for row in rows]

    def list_student_attempts(self, student_id: str, limit: int | None = None) -> list[AssessmentAttempt]:
        query = (
            select(AssessmentAttemptRow)
            .where(AssessmentAttemptRow.student_id == student_id)
            .order_by(AssessmentAttemptRow.submitted_at.desc(), AssessmentAttemptRow.attempt_number.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        with session_scope(self._session_factory) as session:
            return [self._attempt(row) for row in session.scalars(query)]

    def insert_attempt(self, attempt: AssessmentAttempt) -> AssessmentAttempt:
        with session_scope(self._session_factory) as session:
            session.add(AssessmentAttemptRow(
                id=attempt.id,
                assessment_id=attempt.assessment_id,
                student_id=attempt.student_id,
                attempt_number=attempt.attempt_number,
                score=attempt.score,
                passed=attempt.passed,
                answers=[
                    {
                        "question_id": a.question_id,
                        "is_correct": a.is_correct,
                        "points_earned": a.points_earned,
                    }
                    for a in attempt.answers
                ],
                time_spent=attempt.time_spent,
                submitted_at=attempt.submitted_at,
            ))
            try:
                session.flush()
            except IntegrityError as e:
                raise PersistenceConflictError(
                    f"Attempt {attempt.attempt_number} for assessment {attempt.assessment_id} already exists",
                    details={"student_id": attempt.student_id, "attempt_number": attempt.attempt_number},
                ) from e
        return attempt

    def get_accessible_snapshot(self, student_id: str, course_id: str) -> AccessibilitySnapshot | None:
        with session_scope(self._session_factory) as session:
            row = session.get(AccessibilitySnapshotRow, (student_id, course_id))
            if row is None:
                return None
            return AccessibilitySnapshot(frozenset(row.content_ids or ()), row.version)

    def save_accessible_snapshot(
        self,
        student_id: str,
        course_id: str,
        content_ids: set[str],
        version: int = 0,
    ) -> AccessibilitySnapshot:
        now = datetime.now(UTC)
        with session_scope(self._session_factory) as session:
            if version == 0:
                session.add(AccessibilitySnapshotRow(
                    student_id=student_id,
                    course_id=course_id,
                    content_ids=sorted(content_ids),
                    version=1,
                    updated_at=now,
                ))
                try:
                    session.flush()
                except IntegrityError as e:
                    raise PersistenceConflictError(
                        f"Accessibility snapshot for course {course_id} was created concurrently",
                        details={"student_id": student_id, "course_id": course_id},
                    ) from e
            else:
                result = session.execute(
                    update(AccessibilitySnapshotRow)
                    .where(
                        AccessibilitySnapshotRow.student_id == student_id,
                        AccessibilitySnapshotRow.course_id == course_id,
                        AccessibilitySnapshotRow.version == version,
                    )
                    .values(content_ids=sorted(content_ids), version=version + 1, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise PersistenceConflictError(
                        f"Accessibility snapshot for course {course_id} changed concurrently",
                        details={"student_id": student_id, "course_id": course_id, "expected_version": version},
                    )
        return AccessibilitySnapshot(frozenset(content_ids), version + 1)

    @staticmethod
    def _record(row: ProgressRecordRow) -> ProgressRecord:
        return ProgressRecord(
            student_id=row.student_id,
            content_id=row.content_id,
            kind=ContentKind(row.content_kind),
            course_id=row.course_id,
            status=ProgressStatus(row.status),
            completion_percentage=row.completion_percentage or 0.0,
            best_score=row.best_score,
            time_spent=row.time_spent or 0,
            attempts_count=row.attempts_count or 0,
            last_accessed=_aware(row.last_accessed),
            version=row.version,
        )

    @staticmethod
    def _attempt(row: AssessmentAttemptRow) -> AssessmentAttempt:
        return AssessmentAttempt(
            id=row.id,
            assessment_id=row.assessment_id,
            student_id=row.student_id,
            attempt_number=row.attempt_number,
            score=row.score,
            passed=bool(row.passed),
            answers=[
                AnswerRecord(
                    question_id=a["question_id"],
                    is_correct=bool(a.get("is_correct")),
                    points_earned=a.get("points_earned", 0.0),
                )
                for a in row.answers or ()
            ],
            time_spent=row.time_spent,
            submitted_at=_aware(row.submitted_at),
        )


# =============================================================================
# Roadmaps
# =============================================================================


class SqlRoadmapStore(RoadmapStore):
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get_active(self, student_id: str) -> Roadmap | None:
        with session_scope(self._session_factory) as session:
            row = session.scalars(
                select(RoadmapRow).where(
                    RoadmapRow.student_id == student_id,
                    RoadmapRow.status == RoadmapStatus.ACTIVE.value,
                )
            ).first()
            return self._roadmap(row) if row else None

    def list_for_student(self, student_id: str) -> list[Roadmap]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(RoadmapRow)
                .where(RoadmapRow.student_id == student_id)
                .order_by(RoadmapRow.generated_at.desc())
            )
            return [self._roadmap(row) for row in rows]

    def replace_active(self, roadmap: Roadmap) -> Roadmap:
        now = datetime.now(UTC)
        with session_scope(self._session_factory) as session:
            session.execute(
                update(RoadmapRow)
                .where(
                    RoadmapRow.student_id == roadmap.student_id,
                    RoadmapRow.status == RoadmapStatus.ACTIVE.value,
                )
                .values(
                    status=RoadmapStatus.PAUSED.value,
                    updated_at=now,
                    version=RoadmapRow.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            session.add(RoadmapRow(
                id=roadmap.id,
                student_id=roadmap.student_id,
                status=RoadmapStatus.ACTIVE.value,
                version=1,
                **self._values(roadmap),
            ))
            try:
                session.flush()
            except IntegrityError as e:
                raise PersistenceConflictError(
                    f"Another active roadmap was created concurrently for {roadmap.student_id}",
                    details={"student_id": roadmap.student_id},
                ) from e
        return replace(roadmap, status=RoadmapStatus.ACTIVE, version=1)

    def save(self, roadmap: Roadmap) -> Roadmap:
        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(RoadmapRow)
                .where(RoadmapRow.id == roadmap.id, RoadmapRow.version == roadmap.version)
                .values(
                    status=roadmap.status.value,
                    version=roadmap.version + 1,
                    **self._values(roadmap),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise PersistenceConflictError(
                    f"Roadmap {roadmap.id} changed concurrently",
                    details={"roadmap_id": roadmap.id, "expected_version": roadmap.version},
                )
        return replace(roadmap, version=roadmap.version + 1)

    @staticmethod
    def _values(roadmap: Roadmap) -> dict:
        return {
            "rationale": roadmap.rationale,
            "items": [item.to_dict() for item in roadmap.items],
            "knowledge_gaps": list(roadmap.knowledge_gaps),
            "target_skills": list(roadmap.target_skills),
            "time_constraints": roadmap.time_constraints.to_dict() if roadmap.time_constraints else None,
            "pace_factor": roadmap.pace_factor,
            "total_estimated_time": roadmap.total_estimated_time,
            "generated_at": roadmap.generated_at,
            "updated_at": roadmap.updated_at,
        }

    @staticmethod
    def _roadmap(row: RoadmapRow) -> Roadmap:
        return Roadmap(
            id=row.id,
            student_id=row.student_id,
            status=RoadmapStatus(row.status),
            rationale=row.rationale or "",
            items=[LearningPathItem.from_dict(item) for item in row.items or ()],
            knowledge_gaps=list(row.knowledge_gaps or ()),
            target_skills=list(row.target_skills or ()),
            time_constraints=TimeConstraints.from_dict(row.time_constraints),
            pace_factor=row.pace_factor or 1.0,
            generated_at=_aware(row.generated_at),
            updated_at=_aware(row.updated_at),
            version=row.version,
        )
