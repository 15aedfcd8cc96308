"""
Roadmap Planner.

Builds a student's personalized learning path:
1. Gather the student profile (completions, knowledge gaps, enrollments)
2. Ask the external generator for a candidate path (bounded by a timeout)
3. Validate and repair the candidate against the content graph
4. Persist it as the new active roadmap, pausing the previous one

When the generator is unavailable, a deterministic rule-based path is used:
the published, uncompleted lessons of enrolled courses in prerequisite order.
"""
from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from loguru import logger

from waypoint.concurrency import retry_once_on_conflict
from waypoint.content.graph import ContentGraph
from waypoint.content.models import Lesson
from waypoint.errors import GenerationUnavailableError, InvalidStateTransitionError, RoadmapNotFoundError
from waypoint.generation.base import CandidateItem, PathGenerator, PathProposal
from waypoint.generation.guard import call_with_timeout
from waypoint.progress.models import AssessmentAttempt, ProgressStatus
from waypoint.progress.store import EnrollmentStore, ProgressStore
from waypoint.roadmap.models import Roadmap, RoadmapStatus, StudentProfile, TimeConstraints
from waypoint.roadmap.store import RoadmapStore
from waypoint.roadmap.validation import repair_candidate_path

DEFAULT_RATIONALE = "Personalized path ordered so every prerequisite comes first."
PROFILE_ATTEMPT_WINDOW = 50


class RoadmapPlanner:
    """Generate, read and retire roadmaps."""

    def __init__(
        self,
        graph: ContentGraph,
        progress_store: ProgressStore,
        enrollments: EnrollmentStore,
        roadmap_store: RoadmapStore,
        generator: PathGenerator,
        timeout_seconds: float = 10.0,
    ):
        self._graph = graph
        self._progress = progress_store
        self._enrollments = enrollments
        self._roadmaps = roadmap_store
        self._generator = generator
        self._timeout_seconds = timeout_seconds

    # =========================================================================
    # Generation
    # =========================================================================

    def generate_roadmap(
        self,
        student_id: str,
        target_skills: list[str] | None = None,
        time_constraints: TimeConstraints | None = None,
        force_regenerate: bool = False,
        preferences: dict[str, Any] | None = None,
    ) -> Roadmap:
        """
        Return the active roadmap, generating a new one when needed.

        Args:
            student_id: Student identifier
            target_skills: Skills to focus the path on
            time_constraints: Weekly hours and/or target date
            force_regenerate: Supersede an existing active roadmap
            preferences: Learner preferences forwarded to the generator

        Returns:
            The active Roadmap (existing or newly persisted)
        """
        if not force_regenerate:
            existing = self._roadmaps.get_active(student_id)
            if existing is not None:
                return existing

        target_skills = list(target_skills or [])
        profile = self.build_student_profile(student_id, preferences)
        completed = set(profile.completed_content_ids)

        proposal = self._propose(profile)
        source = "generated"
        if proposal is None:
            proposal = self.rule_based_proposal(profile, target_skills)
            source = "rule-based"

        report = repair_candidate_path(proposal.items, self._graph, completed)
        if not report.items and source == "generated":
            logger.warning(f"Generated path for {student_id} had no usable items, using rule-based path")
            proposal = self.rule_based_proposal(profile, target_skills)
            source = "rule-based"
            report = repair_candidate_path(proposal.items, self._graph, completed)

        roadmap = Roadmap(
            student_id=student_id,
            items=report.items,
            rationale=proposal.rationale.strip() or DEFAULT_RATIONALE,
            knowledge_gaps=list(profile.knowledge_gaps),
            target_skills=target_skills,
            time_constraints=time_constraints,
        )
        if report.dropped:
            roadmap.append_rationale(
                f"{len(report.dropped)} proposed item(s) were removed during validation."
            )
        self._overlay_progress(roadmap)

        saved = retry_once_on_conflict(
            lambda: self._roadmaps.replace_active(roadmap),
            f"roadmap generation for {student_id}",
        )
        logger.info(
            f"Generated {source} roadmap {saved.id} for {student_id}: "
            f"{len(saved.items)} items, {saved.total_estimated_time} min"
        )
        return saved

    def _propose(self, profile: StudentProfile) -> PathProposal | None:
        catalog = self._graph.describe_catalog(profile.enrolled_course_ids or None)
        try:
            return call_with_timeout(
                self._generator.propose,
                self._timeout_seconds,
                profile,
                catalog,
                description="roadmap proposal",
            )
        except GenerationUnavailableError as e:
            logger.warning(f"Path generation unavailable for {profile.student_id}, using rule-based path: {e.message}")
            return None

    def rule_based_proposal(self, profile: StudentProfile, target_skills: list[str]) -> PathProposal:
        """
        Deterministic fallback path.

        Published, uncompleted lessons of every enrolled course in prerequisite
        order, each followed by its assessment. With target skills, only
        matching lessons are kept (their prerequisites are pulled back in by
        validation). If nothing matches, the filter is ignored.
        """
        completed = set(profile.completed_content_ids)
        lessons: list[Lesson] = []
        for course_id in profile.enrolled_course_ids:
            course = self._graph.find_course(course_id)
            if course is None or not course.published:
                continue
            by_id = {lesson.id: lesson for lesson in self._graph.lessons_in_course(course_id)}
            for lesson_id in self._graph.topological_lessons(course_id).order:
                lesson = by_id[lesson_id]
                if lesson.published and lesson.id not in completed:
                    lessons.append(lesson)

        if target_skills:
            matching = [lesson for lesson in lessons if _matches_skills(lesson, target_skills)]
            if matching:
                lessons = matching
            else:
                logger.info(f"No lessons match target skills {target_skills}, keeping the full path")

        items: list[CandidateItem] = []
        for lesson in lessons:
            items.append(CandidateItem(content_id=lesson.id, title=lesson.title))
            if lesson.assessment_id and lesson.assessment_id not in completed:
                items.append(CandidateItem(content_id=lesson.assessment_id))

        course_count = len(profile.enrolled_course_ids)
        return PathProposal(
            items=items,
            rationale=(
                f"Rule-based path: remaining lessons from {course_count} enrolled course(s) "
                "in prerequisite order."
            ),
        )

    def build_student_profile(
        self,
        student_id: str,
        preferences: dict[str, Any] | None = None,
    ) -> StudentProfile:
        completed = self._progress.list_records(student_id, status=ProgressStatus.COMPLETED)
        attempts = self._progress.list_student_attempts(student_id, limit=PROFILE_ATTEMPT_WINDOW)

        # Gaps come from the latest attempt of each assessment that was failed.
        latest: dict[str, AssessmentAttempt] = {}
        for attempt in attempts:
            latest.setdefault(attempt.assessment_id, attempt)

        gaps: list[str] = []
        for assessment_id, attempt in latest.items():
            if attempt.passed:
                continue
            assessment = self._graph.find_assessment(assessment_id)
            if assessment is None:
                continue
            for question_id in attempt.wrong_question_ids():
                question = assessment.question(question_id)
                if question is None:
                    continue
                for topic in question.topics:
                    if topic not in gaps:
                        gaps.append(topic)

        return StudentProfile(
            student_id=student_id,
            completed_content_ids=[record.content_id for record in completed],
            knowledge_gaps=gaps,
            enrolled_course_ids=self._enrollments.enrolled_course_ids(student_id),
            preferences=dict(preferences or {}),
            assessment_history=[
                {
                    "assessment_id": a.assessment_id,
                    "score": a.score,
                    "passed": a.passed,
                    "submitted_at": a.submitted_at.isoformat(),
                }
                for a in attempts
            ],
        )

    # =========================================================================
    # Reading and status
    # =========================================================================

    def get_active_roadmap(self, student_id: str) -> Roadmap | None:
        return self._roadmaps.get_active(student_id)

    def get_roadmap_with_progress(self, student_id: str) -> Roadmap:
        """
        Active roadmap with live completion and unlock state.

        When every item is completed the roadmap is marked completed and
        persisted in the same call.

        Raises:
            RoadmapNotFoundError: No active roadmap
        """
        roadmap = self._roadmaps.get_active(student_id)
        if roadmap is None:
            raise RoadmapNotFoundError(student_id)

        self._overlay_progress(roadmap)
        if roadmap.items and all(item.completion_status is ProgressStatus.COMPLETED for item in roadmap.items):
            return retry_once_on_conflict(
                lambda: self._complete(student_id),
                f"roadmap completion for {student_id}",
            )
        return roadmap

    def _complete(self, student_id: str) -> Roadmap:
        roadmap = self._roadmaps.get_active(student_id)
        if roadmap is None:
            raise RoadmapNotFoundError(student_id)
        self._overlay_progress(roadmap)
        roadmap.transition_to(RoadmapStatus.COMPLETED)
        roadmap.append_rationale("All roadmap items completed.")
        saved = self._roadmaps.save(roadmap)
        logger.info(f"Roadmap {saved.id} for {student_id} completed")
        return saved

    def _overlay_progress(self, roadmap: Roadmap) -> None:
        """Fill completion_status and is_unlocked from live progress records."""
        statuses: dict[str, ProgressStatus] = {}
        for item in roadmap.items:
            if item.is_remedial:
                statuses[item.content_id] = item.completion_status
                continue
            record = self._progress.get_record(roadmap.student_id, item.content_id, item.content_kind)
            statuses[item.content_id] = record.status if record else ProgressStatus.NOT_STARTED
            item.completion_status = statuses[item.content_id]

        for index, item in enumerate(roadmap.items):
            if index == 0:
                item.is_unlocked = True
                continue
            previous_done = roadmap.items[index - 1].completion_status is ProgressStatus.COMPLETED
            prereqs_done = all(
                statuses.get(prereq_id, self._status_outside_path(roadmap.student_id, prereq_id))
                is ProgressStatus.COMPLETED
                for prereq_id in item.prerequisites
            )
            item.is_unlocked = previous_done and prereqs_done

    def _status_outside_path(self, student_id: str, content_id: str) -> ProgressStatus:
        node = self._graph.find_any(content_id)
        if node is None:
            return ProgressStatus.NOT_STARTED
        record = self._progress.get_record(student_id, node.id, node.kind)
        return record.status if record else ProgressStatus.NOT_STARTED

    def mark_remedial_item_completed(self, student_id: str, content_id: str) -> Roadmap:
        """
        Complete a remedial item. Remedial items have no graph node, so their
        status lives on the roadmap itself.
        """

        def apply() -> Roadmap:
            roadmap = self._roadmaps.get_active(student_id)
            if roadmap is None:
                raise RoadmapNotFoundError(student_id)
            item = next(
                (i for i in roadmap.items if i.content_id == content_id and i.is_remedial),
                None,
            )
            if item is None:
                raise InvalidStateTransitionError(
                    "unknown",
                    ProgressStatus.COMPLETED.value,
                    f"{content_id} is not a remedial item of the active roadmap",
                )
            if item.completion_status is ProgressStatus.COMPLETED:
                return roadmap
            item.completion_status = ProgressStatus.COMPLETED
            roadmap.updated_at = datetime.now(UTC)
            return self._roadmaps.save(roadmap)

        return retry_once_on_conflict(apply, f"remedial completion for {student_id}")

    def update_roadmap_status(self, student_id: str, status: RoadmapStatus | str) -> Roadmap:
        """
        Retire the active roadmap.

        Only active -> paused and active -> completed are allowed. A new active
        roadmap comes only from generate_roadmap.
        """
        status = RoadmapStatus(status)

        def apply() -> Roadmap:
            roadmap = self._roadmaps.get_active(student_id)
            if roadmap is None:
                raise RoadmapNotFoundError(student_id)
            roadmap.transition_to(status)
            return self._roadmaps.save(roadmap)

        saved = retry_once_on_conflict(apply, f"roadmap status update for {student_id}")
        logger.info(f"Roadmap {saved.id} for {student_id} is now {saved.status.value}")
        return saved

    def roadmap_history(self, student_id: str) -> list[Roadmap]:
        return self._roadmaps.list_for_student(student_id)


def _matches_skills(lesson: Lesson, skills: list[str]) -> bool:
    haystack = [lesson.title.lower(), *(o.lower() for o in lesson.learning_objectives)]
    return any(skill.strip().lower() in text for skill in skills if skill.strip() for text in haystack)

