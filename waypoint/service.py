"""
Progression service facade.

Wires the controller, planner and adjuster over one set of stores and
exposes the operations the surrounding application calls. Failed
assessment attempts are routed into the adaptive adjuster here, so the
controller itself never depends on roadmaps.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from waypoint.config import Settings, get_settings
from waypoint.content.graph import ContentGraph
from waypoint.content.models import ContentKind
from waypoint.db.database import create_session_factory
from waypoint.db.stores import (
    SqlContentRepository,
    SqlEnrollmentStore,
    SqlProgressStore,
    SqlRoadmapStore,
)
from waypoint.errors import AttemptNotFoundError
from waypoint.generation.base import NullPathGenerator, PathGenerator
from waypoint.generation.http_generator import HttpPathGenerator
from waypoint.progress.models import AnswerRecord, ProgressRecord, ProgressUpdate
from waypoint.progress.store import EnrollmentStore, ProgressStore
from waypoint.progression.controller import ProgressionController
from waypoint.progression.models import AccessResult, AttemptOutcome, CourseProgressOverview, UnlockedContent
from waypoint.roadmap.adjuster import AdaptiveAdjuster
from waypoint.roadmap.models import AlternativePath, Roadmap, RoadmapStatus, TimeConstraints
from waypoint.roadmap.planner import RoadmapPlanner
from waypoint.roadmap.store import RoadmapStore


@dataclass
class AttemptSubmission:
    outcome: AttemptOutcome
    roadmap: Roadmap | None = None


class ProgressionService:
    def __init__(
        self,
        graph: ContentGraph,
        progress_store: ProgressStore,
        enrollments: EnrollmentStore,
        roadmap_store: RoadmapStore,
        generator: PathGenerator | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or Settings()
        generator = generator or NullPathGenerator()
        self.controller = ProgressionController(graph, progress_store, enrollments)
        self.planner = RoadmapPlanner(
            graph,
            progress_store,
            enrollments,
            roadmap_store,
            generator,
            timeout_seconds=settings.generation_timeout_seconds,
        )
        self.adjuster = AdaptiveAdjuster(
            graph,
            progress_store,
            roadmap_store,
            generator,
            timeout_seconds=settings.generation_timeout_seconds,
            remedial_item_minutes=settings.remedial_item_minutes,
            struggle_min_attempts=settings.struggle_min_attempts,
            consistent_error_ratio=settings.consistent_error_ratio,
            slow_pace_seconds=settings.slow_pace_seconds,
            fast_pace_seconds=settings.fast_pace_seconds,
            pace_adjustment_factor=settings.pace_adjustment_factor,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ) -> ProgressionService:
        """Build the SQL-backed service described by ``settings``."""
        settings = settings or get_settings()
        session_factory = session_factory or create_session_factory(settings=settings)

        generator: PathGenerator
        if settings.has_generation_configured():
            generator = HttpPathGenerator(
                settings.generation_api_url,
                api_key=settings.generation_api_key,
                timeout_seconds=settings.generation_timeout_seconds,
            )
        else:
            logger.info("No generation service configured, roadmaps use the rule-based path")
            generator = NullPathGenerator()

        return cls(
            graph=ContentGraph(SqlContentRepository(session_factory)),
            progress_store=SqlProgressStore(session_factory),
            enrollments=SqlEnrollmentStore(session_factory),
            roadmap_store=SqlRoadmapStore(session_factory),
            generator=generator,
            settings=settings,
        )

    # =========================================================================
    # Progression
    # =========================================================================

    def check_access(self, student_id: str, content_id: str, kind: ContentKind | str) -> AccessResult:
        return self.controller.check_access(student_id, content_id, kind)

    def update_progress(self, update: ProgressUpdate) -> UnlockedContent:
        return self.controller.update_progress(update)

    def get_course_progress_overview(self, student_id: str, course_id: str) -> CourseProgressOverview:
        return self.controller.get_course_progress_overview(student_id, course_id)

    def block_progress(
        self,
        student_id: str,
        content_id: str,
        kind: ContentKind | str,
        reason: str = "",
    ) -> ProgressRecord:
        return self.controller.block_progress(student_id, content_id, kind, reason)

    def unblock_progress(self, student_id: str, content_id: str, kind: ContentKind | str) -> ProgressRecord:
        return self.controller.unblock_progress(student_id, content_id, kind)

    def submit_attempt(
        self,
        student_id: str,
        assessment_id: str,
        answers: Iterable[AnswerRecord],
        score: float,
        passed: bool,
        time_spent: int | None = None,
    ) -> AttemptSubmission:
        """
        Record an attempt; a failed one also adjusts the active roadmap, if any.
        """
        outcome = self.controller.record_attempt(
            student_id, assessment_id, answers, score, passed, time_spent=time_spent
        )
        if passed or self.planner.get_active_roadmap(student_id) is None:
            return AttemptSubmission(outcome=outcome)

        roadmap = self.adjuster.handle_assessment_failure(student_id, assessment_id, outcome.attempt)
        return AttemptSubmission(outcome=outcome, roadmap=roadmap)

    # =========================================================================
    # Roadmaps
    # =========================================================================

    def generate_roadmap(
        self,
        student_id: str,
        target_skills: list[str] | None = None,
        time_constraints: TimeConstraints | None = None,
        force_regenerate: bool = False,
        preferences: dict | None = None,
    ) -> Roadmap:
        return self.planner.generate_roadmap(
            student_id,
            target_skills=target_skills,
            time_constraints=time_constraints,
            force_regenerate=force_regenerate,
            preferences=preferences,
        )

    def get_roadmap_with_progress(self, student_id: str) -> Roadmap:
        return self.planner.get_roadmap_with_progress(student_id)

    def update_roadmap_status(self, student_id: str, status: RoadmapStatus | str) -> Roadmap:
        return self.planner.update_roadmap_status(student_id, status)

    def mark_remedial_item_completed(self, student_id: str, content_id: str) -> Roadmap:
        return self.planner.mark_remedial_item_completed(student_id, content_id)

    def roadmap_history(self, student_id: str) -> list[Roadmap]:
        return self.planner.roadmap_history(student_id)

    def handle_assessment_failure(
        self,
        student_id: str,
        assessment_id: str,
        attempt_number: int | None = None,
    ) -> Roadmap:
        """
        Re-run remediation for a stored attempt (latest when no number is given).
        """
        attempts = self.controller.list_attempts(student_id, assessment_id)
        if attempt_number is None:
            attempt = attempts[-1] if attempts else None
        else:
            attempt = next((a for a in attempts if a.attempt_number == attempt_number), None)
        if attempt is None:
            raise AttemptNotFoundError(student_id, assessment_id, attempt_number)
        return self.adjuster.handle_assessment_failure(student_id, assessment_id, attempt)

    def monitor_and_adjust(self, student_id: str) -> Roadmap | None:
        return self.adjuster.monitor_and_adjust(student_id)

    def generate_alternative_paths(
        self,
        student_id: str,
        current_content_id: str,
        struggling_topics: list[str],
    ) -> list[AlternativePath]:
        return self.adjuster.generate_alternative_paths(student_id, current_content_id, struggling_topics)
