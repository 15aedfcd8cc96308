"""
Adaptive Adjuster.

Rewrites the active roadmap in response to assessment failures and detected
learning patterns.

On a failed attempt:
- Topic gaps are the topics of incorrectly answered questions
- Struggling: at least N attempts and the latest score is no better than the first
- Consistent errors: questions missed in at least 60% of attempts
- One remedial item per topic gap, suggested by the generator or synthesized
- Remedial items go before the first item covering their topic (else at the head)
- A topic already remediated in the roadmap is never inserted twice

Every rewrite is one atomic, version-checked write of the same roadmap row.
"""
from __future__ import annotations

import hashlib
import math
import re
from collections import Counter
from datetime import UTC, datetime

from loguru import logger

from waypoint.concurrency import retry_once_on_conflict
from waypoint.content.graph import ContentGraph
from waypoint.content.models import Assessment, ContentKind, DifficultyLevel
from waypoint.errors import GenerationUnavailableError, RoadmapNotFoundError
from waypoint.generation.base import PathGenerator, RemediationProposal, RemediationSuggestion
from waypoint.generation.guard import call_with_timeout
from waypoint.progress.models import AssessmentAttempt, ProgressStatus
from waypoint.progress.store import ProgressStore
from waypoint.roadmap.models import (
    AlternativePath,
    FailureAnalysis,
    LearningPathItem,
    LearningPattern,
    PatternType,
    Roadmap,
)
from waypoint.roadmap.store import RoadmapStore

PATTERN_WINDOW = 20
MIN_PACE_RECORDS = 5
MIN_TIMED_RECORDS = 3
MIN_STRUGGLE_RECORDS = 3
ALTERNATIVES_PER_TOPIC = 3
DEFAULT_LESSON_MINUTES = 60

DIFFICULTY_ORDER = {
    DifficultyLevel.BEGINNER: 0,
    DifficultyLevel.INTERMEDIATE: 1,
    DifficultyLevel.ADVANCED: 2,
}


class AdaptiveAdjuster:
    """Remediation and pace adjustment for active roadmaps."""

    def __init__(
        self,
        graph: ContentGraph,
        progress_store: ProgressStore,
        roadmap_store: RoadmapStore,
        generator: PathGenerator,
        timeout_seconds: float = 10.0,
        remedial_item_minutes: int = 30,
        struggle_min_attempts: int = 3,
        consistent_error_ratio: float = 0.6,
        slow_pace_seconds: int = 1800,
        fast_pace_seconds: int = 300,
        pace_adjustment_factor: float = 1.5,
    ):
        self._graph = graph
        self._progress = progress_store
        self._roadmaps = roadmap_store
        self._generator = generator
        self._timeout_seconds = timeout_seconds
        self.remedial_item_minutes = remedial_item_minutes
        self.struggle_min_attempts = struggle_min_attempts
        self.consistent_error_ratio = consistent_error_ratio
        self.slow_pace_seconds = slow_pace_seconds
        self.fast_pace_seconds = fast_pace_seconds
        self.pace_adjustment_factor = pace_adjustment_factor

    # =========================================================================
    # Assessment failure
    # =========================================================================

    def handle_assessment_failure(
        self,
        student_id: str,
        assessment_id: str,
        attempt: AssessmentAttempt,
    ) -> Roadmap:
        """
        Insert remedial items for the gaps exposed by a failed attempt.

        A passing attempt, or one whose gaps are all remediated already,
        returns the roadmap unchanged without writing.

        Raises:
            ContentNotFoundError: Unknown assessment
            RoadmapNotFoundError: No active roadmap
        """
        assessment = self._graph.assessment(assessment_id)
        roadmap = self._roadmaps.get_active(student_id)
        if roadmap is None:
            raise RoadmapNotFoundError(student_id)

        if attempt.passed:
            logger.debug(f"Attempt {attempt.attempt_number} on {assessment_id} passed, no adjustment")
            return roadmap

        analysis = self.analyze_failure(student_id, assessment, attempt)
        already = roadmap.remedial_topics()
        new_topics = [topic for topic in analysis.topic_gaps if topic.strip().lower() not in already]
        if not new_topics:
            logger.info(f"No new topic gaps for {student_id} on {assessment_id}, roadmap unchanged")
            return roadmap

        remedial = self._remedial_items(analysis, roadmap, new_topics)

        def apply() -> Roadmap:
            current = self._roadmaps.get_active(student_id)
            if current is None:
                raise RoadmapNotFoundError(student_id)
            inserted = insert_remedial_items(current, remedial)
            if not inserted:
                return current
            current.renumber()
            current.append_rationale(
                f"Adaptive adjustment: {analysis.reasoning} "
                f"Added remedial review for {', '.join(item.topic for item in inserted)}."
            )
            current.updated_at = datetime.now(UTC)
            return self._roadmaps.save(current)

        saved = retry_once_on_conflict(apply, f"remediation for {student_id} on {assessment_id}")
        logger.info(
            f"Adjusted roadmap {saved.id} for {student_id} after failing {assessment_id}: "
            f"{len(saved.items)} items, {saved.total_estimated_time} min"
        )
        return saved

    def analyze_failure(
        self,
        student_id: str,
        assessment: Assessment,
        attempt: AssessmentAttempt,
    ) -> FailureAnalysis:
        topic_gaps: list[str] = []
        for question_id in attempt.wrong_question_ids():
            question = assessment.question(question_id)
            if question is None:
                continue
            for topic in question.topics:
                if topic and topic not in topic_gaps:
                    topic_gaps.append(topic)

        attempts = self._progress.list_attempts(student_id, assessment.id)
        if all(a.attempt_number != attempt.attempt_number for a in attempts):
            attempts = [*attempts, attempt]
        attempts.sort(key=lambda a: a.attempt_number)

        struggling = (
            len(attempts) >= self.struggle_min_attempts
            and attempts[-1].score <= attempts[0].score
        )
        consistent = self._consistent_errors(attempts)

        reasoning = f"Scored {attempt.score:.0f}% on '{assessment.title}'."
        if topic_gaps:
            reasoning += f" Knowledge gaps in: {', '.join(topic_gaps)}."
        if struggling:
            reasoning += f" No improvement across {len(attempts)} attempts."
        if consistent:
            reasoning += f" {len(consistent)} question(s) missed repeatedly."

        return FailureAnalysis(
            student_id=student_id,
            assessment_id=assessment.id,
            assessment_title=assessment.title,
            score=attempt.score,
            attempt_number=attempt.attempt_number,
            attempt_count=len(attempts),
            topic_gaps=topic_gaps,
            struggling=struggling,
            consistent_errors=consistent,
            reasoning=reasoning,
        )

    def _consistent_errors(self, attempts: list[AssessmentAttempt]) -> list[str]:
        if len(attempts) < 2:
            return []
        threshold = math.ceil(len(attempts) * self.consistent_error_ratio)
        misses: Counter[str] = Counter()
        for attempt in attempts:
            misses.update(list(dict.fromkeys(attempt.wrong_question_ids())))
        # Questions are reported in first-missed order.
        return [question_id for question_id, count in misses.items() if count >= threshold]

    def _remedial_items(
        self,
        analysis: FailureAnalysis,
        roadmap: Roadmap,
        topics: list[str],
    ) -> list[LearningPathItem]:
        proposal: RemediationProposal | None
        try:
            proposal = call_with_timeout(
                self._generator.suggest_remediation,
                self._timeout_seconds,
                analysis,
                roadmap,
                description="remediation suggestion",
            )
        except GenerationUnavailableError as e:
            logger.warning(f"Remediation suggestions unavailable, using rule-based items: {e.message}")
            proposal = None

        suggested: dict[str, RemediationSuggestion] = {}
        if proposal is not None:
            wanted = {topic.strip().lower() for topic in topics}
            for suggestion in proposal.suggestions:
                key = (suggestion.topic or "").strip().lower()
                if key in wanted and key not in suggested:
                    suggested[key] = suggestion
                elif key not in wanted:
                    logger.debug(f"Ignoring remediation suggestion for non-gap topic {suggestion.topic!r}")

        items = []
        for topic in topics:
            suggestion = suggested.get(topic.strip().lower())
            items.append(
                self._item_from_suggestion(topic, suggestion)
                if suggestion
                else self.rule_based_remedial_item(topic)
            )
        return items

    def rule_based_remedial_item(self, topic: str) -> LearningPathItem:
        return LearningPathItem(
            content_id=remedial_content_id(topic),
            content_kind=ContentKind.LESSON,
            title=f"Review: {topic}",
            estimated_time=self.remedial_item_minutes,
            prerequisites=[],
            learning_objectives=[f"Review {topic}", "Address knowledge gaps"],
            personalization_notes=f"Focused review of {topic} concepts to address knowledge gaps",
            difficulty=DifficultyLevel.BEGINNER,
            topic=topic,
            is_unlocked=True,
        )

    def _item_from_suggestion(self, topic: str, suggestion: RemediationSuggestion) -> LearningPathItem:
        item = self.rule_based_remedial_item(topic)
        if suggestion.title and suggestion.title.strip():
            item.title = suggestion.title.strip()
        if isinstance(suggestion.estimated_time, int) and suggestion.estimated_time > 0:
            item.estimated_time = suggestion.estimated_time
        item.difficulty = DifficultyLevel.parse(suggestion.difficulty)
        if suggestion.description:
            item.personalization_notes = suggestion.description.strip()
        return item

    # =========================================================================
    # Pattern monitoring
    # =========================================================================

    def detect_learning_patterns(self, student_id: str) -> list[LearningPattern]:
        """Pace and struggle patterns from the most recent progress records."""
        records = self._progress.list_records(student_id, limit=PATTERN_WINDOW)
        patterns: list[LearningPattern] = []

        timed = [record.time_spent for record in records if record.time_spent > 0]
        if len(records) >= MIN_PACE_RECORDS and len(timed) >= MIN_TIMED_RECORDS:
            average = sum(timed) / len(timed)
            if average < self.fast_pace_seconds:
                pace = "fast"
            elif average > self.slow_pace_seconds:
                pace = "slow"
            else:
                pace = "normal"
            patterns.append(
                LearningPattern(
                    student_id=student_id,
                    pattern_type=PatternType.LEARNING_PACE,
                    data={"average_time_per_item": average, "pace": pace},
                    confidence=min(len(timed) / 10, 1.0),
                )
            )

        if len(records) >= MIN_STRUGGLE_RECORDS:
            completed = sum(1 for r in records if r.status is ProgressStatus.COMPLETED)
            completion_rate = completed / len(records)
            average_completion = sum(r.completion_percentage for r in records) / len(records)
            if completion_rate < 0.3 or average_completion < 50:
                patterns.append(
                    LearningPattern(
                        student_id=student_id,
                        pattern_type=PatternType.STRUGGLE_AREA,
                        data={
                            "completion_rate": completion_rate,
                            "average_completion": average_completion,
                        },
                        confidence=0.8 if completion_rate < 0.2 else 0.6,
                    )
                )

        return patterns

    def monitor_and_adjust(self, student_id: str) -> Roadmap | None:
        """
        Apply pattern-driven adjustments to the active roadmap.

        A slow pace scales every estimate once by the pace factor. Struggle
        patterns are logged for follow-up. Returns None without an active roadmap.
        """
        if self._roadmaps.get_active(student_id) is None:
            return None

        patterns = self.detect_learning_patterns(student_id)
        for pattern in patterns:
            if pattern.pattern_type is PatternType.STRUGGLE_AREA:
                logger.info(f"Struggle pattern for {student_id}: {pattern.data} (confidence {pattern.confidence})")

        slow = any(
            p.pattern_type is PatternType.LEARNING_PACE and p.data.get("pace") == "slow" for p in patterns
        )

        def apply() -> Roadmap | None:
            roadmap = self._roadmaps.get_active(student_id)
            if roadmap is None or not slow or roadmap.pace_factor != 1.0:
                return roadmap
            factor = self.pace_adjustment_factor
            for item in roadmap.items:
                item.estimated_time = math.ceil(item.estimated_time * factor)
            roadmap.pace_factor = factor
            roadmap.append_rationale(
                f"Pace adjustment: estimated times scaled by {factor:g} to match a slower learning pace."
            )
            roadmap.updated_at = datetime.now(UTC)
            return self._roadmaps.save(roadmap)

        roadmap = retry_once_on_conflict(apply, f"pace adjustment for {student_id}")
        if slow and roadmap is not None:
            logger.info(f"Roadmap {roadmap.id} for {student_id}: {roadmap.total_estimated_time} min after pace check")
        return roadmap

    # =========================================================================
    # Alternative paths
    # =========================================================================

    def generate_alternative_paths(
        self,
        student_id: str,
        current_content_id: str,
        struggling_topics: list[str],
    ) -> list[AlternativePath]:
        """
        Other published lessons that teach the topics a student is stuck on.

        For each topic, up to ``ALTERNATIVES_PER_TOPIC`` lessons whose learning
        objectives mention it, easiest first. Topics with no match are skipped.
        Nothing is written; the caller decides whether to adopt a path.
        """
        current = self._graph.find_any(current_content_id)
        current_minutes = getattr(current, "estimated_time", 0) or DEFAULT_LESSON_MINUTES

        candidates = [
            lesson
            for course in self._graph.list_courses()
            if course.published
            for lesson in self._graph.lessons_in_course(course.id)
            if lesson.published and lesson.id != current_content_id
        ]

        paths: list[AlternativePath] = []
        seen: set[str] = set()
        for topic in struggling_topics:
            key = topic.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)

            matches = [
                lesson
                for lesson in candidates
                if any(key in objective.lower() for objective in lesson.learning_objectives)
            ]
            matches.sort(key=lambda lesson: DIFFICULTY_ORDER[lesson.difficulty])
            if not matches:
                logger.debug(f"No alternative lessons cover {topic!r} for {student_id}")
                continue

            items = [
                LearningPathItem(
                    content_id=lesson.id,
                    content_kind=ContentKind.LESSON,
                    title=lesson.title,
                    order_index=index,
                    estimated_time=lesson.estimated_time,
                    prerequisites=[],
                    learning_objectives=list(lesson.learning_objectives),
                    personalization_notes=f"Alternative approach for {topic.strip()}",
                    difficulty=lesson.difficulty,
                    is_unlocked=True,
                )
                for index, lesson in enumerate(matches[:ALTERNATIVES_PER_TOPIC])
            ]
            paths.append(
                AlternativePath(
                    id=f"alt-{_slug(topic)}-{current_content_id}",
                    original_content_id=current_content_id,
                    topic=topic.strip(),
                    items=items,
                    reason=f"Alternative learning approach for {topic.strip()} to address learning difficulties",
                    estimated_time_difference=sum(item.estimated_time for item in items) - current_minutes,
                )
            )

        logger.info(
            f"Found {len(paths)} alternative paths for {student_id} away from {current_content_id} "
            f"({len(seen)} topics)"
        )
        return paths


def _slug(topic: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", topic.strip().lower()).strip("-") or "topic"


def remedial_content_id(topic: str) -> str:
    """Stable id for a synthesized remedial item."""
    slug = _slug(topic)
    digest = hashlib.sha1(topic.strip().lower().encode("utf-8")).hexdigest()[:8]
    return f"remedial-{slug}-{digest}"


def insertion_point(items: list[LearningPathItem], topic: str) -> int:
    """Index of the first item covering ``topic``; 0 when none does."""
    for index, item in enumerate(items):
        if item.matches_topic(topic):
            return index
    return 0


def insert_remedial_items(roadmap: Roadmap, remedial: list[LearningPathItem]) -> list[LearningPathItem]:
    """
    Insert remedial items in place, skipping topics the roadmap already covers.

    Returns the items actually inserted. order_index is left for the caller
    to renumber.
    """
    covered = roadmap.remedial_topics()
    inserted = []
    for item in remedial:
        key = item.topic.strip().lower()
        if key in covered:
            continue
        roadmap.items.insert(insertion_point(roadmap.items, item.topic), item)
        covered.add(key)
        inserted.append(item)
    return inserted
