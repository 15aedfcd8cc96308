"""
Validate-and-repair for candidate learning paths.

Candidate items come from an untrusted proposer. Repair rules:
1. Unknown or unpublished content ids are dropped; duplicates keep the first occurrence
2. Prerequisites = graph edges + candidate-declared ids that exist in the graph
3. Prerequisites already completed by the student are satisfied and removed
4. Missing, uncompleted prerequisites are pulled into the path
5. Cycles (DFS colouring) and dependants of dropped items are dropped
6. The rest is re-sorted so every prerequisite precedes its dependant,
   keeping the candidate order wherever the edges allow
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from waypoint.content.graph import ContentGraph
from waypoint.content.models import ContentNode, Course, DifficultyLevel, Lesson
from waypoint.content.toposort import topological_sort
from waypoint.generation.base import CandidateItem
from waypoint.roadmap.models import LearningPathItem

PULLED_IN_NOTE = "Added to satisfy prerequisites"


@dataclass(frozen=True)
class DroppedItem:
    content_id: str
    reason: str


@dataclass
class RepairReport:
    items: list[LearningPathItem] = field(default_factory=list)
    dropped: list[DroppedItem] = field(default_factory=list)
    pulled_in: list[str] = field(default_factory=list)


def item_from_node(
    node: ContentNode,
    prerequisites: Iterable[str] = (),
    notes: str = "",
) -> LearningPathItem:
    if isinstance(node, Lesson):
        objectives = list(node.learning_objectives)
        difficulty = node.difficulty
    elif isinstance(node, Course):
        objectives = list(node.tags)
        difficulty = node.difficulty
    else:
        objectives = sorted({topic for q in node.questions for topic in q.topics})
        difficulty = DifficultyLevel.BEGINNER
    return LearningPathItem(
        content_id=node.id,
        content_kind=node.kind,
        title=node.title,
        estimated_time=max(int(node.estimated_time or 0), 0),
        prerequisites=list(prerequisites),
        learning_objectives=objectives,
        personalization_notes=notes,
        difficulty=difficulty,
    )


def _candidate_item(candidate: CandidateItem, node: ContentNode) -> LearningPathItem:
    item = item_from_node(node, notes=candidate.personalization_notes or "")
    if isinstance(candidate.estimated_time, int) and candidate.estimated_time > 0:
        item.estimated_time = candidate.estimated_time
    item.difficulty = DifficultyLevel.parse(candidate.difficulty, default=item.difficulty)
    # Objectives from the graph are authoritative; proposer text only adds to them.
    for objective in candidate.learning_objectives or []:
        if isinstance(objective, str) and objective and objective not in item.learning_objectives:
            item.learning_objectives.append(objective)
    return item


def repair_candidate_path(
    candidates: Iterable[CandidateItem],
    graph: ContentGraph,
    completed_ids: set[str],
) -> RepairReport:
    """
    Turn untrusted candidates into a topologically valid, contiguously numbered path.

    Args:
        candidates: Proposed items in proposed order
        graph: Authoritative content graph
        completed_ids: Content the student has already completed

    Returns:
        RepairReport with the repaired items and every drop/pull-in decision
    """
    report = RepairReport()
    items: dict[str, LearningPathItem] = {}
    nodes: dict[str, ContentNode] = {}
    declared: dict[str, list[str]] = {}
    unavailable: set[str] = set()

    def drop(content_id: str, reason: str) -> None:
        report.dropped.append(DroppedItem(content_id, reason))
        logger.warning(f"Dropping roadmap item {content_id}: {reason}")

    for candidate in candidates:
        content_id = str(candidate.content_id or "").strip()
        if not content_id:
            drop("<empty>", "missing content id")
            continue
        if content_id in items:
            drop(content_id, "duplicate")
            continue
        node = graph.find_any(content_id)
        if node is None:
            drop(content_id, "unknown content")
            continue
        if not graph.is_published(node):
            drop(content_id, "unpublished content")
            continue
        items[content_id] = _candidate_item(candidate, node)
        nodes[content_id] = node
        declared[content_id] = [p for p in candidate.prerequisites or [] if isinstance(p, str)]

    # Resolve prerequisites, pulling missing ones in until the set is closed.
    pending = list(items)
    while pending:
        content_id = pending.pop(0)
        node = nodes[content_id]
        resolved: list[str] = []
        for prereq_id in _merge(graph.prerequisites_of(node), declared.get(content_id, [])):
            if prereq_id == content_id:
                continue
            if prereq_id in items:
                resolved.append(prereq_id)
                continue
            if prereq_id in completed_ids:
                continue
            prereq = graph.find_any(prereq_id)
            if prereq is None:
                if prereq_id in declared.get(content_id, []):
                    logger.debug(f"Ignoring unknown prerequisite {prereq_id} declared for {content_id}")
                else:
                    logger.warning(f"{content_id} lists missing prerequisite {prereq_id}, skipping")
                continue
            if not graph.is_published(prereq):
                unavailable.add(prereq_id)
                resolved.append(prereq_id)
                continue
            items[prereq_id] = item_from_node(prereq, notes=PULLED_IN_NOTE)
            nodes[prereq_id] = prereq
            report.pulled_in.append(prereq_id)
            pending.append(prereq_id)
            resolved.append(prereq_id)
        items[content_id].prerequisites = resolved

    for content_id in sorted(unavailable):
        logger.warning(f"Prerequisite {content_id} is unpublished; dependants cannot be scheduled")

    ordering = topological_sort(
        items.keys(),
        lambda content_id: items[content_id].prerequisites,
        strict=True,
    )
    for cycle in ordering.cycles:
        logger.warning(f"Prerequisite cycle in candidate path: {' -> '.join(cycle)}")
    cyclic = {content_id for cycle in ordering.cycles for content_id in cycle}
    for content_id in ordering.rejected:
        if content_id in cyclic:
            drop(content_id, "prerequisite cycle")
        else:
            drop(content_id, "depends on an item that cannot be scheduled")

    report.items = [items[content_id] for content_id in ordering.order]
    for index, item in enumerate(report.items):
        item.order_index = index
    return report


def find_order_violations(items: Iterable[LearningPathItem]) -> list[tuple[str, str]]:
    """(item, prerequisite) pairs where the prerequisite is not at a smaller index."""
    seen: set[str] = set()
    violations = []
    for item in items:
        for prereq_id in item.prerequisites:
            if prereq_id not in seen:
                violations.append((item.content_id, prereq_id))
        seen.add(item.content_id)
    return violations


def _merge(first: Iterable[str], second: Iterable[str]) -> list[str]:
    return list(dict.fromkeys([*first, *second]))

