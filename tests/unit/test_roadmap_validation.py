"""
Unit tests for candidate path validation and repair.
"""

from waypoint.content.models import DifficultyLevel, Lesson
from waypoint.generation.base import CandidateItem
from waypoint.roadmap.models import LearningPathItem
from waypoint.roadmap.validation import PULLED_IN_NOTE, find_order_violations, repair_candidate_path


def candidates(*ids):
    return [CandidateItem(content_id=content_id) for content_id in ids]


def ids_of(report):
    return [item.content_id for item in report.items]


class TestDrops:
    def test_unknown_duplicate_and_unpublished_are_dropped(self, repository, graph):
        repository.add(Lesson(id="draft", course_id="net", title="Draft", order_index=9, published=False))

        report = repair_candidate_path(candidates("intro", "ghost", "intro", "draft", ""), graph, set())

        assert ids_of(report) == ["intro"]
        assert [(d.content_id, d.reason) for d in report.dropped] == [
            ("ghost", "unknown content"),
            ("intro", "duplicate"),
            ("draft", "unpublished content"),
            ("<empty>", "missing content id"),
        ]

    def test_declared_cycle_drops_every_member(self, graph):
        """A proposer claiming intro depends on routing closes a loop through subnets."""
        proposal = [CandidateItem(content_id="intro", prerequisites=["routing"])]

        report = repair_candidate_path(proposal, graph, set())

        assert report.items == []
        assert sorted(d.content_id for d in report.dropped) == ["intro", "routing", "subnets"]
        assert {d.reason for d in report.dropped} == {"prerequisite cycle"}

    def test_dependant_of_unpublished_prerequisite_is_dropped(self, repository, graph):
        repository.add(Lesson(id="draft", course_id="net", title="Draft", order_index=9, published=False))
        repository.add(
            Lesson(id="advanced", course_id="net", title="Advanced", order_index=10, prerequisites=("draft",))
        )

        report = repair_candidate_path(candidates("advanced", "intro"), graph, set())

        assert ids_of(report) == ["intro"]
        assert [(d.content_id, d.reason) for d in report.dropped] == [
            ("advanced", "depends on an item that cannot be scheduled"),
        ]


class TestPrerequisites:
    def test_missing_prerequisites_are_pulled_in_and_ordered(self, graph):
        report = repair_candidate_path(candidates("routing"), graph, set())

        assert ids_of(report) == ["intro", "subnets", "routing"]
        assert [item.order_index for item in report.items] == [0, 1, 2]
        assert report.pulled_in == ["subnets", "intro"]
        assert report.items[0].personalization_notes == PULLED_IN_NOTE
        assert report.items[2].prerequisites == ["subnets"]
        assert find_order_violations(report.items) == []

    def test_completed_prerequisites_are_stripped(self, graph):
        report = repair_candidate_path(candidates("subnets"), graph, {"intro"})

        assert ids_of(report) == ["subnets"]
        assert report.items[0].prerequisites == []
        assert report.pulled_in == []

    def test_declared_prerequisites_merge_with_graph_edges(self, graph):
        """Declared ids that exist are honoured; unknown ones are ignored."""
        proposal = [CandidateItem(content_id="routing", prerequisites=["intro-quiz", "ghost"])]

        report = repair_candidate_path(proposal, graph, {"intro", "subnets"})

        assert ids_of(report) == ["intro-quiz", "routing"]
        assert report.items[1].prerequisites == ["intro-quiz"]

    def test_final_assessment_pulls_in_every_lesson(self, graph):
        report = repair_candidate_path(candidates("net-final"), graph, set())

        assert ids_of(report) == ["intro", "subnets", "routing", "net-final"]
        assert report.items[3].prerequisites == ["intro", "subnets", "routing"]

    def test_candidate_order_kept_where_edges_allow(self, graph):
        report = repair_candidate_path(candidates("subnets-quiz", "subnets", "intro"), graph, set())

        assert ids_of(report) == ["intro", "subnets", "subnets-quiz"]


class TestCandidateFields:
    def test_valid_overrides_are_applied(self, graph):
        proposal = [
            CandidateItem(
                content_id="intro",
                estimated_time=15,
                difficulty="ADVANCED",
                learning_objectives=["Convert to binary", "Read IPv4 addresses"],
                personalization_notes="Quick refresher",
            )
        ]

        item = repair_candidate_path(proposal, graph, set()).items[0]

        assert item.estimated_time == 15
        assert item.difficulty is DifficultyLevel.ADVANCED
        assert item.learning_objectives == ["Read IPv4 addresses", "Convert to binary"]
        assert item.personalization_notes == "Quick refresher"

    def test_invalid_overrides_fall_back_to_graph(self, graph):
        proposal = [CandidateItem(content_id="intro", estimated_time=-5, difficulty="expert")]

        item = repair_candidate_path(proposal, graph, set()).items[0]

        assert item.estimated_time == 45
        assert item.difficulty is DifficultyLevel.BEGINNER
        assert item.title == "IP Addressing"

    def test_assessment_objectives_are_question_topics(self, graph):
        item = repair_candidate_path(candidates("intro-quiz"), graph, {"intro"}).items[0]

        assert item.learning_objectives == ["binary", "ip addressing"]


class TestOrderViolations:
    def test_reports_prerequisites_not_at_smaller_index(self):
        items = [
            LearningPathItem(content_id="b", content_kind="lesson", title="B", prerequisites=["a"]),
            LearningPathItem(content_id="a", content_kind="lesson", title="A"),
            LearningPathItem(content_id="c", content_kind="lesson", title="C", prerequisites=["a"]),
        ]

        assert find_order_violations(items) == [("b", "a")]
