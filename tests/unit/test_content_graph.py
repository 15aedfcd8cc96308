"""
Unit tests for the content graph.

Uses the in-memory repository with the networking catalog from conftest.
"""

import pytest

from waypoint.content.graph import ContentGraph, InMemoryContentRepository
from waypoint.content.models import Assessment, ContentKind, Course, Lesson
from waypoint.errors import ContentNotFoundError, CyclicPrerequisiteError


class TestLookups:
    def test_node_resolves_by_kind(self, graph):
        node = graph.node("intro", ContentKind.LESSON)

        assert isinstance(node, Lesson)
        assert node.title == "IP Addressing"

    def test_kind_mismatch_is_not_found(self, graph):
        """An id of another kind should not resolve."""
        with pytest.raises(ContentNotFoundError) as exc_info:
            graph.node("intro", "assessment")

        assert exc_info.value.content_id == "intro"
        assert exc_info.value.code == "CONTENT_NOT_FOUND"

    def test_unknown_course_raises(self, graph):
        with pytest.raises(ContentNotFoundError):
            graph.course("nope")

    def test_find_any_returns_none_for_unknown(self, graph):
        assert graph.find_any("nope") is None
        assert graph.find_any("net-final").kind is ContentKind.ASSESSMENT

    def test_owning_course_of_lesson_assessment(self, graph):
        assert graph.owning_course_id(graph.assessment("subnets-quiz")) == "net"
        assert graph.owning_course_id(graph.assessment("net-final")) == "net"


class TestAssessmentBinding:
    def test_assessment_requires_exactly_one_binding(self):
        with pytest.raises(ValueError):
            Assessment(id="x", title="Unbound")
        with pytest.raises(ValueError):
            Assessment(id="x", title="Both", lesson_id="a", course_id="b")

    def test_prerequisites_of_lesson_assessment_is_its_lesson(self, graph):
        assert graph.prerequisites_of(graph.assessment("intro-quiz")) == ("intro",)

    def test_prerequisites_of_final_are_all_lessons(self, graph):
        assert graph.prerequisites_of(graph.assessment("net-final")) == ("intro", "subnets", "routing")

    def test_assessment_publication_follows_lesson(self, repository, graph):
        repository.add(Lesson(id="draft", course_id="net", title="Draft", order_index=9, published=False))
        repository.add(Assessment(id="draft-quiz", title="Draft Quiz", lesson_id="draft"))

        assert not graph.is_published(graph.assessment("draft-quiz"))
        assert graph.is_published(graph.assessment("intro-quiz"))


class TestOrdering:
    def test_course_subgraph_in_prerequisite_order(self, graph):
        subgraph = graph.course_subgraph("net")

        assert [lesson.id for lesson in subgraph.lessons] == ["intro", "subnets", "routing"]
        assert subgraph.final_assessment.id == "net-final"
        assert subgraph.lesson_assessment(subgraph.lessons[0]).id == "intro-quiz"
        assert subgraph.cyclic_lesson_ids == []

    def test_prerequisites_override_order_index(self):
        """A lesson listed earlier but depending on a later one is moved after it."""
        graph = ContentGraph(InMemoryContentRepository([
            Course(id="c", title="C"),
            Lesson(id="b", course_id="c", title="B", order_index=0, prerequisites=("a",)),
            Lesson(id="a", course_id="c", title="A", order_index=1),
        ]))

        assert graph.topological_lessons("c").order == ["a", "b"]

    def test_cycle_is_detected_not_looped(self):
        graph = ContentGraph(InMemoryContentRepository([
            Course(id="c", title="C"),
            Lesson(id="x", course_id="c", title="X", order_index=0, prerequisites=("y",)),
            Lesson(id="y", course_id="c", title="Y", order_index=1, prerequisites=("x",)),
            Lesson(id="z", course_id="c", title="Z", order_index=2),
        ]))

        subgraph = graph.course_subgraph("c")
        assert [lesson.id for lesson in subgraph.lessons] == ["z"]
        assert subgraph.cyclic_lesson_ids == ["x", "y"]

        with pytest.raises(CyclicPrerequisiteError) as exc_info:
            graph.check_acyclic("c")
        assert exc_info.value.cycles == [["x", "y"]]


class TestCatalog:
    def test_describe_catalog_lists_published_content(self, repository, graph):
        repository.add(Lesson(id="draft", course_id="net", title="Draft", order_index=9, published=False))

        catalog = graph.describe_catalog()
        ids = [entry["id"] for entry in catalog]

        assert ids[0] == "net"
        assert "draft" not in ids
        assert ids.index("intro") < ids.index("intro-quiz") < ids.index("subnets")
        assert ids[-1] == "net-final"

        subnets_quiz = next(entry for entry in catalog if entry["id"] == "subnets-quiz")
        assert subnets_quiz["prerequisites"] == ["subnets"]
        assert subnets_quiz["topics"] == ["loops", "recursion", "subnetting"]

    def test_describe_catalog_skips_unknown_course_ids(self, graph):
        assert graph.describe_catalog(["ghost"]) == []
