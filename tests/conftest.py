"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from tests.fakes import (  # noqa: E402
    InMemoryEnrollmentStore,
    InMemoryProgressStore,
    InMemoryRoadmapStore,
)
from waypoint.config import Settings  # noqa: E402
from waypoint.content.graph import ContentGraph, InMemoryContentRepository  # noqa: E402
from waypoint.content.models import Assessment, Course, Lesson, Question  # noqa: E402
from waypoint.progression.controller import ProgressionController  # noqa: E402

STUDENT = "student-1"


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite in-memory database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


def networking_catalog():
    """
    One published course with three chained lessons and a final assessment.

    intro -> subnets -> routing. intro and subnets carry assessments; the
    subnets quiz allows two attempts. The final exam is mandatory.
    """
    return [
        Course(
            id="net",
            title="Networking Fundamentals",
            tags=("networking",),
            estimated_time=240,
            final_assessment_id="net-final",
        ),
        Lesson(
            id="intro",
            course_id="net",
            title="IP Addressing",
            order_index=0,
            learning_objectives=("Read IPv4 addresses",),
            estimated_time=45,
            assessment_id="intro-quiz",
        ),
        Lesson(
            id="subnets",
            course_id="net",
            title="Subnetting",
            order_index=1,
            prerequisites=("intro",),
            learning_objectives=("Split networks with CIDR masks",),
            estimated_time=60,
            assessment_id="subnets-quiz",
        ),
        Lesson(
            id="routing",
            course_id="net",
            title="Static Routing",
            order_index=2,
            prerequisites=("subnets",),
            learning_objectives=("Configure static routes",),
            estimated_time=50,
        ),
        Assessment(
            id="intro-quiz",
            title="IP Addressing Quiz",
            lesson_id="intro",
            is_mandatory=True,
            questions=(
                Question(id="q1", topics=("ip addressing",)),
                Question(id="q2", topics=("binary",)),
            ),
        ),
        Assessment(
            id="subnets-quiz",
            title="Subnetting Quiz",
            lesson_id="subnets",
            max_attempts=2,
            questions=(
                Question(id="s1", topics=("loops",)),
                Question(id="s2", topics=("recursion",)),
                Question(id="s3", topics=("subnetting",)),
            ),
        ),
        Assessment(
            id="net-final",
            title="Networking Final",
            course_id="net",
            is_mandatory=True,
            minimum_passing_score=80,
        ),
    ]


@pytest.fixture
def repository():
    return InMemoryContentRepository(networking_catalog())


@pytest.fixture
def graph(repository):
    return ContentGraph(repository)


@pytest.fixture
def progress_store():
    return InMemoryProgressStore()


@pytest.fixture
def enrollments():
    store = InMemoryEnrollmentStore()
    store.enroll(STUDENT, "net")
    return store


@pytest.fixture
def roadmap_store():
    return InMemoryRoadmapStore()


@pytest.fixture
def controller(graph, progress_store, enrollments):
    return ProgressionController(graph, progress_store, enrollments)


@pytest.fixture
def settings():
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        generation_timeout_seconds=0.5,
    )
