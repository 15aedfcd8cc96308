"""
Path-generation strategy interface.

The generator proposes candidate paths and remediation suggestions. Its
output is advisory: every field may be missing, unknown or inconsistent,
and the planner and adjuster re-validate all of it.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from waypoint.errors import GenerationUnavailableError
from waypoint.roadmap.models import FailureAnalysis, Roadmap, StudentProfile


@dataclass
class CandidateItem:
    content_id: str
    title: str | None = None
    content_kind: str | None = None
    prerequisites: list[str] = field(default_factory=list)
    estimated_time: int | None = None
    difficulty: str | None = None
    learning_objectives: list[str] = field(default_factory=list)
    personalization_notes: str = ""


@dataclass
class PathProposal:
    items: list[CandidateItem] = field(default_factory=list)
    rationale: str = ""


@dataclass
class RemediationSuggestion:
    topic: str
    title: str | None = None
    estimated_time: int | None = None
    difficulty: str | None = None
    description: str = ""


@dataclass
class RemediationProposal:
    suggestions: list[RemediationSuggestion] = field(default_factory=list)
    reasoning: str = ""


class PathGenerator(ABC):
    """Untrusted proposer of roadmaps and remediation."""

    @abstractmethod
    def propose(self, profile: StudentProfile, available_content: list[dict[str, Any]]) -> PathProposal:
        ...

    @abstractmethod
    def suggest_remediation(self, analysis: FailureAnalysis, roadmap: Roadmap) -> RemediationProposal:
        ...


class NullPathGenerator(PathGenerator):
    """Used when no generation service is configured; always takes the rule-based path."""

    def propose(self, profile: StudentProfile, available_content: list[dict[str, Any]]) -> PathProposal:
        raise GenerationUnavailableError("No path generation service configured")

    def suggest_remediation(self, analysis: FailureAnalysis, roadmap: Roadmap) -> RemediationProposal:
        raise GenerationUnavailableError("No path generation service configured")
