"""Untrusted path-generation collaborator: interface, HTTP client and timeout guard."""

from waypoint.generation.base import (
    CandidateItem,
    NullPathGenerator,
    PathGenerator,
    PathProposal,
    RemediationProposal,
    RemediationSuggestion,
)
from waypoint.generation.guard import call_with_timeout
from waypoint.generation.http_generator import HttpPathGenerator

__all__ = [
    "CandidateItem",
    "HttpPathGenerator",
    "NullPathGenerator",
    "PathGenerator",
    "PathProposal",
    "RemediationProposal",
    "RemediationSuggestion",
    "call_with_timeout",
]
