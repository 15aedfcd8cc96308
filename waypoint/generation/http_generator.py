"""
HTTP client for the external path-generation service.

Endpoints:
- POST {base}/roadmaps/propose      -> {"items": [...], "rationale": "..."}
- POST {base}/remediation/suggest   -> {"suggestions": [...], "reasoning": "..."}

Responses are parsed with pydantic. Transport errors, non-2xx responses and
malformed payloads all become GenerationUnavailableError.
"""

from __future__ import annotations

import time
from typing import Any

import httpx
from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from waypoint.errors import GenerationUnavailableError
from waypoint.generation.base import (
    CandidateItem,
    PathGenerator,
    PathProposal,
    RemediationProposal,
    RemediationSuggestion,
)
from waypoint.roadmap.models import FailureAnalysis, Roadmap, StudentProfile


class _CandidatePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content_id: str = Field(validation_alias=AliasChoices("content_id", "id"))
    title: str | None = None
    content_kind: str | None = Field(default=None, validation_alias=AliasChoices("content_kind", "kind"))
    prerequisites: list[str] = Field(default_factory=list)
    estimated_time: int | None = None
    difficulty: str | None = None
    learning_objectives: list[str] = Field(default_factory=list)
    personalization_notes: str = ""


class _ProposalPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    items: list[_CandidatePayload]
    rationale: str = ""


class _SuggestionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    topic: str
    title: str | None = None
    estimated_time: int | None = None
    difficulty: str | None = None
    description: str = ""


class _RemediationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    suggestions: list[_SuggestionPayload] = Field(default_factory=list)
    reasoning: str = ""


class HttpPathGenerator(PathGenerator):
    """Synchronous httpx client; callers bound it further with call_with_timeout."""

    def __init__(
        self,
        api_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        retry_attempts: int = 2,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the generator client.

        Args:
            api_url: Base URL of the generation service
            api_key: Optional bearer token
            timeout_seconds: Per-request timeout
            retry_attempts: Attempts on timeouts and 5xx responses
            transport: Custom transport (tests use httpx.MockTransport)
        """
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = max(retry_attempts, 1)
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.Client(
            base_url=self.api_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
            transport=transport,
            follow_redirects=True,
        )

    def close(self) -> None:
        self.client.close()

    def propose(self, profile: StudentProfile, available_content: list[dict[str, Any]]) -> PathProposal:
        data = self._post(
            "/roadmaps/propose",
            {"student_profile": profile.to_dict(), "available_content": available_content},
        )
        try:
            payload = _ProposalPayload.model_validate(data)
        except ValidationError as e:
            raise GenerationUnavailableError(f"Malformed roadmap proposal: {e.error_count()} errors") from e

        return PathProposal(
            items=[CandidateItem(**item.model_dump()) for item in payload.items],
            rationale=payload.rationale,
        )

    def suggest_remediation(self, analysis: FailureAnalysis, roadmap: Roadmap) -> RemediationProposal:
        data = self._post(
            "/remediation/suggest",
            {"analysis": analysis.to_dict(), "roadmap": roadmap.to_dict()},
        )
        try:
            payload = _RemediationPayload.model_validate(data)
        except ValidationError as e:
            raise GenerationUnavailableError(f"Malformed remediation payload: {e.error_count()} errors") from e

        return RemediationProposal(
            suggestions=[RemediationSuggestion(**s.model_dump()) for s in payload.suggestions],
            reasoning=payload.reasoning,
        )

    def _post(self, path: str, body: dict[str, Any]) -> Any:
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = self.client.post(path, json=body)
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(f"Generation service timeout on attempt {attempt + 1}/{self.retry_attempts}")

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code < 500:
                    # Don't retry on 4xx client errors
                    raise GenerationUnavailableError(
                        f"Generation service rejected {path}: {e.response.status_code}"
                    ) from e
                logger.warning(
                    f"Generation service error {e.response.status_code} on attempt "
                    f"{attempt + 1}/{self.retry_attempts}"
                )

            except httpx.RequestError as e:
                last_error = e
                logger.warning(f"Generation request error on attempt {attempt + 1}/{self.retry_attempts}: {e}")

            except ValueError as e:
                raise GenerationUnavailableError(f"Generation service returned invalid JSON for {path}") from e

            if attempt < self.retry_attempts - 1:
                time.sleep(0.25 * 2**attempt)

        raise GenerationUnavailableError(
            f"Generation service unavailable after {self.retry_attempts} attempts: {last_error}"
        )
