"""
Roadmap API Router.

Endpoints:
- Roadmap generation (generated path with rule-based fallback)
- Active roadmap with live progress
- Remediation after a failed attempt
- Status changes and remedial item completion
- Pace/struggle monitoring
- Alternative lessons for struggling topics
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field

from waypoint.api.deps import get_service, http_error
from waypoint.content.models import ContentKind, DifficultyLevel
from waypoint.errors import WaypointError
from waypoint.progress.models import ProgressStatus
from waypoint.roadmap.models import Roadmap, RoadmapStatus, TimeConstraints
from waypoint.service import ProgressionService

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class TimeConstraintsModel(BaseModel):
    hours_per_week: float | None = Field(None, gt=0)
    target_completion_date: date | None = None


class GenerateRoadmapRequest(BaseModel):
    """Request model for roadmap generation."""

    target_skills: list[str] = Field(default_factory=list, description="Skills to focus on")
    time_constraints: TimeConstraintsModel | None = None
    force_regenerate: bool = Field(False, description="Supersede the active roadmap")
    preferences: dict[str, Any] = Field(default_factory=dict)


class LearningPathItemResponse(BaseModel):
    content_id: str
    content_kind: ContentKind
    title: str
    order_index: int
    estimated_time: int
    prerequisites: list[str]
    learning_objectives: list[str]
    personalization_notes: str
    difficulty: DifficultyLevel
    topic: str | None
    is_unlocked: bool
    completion_status: ProgressStatus


class RoadmapResponse(BaseModel):
    """Response model for a roadmap."""

    id: str
    student_id: str
    status: RoadmapStatus
    rationale: str
    items: list[LearningPathItemResponse]
    total_estimated_time: int
    knowledge_gaps: list[str]
    target_skills: list[str]
    time_constraints: TimeConstraintsModel | None = None
    pace_factor: float
    generated_at: datetime
    updated_at: datetime


class AssessmentFailureRequest(BaseModel):
    assessment_id: str
    attempt_number: int | None = Field(None, ge=1, description="Defaults to the latest attempt")


class RoadmapStatusRequest(BaseModel):
    status: RoadmapStatus


class MonitorResponse(BaseModel):
    has_roadmap: bool
    roadmap: RoadmapResponse | None = None


class AlternativePathsRequest(BaseModel):
    current_content_id: str
    struggling_topics: list[str] = Field(default_factory=list, min_length=1)


class AlternativePathResponse(BaseModel):
    id: str
    original_content_id: str
    topic: str
    items: list[LearningPathItemResponse]
    reason: str
    difficulty_adjustment: str
    estimated_time_difference: int


def _roadmap_response(roadmap: Roadmap) -> RoadmapResponse:
    return RoadmapResponse.model_validate(roadmap.to_dict())


# ========================================
# Endpoints
# ========================================


@router.post("/{student_id}/generate", response_model=RoadmapResponse, summary="Generate a roadmap")
def generate_roadmap(
    student_id: str,
    request: GenerateRoadmapRequest,
    service: ProgressionService = Depends(get_service),
) -> RoadmapResponse:
    constraints = None
    if request.time_constraints is not None:
        constraints = TimeConstraints(**request.time_constraints.model_dump())
    try:
        roadmap = service.generate_roadmap(
            student_id,
            target_skills=request.target_skills,
            time_constraints=constraints,
            force_regenerate=request.force_regenerate,
            preferences=request.preferences,
        )
    except WaypointError as exc:
        raise http_error(exc) from exc
    return _roadmap_response(roadmap)


@router.get("/{student_id}", response_model=RoadmapResponse, summary="Active roadmap with progress")
def get_roadmap(
    student_id: str,
    service: ProgressionService = Depends(get_service),
) -> RoadmapResponse:
    try:
        roadmap = service.get_roadmap_with_progress(student_id)
    except WaypointError as exc:
        raise http_error(exc) from exc
    return _roadmap_response(roadmap)


@router.get("/{student_id}/history", response_model=list[RoadmapResponse], summary="All roadmaps, newest first")
def roadmap_history(
    student_id: str,
    service: ProgressionService = Depends(get_service),
) -> list[RoadmapResponse]:
    return [_roadmap_response(r) for r in service.roadmap_history(student_id)]


@router.post(
    "/{student_id}/assessment-failure",
    response_model=RoadmapResponse,
    summary="Insert remedial items for a failed attempt",
)
def assessment_failure(
    student_id: str,
    request: AssessmentFailureRequest,
    service: ProgressionService = Depends(get_service),
) -> RoadmapResponse:
    try:
        roadmap = service.handle_assessment_failure(student_id, request.assessment_id, request.attempt_number)
    except WaypointError as exc:
        raise http_error(exc) from exc
    return _roadmap_response(roadmap)


@router.post("/{student_id}/status", response_model=RoadmapResponse, summary="Pause or complete the roadmap")
def update_status(
    student_id: str,
    request: RoadmapStatusRequest,
    service: ProgressionService = Depends(get_service),
) -> RoadmapResponse:
    try:
        roadmap = service.update_roadmap_status(student_id, request.status)
    except WaypointError as exc:
        raise http_error(exc) from exc
    return _roadmap_response(roadmap)


@router.post(
    "/{student_id}/remedial/{content_id}/complete",
    response_model=RoadmapResponse,
    summary="Mark a remedial item completed",
)
def complete_remedial_item(
    student_id: str,
    content_id: str,
    service: ProgressionService = Depends(get_service),
) -> RoadmapResponse:
    try:
        roadmap = service.mark_remedial_item_completed(student_id, content_id)
    except WaypointError as exc:
        raise http_error(exc) from exc
    return _roadmap_response(roadmap)


@router.post("/{student_id}/monitor", response_model=MonitorResponse, summary="Apply pace/struggle adjustments")
def monitor(
    student_id: str,
    service: ProgressionService = Depends(get_service),
) -> MonitorResponse:
    try:
        roadmap = service.monitor_and_adjust(student_id)
    except WaypointError as exc:
        raise http_error(exc) from exc
    if roadmap is None:
        logger.debug(f"No active roadmap to monitor for {student_id}")
        return MonitorResponse(has_roadmap=False)
    return MonitorResponse(has_roadmap=True, roadmap=_roadmap_response(roadmap))


@router.post(
    "/{student_id}/alternative-paths",
    response_model=list[AlternativePathResponse],
    summary="Other lessons covering struggling topics",
)
def alternative_paths(
    student_id: str,
    request: AlternativePathsRequest,
    service: ProgressionService = Depends(get_service),
) -> list[AlternativePathResponse]:
    paths = service.generate_alternative_paths(
        student_id, request.current_content_id, request.struggling_topics
    )
    return [AlternativePathResponse.model_validate(path.to_dict()) for path in paths]
