"""
Progression API Router.

Endpoints:
- Access checks (AccessResult is always a 200 body, denied or not)
- Progress updates returning newly unlocked content
- Assessment attempt submission (failures adjust the active roadmap)
- Course progress overview
- Administrative block/unblock
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from loguru import logger
from pydantic import BaseModel, Field

from waypoint.api.deps import get_service, http_error
from waypoint.content.models import ContentKind
from waypoint.errors import WaypointError
from waypoint.progress.models import AnswerRecord, ProgressRecord, ProgressStatus, ProgressUpdate
from waypoint.service import ProgressionService

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class BlockedByResponse(BaseModel):
    kind: ContentKind
    id: str
    title: str


class PrerequisiteStatusResponse(BaseModel):
    id: str
    title: str
    completed: bool
    score: float | None = None
    required_score: float | None = None
    passed: bool | None = None
    assessment_id: str | None = None


class AccessResponse(BaseModel):
    """Response model for an access check."""

    can_access: bool
    reason: str | None = None
    blocked_by: BlockedByResponse | None = None
    prerequisite_statuses: list[PrerequisiteStatusResponse] = Field(default_factory=list)


class ProgressUpdateRequest(BaseModel):
    """Request model for reporting progress."""

    student_id: str = Field(..., description="Student identifier")
    content_id: str = Field(..., description="Course, lesson or assessment id")
    kind: ContentKind = Field(..., description="Content kind")
    status: ProgressStatus = Field(ProgressStatus.IN_PROGRESS, description="Reported status")
    completion_percentage: float | None = Field(None, ge=0, le=100)
    time_spent: int | None = Field(None, ge=0, description="Seconds spent in this interaction")
    score: float | None = Field(None, ge=0, le=100)
    mark_complete: bool = False


class UnlockedContentResponse(BaseModel):
    lessons: list[str]
    assessments: list[str]
    courses: list[str]


class AnswerRequest(BaseModel):
    question_id: str
    is_correct: bool
    points_earned: float = 0.0


class AttemptSubmitRequest(BaseModel):
    """Request model for submitting a graded attempt."""

    student_id: str
    answers: list[AnswerRequest] = Field(default_factory=list)
    score: float = Field(..., ge=0, le=100)
    passed: bool
    time_spent: int | None = Field(None, ge=0)


class ProgressRecordResponse(BaseModel):
    student_id: str
    content_id: str
    kind: ContentKind
    course_id: str | None
    status: ProgressStatus
    completion_percentage: float
    best_score: float | None
    time_spent: int
    attempts_count: int
    last_accessed: datetime | None


class AttemptSubmitResponse(BaseModel):
    attempt_id: str
    attempt_number: int
    status: ProgressStatus
    unlocked: UnlockedContentResponse
    roadmap_adjusted: bool
    roadmap_id: str | None = None


class AdminOverrideRequest(BaseModel):
    student_id: str
    content_id: str
    kind: ContentKind
    reason: str = ""


def _record_response(record: ProgressRecord) -> ProgressRecordResponse:
    return ProgressRecordResponse(
        student_id=record.student_id,
        content_id=record.content_id,
        kind=record.kind,
        course_id=record.course_id,
        status=record.status,
        completion_percentage=record.completion_percentage,
        best_score=record.best_score,
        time_spent=record.time_spent,
        attempts_count=record.attempts_count,
        last_accessed=record.last_accessed,
    )


# ========================================
# Endpoints
# ========================================


@router.get("/access", response_model=AccessResponse, summary="Check content access")
def check_access(
    student_id: str = Query(..., description="Student identifier"),
    content_id: str = Query(..., description="Content id"),
    kind: ContentKind = Query(..., description="Content kind"),
    service: ProgressionService = Depends(get_service),
) -> AccessResponse:
    try:
        result = service.check_access(student_id, content_id, kind)
    except WaypointError as exc:
        raise http_error(exc) from exc
    return AccessResponse.model_validate(result.to_dict())


@router.post("/progress", response_model=UnlockedContentResponse, summary="Report progress")
def update_progress(
    request: ProgressUpdateRequest,
    service: ProgressionService = Depends(get_service),
) -> UnlockedContentResponse:
    try:
        unlocked = service.update_progress(ProgressUpdate(**request.model_dump()))
    except WaypointError as exc:
        raise http_error(exc) from exc
    return UnlockedContentResponse(**unlocked.to_dict())


@router.post(
    "/assessments/{assessment_id}/attempts",
    response_model=AttemptSubmitResponse,
    summary="Submit a graded assessment attempt",
)
def submit_attempt(
    assessment_id: str,
    request: AttemptSubmitRequest,
    service: ProgressionService = Depends(get_service),
) -> AttemptSubmitResponse:
    logger.info(f"Attempt on {assessment_id} by {request.student_id}: {request.score} (passed={request.passed})")
    try:
        submission = service.submit_attempt(
            request.student_id,
            assessment_id,
            [AnswerRecord(**answer.model_dump()) for answer in request.answers],
            request.score,
            request.passed,
            time_spent=request.time_spent,
        )
    except WaypointError as exc:
        raise http_error(exc) from exc

    outcome = submission.outcome
    return AttemptSubmitResponse(
        attempt_id=outcome.attempt.id,
        attempt_number=outcome.attempt.attempt_number,
        status=outcome.record.status,
        unlocked=UnlockedContentResponse(**outcome.unlocked.to_dict()),
        roadmap_adjusted=submission.roadmap is not None,
        roadmap_id=submission.roadmap.id if submission.roadmap else None,
    )


@router.get("/courses/{course_id}/overview", summary="Course progress overview")
def course_overview(
    course_id: str,
    student_id: str = Query(..., description="Student identifier"),
    service: ProgressionService = Depends(get_service),
) -> dict[str, Any]:
    try:
        overview = service.get_course_progress_overview(student_id, course_id)
    except WaypointError as exc:
        raise http_error(exc) from exc
    return overview.to_dict()


@router.post("/block", response_model=ProgressRecordResponse, summary="Block content (admin)")
def block_content(
    request: AdminOverrideRequest,
    service: ProgressionService = Depends(get_service),
) -> ProgressRecordResponse:
    try:
        record = service.block_progress(request.student_id, request.content_id, request.kind, request.reason)
    except WaypointError as exc:
        raise http_error(exc) from exc
    return _record_response(record)


@router.post("/unblock", response_model=ProgressRecordResponse, summary="Unblock content (admin)")
def unblock_content(
    request: AdminOverrideRequest,
    service: ProgressionService = Depends(get_service),
) -> ProgressRecordResponse:
    try:
        record = service.unblock_progress(request.student_id, request.content_id, request.kind)
    except WaypointError as exc:
        raise http_error(exc) from exc
    return _record_response(record)


@router.get("/blocked", response_model=list[ProgressRecordResponse], summary="List blocked content")
def blocked_content(
    student_id: str = Query(..., description="Student identifier"),
    service: ProgressionService = Depends(get_service),
) -> list[ProgressRecordResponse]:
    return [_record_response(r) for r in service.controller.get_blocked_content(student_id)]
