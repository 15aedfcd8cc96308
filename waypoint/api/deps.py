"""Shared API dependencies and error mapping."""

from __future__ import annotations

from fastapi import HTTPException, Request

from waypoint.errors import (
    AttemptNotAllowedError,
    AttemptNotFoundError,
    ContentNotFoundError,
    InvalidStateTransitionError,
    PersistenceConflictError,
    RoadmapNotFoundError,
    WaypointError,
)
from waypoint.service import ProgressionService

_STATUS_CODES: dict[type[WaypointError], int] = {
    ContentNotFoundError: 404,
    RoadmapNotFoundError: 404,
    AttemptNotFoundError: 404,
    InvalidStateTransitionError: 409,
    AttemptNotAllowedError: 409,
    PersistenceConflictError: 409,
}


def get_service(request: Request) -> ProgressionService:
    """FastAPI dependency: the service built at startup."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        service = ProgressionService.from_settings()
        request.app.state.service = service
    return service


def http_error(exc: WaypointError) -> HTTPException:
    """Map an engine error onto an HTTP status, keeping its structured body."""
    status_code = next(
        (code for error_type, code in _STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    return HTTPException(status_code=status_code, detail=exc.to_dict())
