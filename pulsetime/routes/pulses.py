from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from pulsetime.auth import Capability, Identity, current_identity
from pulsetime.config import settings
from pulsetime.models import (
    ApiResponse,
    BreakRequest,
    PulseStatus,
    SessionFilter,
    SessionUpdate,
    StartSessionRequest,
    StopSessionRequest,
)
from pulsetime.services.container import Services, get_services
from pulsetime.utils.http import request_id_of

router = APIRouter(prefix="/pulses", tags=["pulses"])


def _tracker(identity: Identity = Depends(current_identity)) -> Identity:
    identity.require(Capability.TRACK_TIME)
    return identity


@router.post("/start")
async def start_session(
    request: Request,
    body: StartSessionRequest,
    identity: Identity = Depends(_tracker),
    services: Services = Depends(get_services),
):
    """Start a pulse on one of the caller's projects."""
    pulse = await services.sessions.start(
        identity.user_id,
        body.project_id,
        notes=body.notes,
        tags=body.tags,
        pulse_type=body.type,
        billable=body.billable,
    )
    return ApiResponse.success(data=pulse.model_dump(mode="json"), request_id=request_id_of(request))


@router.get("/active")
async def get_active_session(
    request: Request,
    identity: Identity = Depends(_tracker),
    services: Services = Depends(get_services),
):
    """Current active or paused pulse, or null."""
    pulse = await services.sessions.get_active(identity.user_id)
    data = pulse.model_dump(mode="json") if pulse else None
    return ApiResponse.success(data=data, request_id=request_id_of(request))


@router.get("")
async def list_sessions(
    request: Request,
    project_id: Optional[str] = None,
    status: Optional[PulseStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    identity: Identity = Depends(_tracker),
    services: Services = Depends(get_services),
):
    flt = SessionFilter(
        project_id=project_id, status=status, start_date=start_date, end_date=end_date
    )
    result = await services.sessions.list(identity.user_id, flt, page=page, limit=limit)
    return ApiResponse.success(data=result.model_dump(mode="json"), request_id=request_id_of(request))


@router.get("/{session_id}")
async def get_session(
    request: Request,
    session_id: str,
    identity: Identity = Depends(_tracker),
    services: Services = Depends(get_services),
):
    pulse = await services.sessions.get(identity.user_id, session_id)
    return ApiResponse.success(data=pulse.model_dump(mode="json"), request_id=request_id_of(request))


@router.patch("/{session_id}")
async def update_session(
    request: Request,
    session_id: str,
    body: SessionUpdate,
    identity: Identity = Depends(_tracker),
    services: Services = Depends(get_services),
):
    """Edit notes/tags of a running or paused pulse."""
    pulse = await services.sessions.update(identity.user_id, session_id, body)
    return ApiResponse.success(data=pulse.model_dump(mode="json"), request_id=request_id_of(request))


@router.delete("/{session_id}")
async def delete_session(
    request: Request,
    session_id: str,
    identity: Identity = Depends(_tracker),
    services: Services = Depends(get_services),
):
    await services.sessions.delete(identity.user_id, session_id)
    return ApiResponse.success(data={"deleted": True, "id": session_id}, request_id=request_id_of(request))


@router.post("/{session_id}/pause")
async def pause_session(
    request: Request,
    session_id: str,
    identity: Identity = Depends(_tracker),
    services: Services = Depends(get_services),
):
    pulse = await services.sessions.pause(identity.user_id, session_id)
    return ApiResponse.success(data=pulse.model_dump(mode="json"), request_id=request_id_of(request))


@router.post("/{session_id}/resume")
async def resume_session(
    request: Request,
    session_id: str,
    identity: Identity = Depends(_tracker),
    services: Services = Depends(get_services),
):
    pulse = await services.sessions.resume(identity.user_id, session_id)
    return ApiResponse.success(data=pulse.model_dump(mode="json"), request_id=request_id_of(request))


@router.post("/{session_id}/stop")
async def stop_session(
    request: Request,
    session_id: str,
    body: Optional[StopSessionRequest] = None,
    identity: Identity = Depends(_tracker),
    services: Services = Depends(get_services),
):
    """Stop a pulse; a paused pulse is resumed and stopped in one step."""
    notes = body.notes if body else None
    pulse = await services.sessions.stop(identity.user_id, session_id, notes=notes)
    return ApiResponse.success(data=pulse.model_dump(mode="json"), request_id=request_id_of(request))


@router.post("/{session_id}/breaks")
async def add_break(
    request: Request,
    session_id: str,
    body: BreakRequest,
    identity: Identity = Depends(_tracker),
    services: Services = Depends(get_services),
):
    """Record a manual break without suspending the session clock."""
    pulse = await services.sessions.add_break(
        identity.user_id, session_id, body.reason, body.duration
    )
    return ApiResponse.success(data=pulse.model_dump(mode="json"), request_id=request_id_of(request))
