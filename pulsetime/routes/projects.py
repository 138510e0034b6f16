from typing import Optional

from fastapi import APIRouter, Depends, Request

from pulsetime.auth import Capability, Identity, current_identity
from pulsetime.models import ApiResponse, ProjectCreate, ProjectStatus, ProjectUpdate
from pulsetime.services.container import Services, get_services
from pulsetime.utils.http import request_id_of

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("")
async def create_project(
    request: Request,
    body: ProjectCreate,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    project = await services.projects.create(identity.user_id, body)
    return ApiResponse.success(data=project.model_dump(mode="json"), request_id=request_id_of(request))


@router.get("")
async def list_projects(
    request: Request,
    status: Optional[ProjectStatus] = None,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    projects = await services.projects.list(identity.user_id, status)
    return ApiResponse.success(
        data=[p.model_dump(mode="json") for p in projects],
        request_id=request_id_of(request),
    )


@router.get("/{project_id}")
async def get_project(
    request: Request,
    project_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    project = await services.projects.get(identity.user_id, project_id)
    return ApiResponse.success(data=project.model_dump(mode="json"), request_id=request_id_of(request))


@router.patch("/{project_id}")
async def update_project(
    request: Request,
    project_id: str,
    body: ProjectUpdate,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """Partial update. Overwriting actual_minutes is an admin-only adjustment."""
    if body.actual_minutes is not None:
        identity.require(Capability.ADJUST_TOTALS)
    project = await services.projects.update(identity.user_id, project_id, body)
    return ApiResponse.success(data=project.model_dump(mode="json"), request_id=request_id_of(request))


@router.delete("/{project_id}")
async def delete_project(
    request: Request,
    project_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """Delete a project and its pulse history. Blocked while a pulse on it is open."""
    removed = await services.projects.delete(identity.user_id, project_id)
    return ApiResponse.success(
        data={"deleted": True, "id": project_id, "sessionsRemoved": removed},
        request_id=request_id_of(request),
    )


@router.get("/{project_id}/stats")
async def project_stats(
    request: Request,
    project_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    stats = await services.projects.stats(identity.user_id, project_id)
    stats["project"] = stats["project"].model_dump(mode="json")
    return ApiResponse.success(data=stats, request_id=request_id_of(request))


@router.post("/{project_id}/recompute")
async def recompute_project_total(
    request: Request,
    project_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """Admin repair: re-derive tracked time from completed pulses."""
    identity.require(Capability.RECOMPUTE_TOTALS)
    project = await services.projects.recompute_total(project_id)
    return ApiResponse.success(data=project.model_dump(mode="json"), request_id=request_id_of(request))
