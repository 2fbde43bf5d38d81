from typing import List

from fastapi import APIRouter, Depends, status

from marketplace.core.deps import get_application_service, get_current_user, require_role
from marketplace.models.schemas import Application, ApplicationCreate, ApplicationStats, Caller, Role
from marketplace.services.applications import ApplicationService

router = APIRouter(prefix="/applications", tags=["Applications"])


@router.post("/", response_model=Application, status_code=status.HTTP_201_CREATED)
async def submit_application(
    application_in: ApplicationCreate,
    caller: Caller = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    return service.submit_application(caller, application_in)


@router.get("/", response_model=List[Application])
async def admin_list_applications(
    caller: Caller = Depends(require_role(Role.ADMIN)),
    service: ApplicationService = Depends(get_application_service),
):
    return service.list_all(caller)


@router.get("/stats", response_model=ApplicationStats)
async def admin_application_stats(
    caller: Caller = Depends(require_role(Role.ADMIN)),
    service: ApplicationService = Depends(get_application_service),
):
    return service.stats(caller)


@router.get("/mine", response_model=List[Application])
async def list_my_applications(
    caller: Caller = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    return service.list_mine(caller)


@router.get("/project/{project_id}", response_model=List[Application])
async def list_applications_for_project(
    project_id: str,
    caller: Caller = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    return service.list_for_project(caller, project_id)


@router.put("/{application_id}/accept", response_model=Application)
async def accept_application(
    application_id: str,
    caller: Caller = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    return service.accept_application(caller, application_id)


@router.put("/{application_id}/reject", response_model=Application)
async def reject_application(
    application_id: str,
    caller: Caller = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    return service.reject_application(caller, application_id)
