from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status

from marketplace.core.deps import get_current_user, get_project_service, require_role
from marketplace.models.schemas import (
    Caller,
    Project,
    ProjectCreate,
    ProjectPatch,
    ProjectStats,
    Role,
    WorkSubmissionCreate,
)
from marketplace.services.projects import ProjectService

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.post("/", response_model=Project, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_in: ProjectCreate,
    caller: Caller = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return service.create_project(caller, project_in)


@router.get("/", response_model=List[Project])
async def list_projects(
    skills: Optional[str] = None,
    status: Optional[str] = None,
    caller: Caller = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return service.list_projects(skills=skills, status=status)


@router.get("/client/mine", response_model=List[Project])
async def list_my_client_projects(
    caller: Caller = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return service.list_client_projects(caller)


@router.get("/freelancer/mine", response_model=List[Project])
async def list_my_freelancer_projects(
    caller: Caller = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return service.list_freelancer_projects(caller)


# --- admin ---

@router.get("/admin/all", response_model=List[Project])
async def admin_list_projects(
    caller: Caller = Depends(require_role(Role.ADMIN)),
    service: ProjectService = Depends(get_project_service),
):
    return service.list_all(caller)


@router.get("/admin/stats", response_model=ProjectStats)
async def admin_project_stats(
    caller: Caller = Depends(require_role(Role.ADMIN)),
    service: ProjectService = Depends(get_project_service),
):
    return service.stats(caller)


@router.put("/admin/{project_id}", response_model=Project)
async def admin_update_project(
    project_id: str,
    patch: ProjectPatch,
    caller: Caller = Depends(require_role(Role.ADMIN)),
    service: ProjectService = Depends(get_project_service),
):
    return service.edit_project(caller, project_id, patch)


@router.delete("/admin/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_project(
    project_id: str,
    caller: Caller = Depends(require_role(Role.ADMIN)),
    service: ProjectService = Depends(get_project_service),
):
    service.delete_project(caller, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- single project ---

@router.get("/{project_id}", response_model=Project)
async def get_project_details(
    project_id: str,
    caller: Caller = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return service.get_project(project_id)


@router.put("/{project_id}", response_model=Project)
async def update_project(
    project_id: str,
    patch: ProjectPatch,
    caller: Caller = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return service.edit_project(caller, project_id, patch)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    caller: Caller = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    service.delete_project(caller, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{project_id}/submit", response_model=Project)
async def submit_work(
    project_id: str,
    submission_in: WorkSubmissionCreate,
    caller: Caller = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return service.submit_work(caller, project_id, submission_in.link, submission_in.note)


@router.put("/{project_id}/optout", response_model=Project)
async def opt_out_of_project(
    project_id: str,
    caller: Caller = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return service.opt_out(caller, project_id)
