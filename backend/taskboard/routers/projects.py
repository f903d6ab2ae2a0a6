from typing import List

from fastapi import APIRouter, Depends, status

from taskboard.dependencies import get_project_service, get_task_service
from taskboard.models.user import User
from taskboard.routers.auth import get_current_user
from taskboard.schemas.project import (
    InvitationCreate,
    InvitationResponse,
    MemberResponse,
    MemberRoleUpdate,
    ProjectCreate,
    ProjectDetailResponse,
    ProjectResponse,
    ProjectUpdate,
)
from taskboard.schemas.task import TaskResponse
from taskboard.services.project_service import ProjectService
from taskboard.services.task_service import TaskService

router = APIRouter(
    prefix="/projects",
    tags=["projects"],
    responses={404: {"description": "Not found"}},
)

async def _detail(project, tasks: TaskService) -> ProjectDetailResponse:
    detail = ProjectDetailResponse.model_validate(project)
    detail.tasks = [TaskResponse.model_validate(task) for task in await tasks.list_tasks(project.id)]
    return detail

@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return await service.list_projects(current_user.id)

@router.post("", response_model=ProjectDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_in: ProjectCreate,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
    tasks: TaskService = Depends(get_task_service),
):
    project = await service.create_project(current_user.id, project_in)
    return await _detail(project, tasks)

@router.get("/{project_id}", response_model=ProjectDetailResponse)
async def get_project(
    project_id: int,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
    tasks: TaskService = Depends(get_task_service),
):
    """Project with its members and its ordered tasks"""
    project = await service.get_project(project_id, current_user.id)
    return await _detail(project, tasks)

@router.patch("/{project_id}", response_model=ProjectDetailResponse)
async def update_project(
    project_id: int,
    project_in: ProjectUpdate,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
    tasks: TaskService = Depends(get_task_service),
):
    project = await service.update_project(project_id, current_user.id, project_in)
    return await _detail(project, tasks)

@router.delete("/{project_id}")
async def delete_project(
    project_id: int,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    await service.delete_project(project_id, current_user.id)
    return {"message": "Project deleted successfully"}

@router.post("/{project_id}/invitations", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
async def invite_member(
    project_id: int,
    invitation_in: InvitationCreate,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """Invite a user by username; membership starts when they accept"""
    return await service.invite_member(project_id, current_user.id, invitation_in)

@router.patch("/{project_id}/members/{user_id}", response_model=MemberResponse)
async def change_member_role(
    project_id: int,
    user_id: int,
    role_in: MemberRoleUpdate,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return await service.change_member_role(project_id, current_user.id, user_id, role_in.role)

@router.delete("/{project_id}/members/{user_id}")
async def remove_member(
    project_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """Remove a member (owner) or leave the project (self)"""
    await service.remove_member(project_id, current_user.id, user_id)
    return {"message": "Member removed successfully"}
