from typing import List

from fastapi import APIRouter, Depends, status

from taskboard.dependencies import get_task_service
from taskboard.models.user import User
from taskboard.routers.auth import get_current_user
from taskboard.schemas.task import TaskCreate, TaskResponse, TaskUpdate
from taskboard.services.task_service import TaskService

router = APIRouter(
    prefix="/projects/{project_id}/tasks",
    tags=["tasks"],
    responses={404: {"description": "Not found"}},
)

@router.get("", response_model=List[TaskResponse])
async def list_tasks(
    project_id: int,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Tasks of a project, by column then position"""
    return await service.list_tasks(project_id, current_user.id)

@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    project_id: int,
    task_in: TaskCreate,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.create_task(project_id, current_user.id, task_in)

@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    project_id: int,
    task_id: int,
    task_in: TaskUpdate,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Edit fields and/or move a task to a new column and position"""
    return await service.update_task(project_id, task_id, current_user.id, task_in)

@router.delete("/{task_id}")
async def delete_task(
    project_id: int,
    task_id: int,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    await service.delete_task(project_id, task_id, current_user.id)
    return {"message": "Task deleted successfully"}
