from typing import List

from fastapi import APIRouter, Depends

from taskboard.dependencies import get_project_service
from taskboard.models.user import User
from taskboard.routers.auth import get_current_user
from taskboard.schemas.project import InvitationRespond, InvitationResponse
from taskboard.services.project_service import ProjectService

router = APIRouter(
    prefix="/invitations",
    tags=["invitations"],
    responses={404: {"description": "Not found"}},
)

@router.get("", response_model=List[InvitationResponse])
async def list_invitations(
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """Pending invitations addressed to the current user, newest first"""
    return await service.list_invitations(current_user.id)

@router.patch("/{invitation_id}", response_model=InvitationResponse)
async def respond_to_invitation(
    invitation_id: int,
    response_in: InvitationRespond,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return await service.respond_to_invitation(invitation_id, current_user.id, response_in.action)
