from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

from taskboard.schemas.task import TaskResponse

class MemberRole(str, Enum):
    OWNER = "OWNER"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"

# Roles allowed to mutate tasks.
EDIT_ROLES = (MemberRole.OWNER, MemberRole.EDITOR)

class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    icon: Optional[str] = None

class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = None
    icon: Optional[str] = None

class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"

class InvitationAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"

class InvitationCreate(BaseModel):
    username: str = Field(..., min_length=1)
    role: MemberRole = MemberRole.EDITOR

class InvitationRespond(BaseModel):
    action: InvitationAction

class MemberRoleUpdate(BaseModel):
    role: MemberRole

class UserResponse(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None

    class Config:
        from_attributes = True

class MemberResponse(BaseModel):
    id: int
    user_id: int
    role: MemberRole
    joined_at: Optional[datetime]
    user: UserResponse

    class Config:
        from_attributes = True

class ProjectResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    icon: Optional[str]
    owner_id: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True

class ProjectDetailResponse(ProjectResponse):
    members: List[MemberResponse] = []
    tasks: List[TaskResponse] = []

class InvitationProject(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None

    class Config:
        from_attributes = True

class InvitationResponse(BaseModel):
    id: int
    project_id: int
    invited_user_id: int
    invited_by_id: Optional[int]
    role: MemberRole
    status: InvitationStatus
    created_at: Optional[datetime]
    project: InvitationProject
    invited_by: Optional[UserResponse] = None

    class Config:
        from_attributes = True
