from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

    @property
    def rank(self) -> int:
        return COLUMN_ORDER.index(self)

# Left-to-right column order on the board.
COLUMN_ORDER = (TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED)

class TaskCreate(BaseModel):
    title: str = Field(..., max_length=200)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    assigned_to_id: Optional[int] = None
    position: Optional[int] = Field(None, ge=0)
    labels: Optional[List[str]] = None

class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    position: Optional[int] = Field(None, ge=0)
    assigned_to_id: Optional[int] = None
    labels: Optional[List[str]] = None

class AssigneeResponse(BaseModel):
    id: int
    username: str

    class Config:
        from_attributes = True

class TaskResponse(BaseModel):
    id: int
    project_id: int
    title: str
    description: Optional[str]
    status: TaskStatus
    position: int
    assigned_to_id: Optional[int]
    labels: List[str] = []
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    # Related data
    assigned_to: Optional[AssigneeResponse] = None

    class Config:
        from_attributes = True
