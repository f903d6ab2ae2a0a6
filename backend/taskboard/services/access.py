from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.exceptions import Forbidden
from taskboard.models.project import ProjectMember
from taskboard.schemas.project import EDIT_ROLES, MemberRole


async def get_member_role(db: AsyncSession, project_id: int, user_id: int) -> Optional[MemberRole]:
    result = await db.execute(
        select(ProjectMember.role).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    )
    role = result.scalar_one_or_none()
    return MemberRole(role) if role else None


async def is_owner_or_editor(db: AsyncSession, project_id: int, user_id: int) -> bool:
    return await get_member_role(db, project_id, user_id) in EDIT_ROLES


async def ensure_member(db: AsyncSession, project_id: int, user_id: int) -> MemberRole:
    role = await get_member_role(db, project_id, user_id)
    if role is None:
        raise Forbidden("You don't have access to this project")
    return role


async def ensure_can_edit(db: AsyncSession, project_id: int, user_id: int) -> MemberRole:
    role = await get_member_role(db, project_id, user_id)
    if role not in EDIT_ROLES:
        raise Forbidden("Only project owners and editors can change tasks")
    return role


async def ensure_owner(db: AsyncSession, project_id: int, user_id: int) -> MemberRole:
    role = await get_member_role(db, project_id, user_id)
    if role != MemberRole.OWNER:
        raise Forbidden("Only the project owner can do this")
    return role
