"""Project aggregate and membership management.

Only what the board needs: the partition key for task ordering, the roles
behind permission checks, and the events other viewers refetch on.
"""

import logging
from typing import List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskboard.core.broadcast import (
    INVITATION_CHANGED,
    MEMBER_CHANGED,
    PROJECT_DELETED,
    PROJECT_UPDATED,
    Broadcaster,
    invitations_topic,
    members_topic,
    project_topic,
)
from taskboard.core.exceptions import Forbidden, InvalidInput, NotFound
from taskboard.models.project import Project, ProjectInvitation, ProjectMember
from taskboard.models.task import Task
from taskboard.models.user import User
from taskboard.schemas.project import (
    InvitationAction,
    InvitationCreate,
    InvitationStatus,
    MemberRole,
    ProjectCreate,
    ProjectUpdate,
)
from taskboard.services.access import ensure_can_edit, ensure_member, ensure_owner

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, db: AsyncSession, broadcaster: Broadcaster):
        self.db = db
        self.broadcaster = broadcaster

    async def create_project(self, acting_user_id: int, data: ProjectCreate) -> Project:
        project = Project(
            name=data.name.strip(),
            description=(data.description or "").strip() or None,
            icon=data.icon,
            owner_id=acting_user_id,
        )
        self.db.add(project)
        await self.db.flush()
        self.db.add(ProjectMember(project_id=project.id, user_id=acting_user_id, role=MemberRole.OWNER.value))
        await self.db.commit()
        logger.info("Project %s created by user %s", project.id, acting_user_id)
        return await self.get_project(project.id, acting_user_id)

    async def list_projects(self, acting_user_id: int) -> List[Project]:
        result = await self.db.execute(
            select(Project)
            .join(ProjectMember, ProjectMember.project_id == Project.id)
            .where(ProjectMember.user_id == acting_user_id)
            .order_by(Project.updated_at.desc(), Project.id.desc())
        )
        return list(result.scalars().all())

    async def get_project(self, project_id: int, acting_user_id: int) -> Project:
        await ensure_member(self.db, project_id, acting_user_id)
        result = await self.db.execute(
            select(Project)
            .options(
                selectinload(Project.members).selectinload(ProjectMember.user),
                selectinload(Project.tasks).selectinload(Task.assigned_to),
            )
            .where(Project.id == project_id)
            .execution_options(populate_existing=True)
        )
        project = result.scalar_one_or_none()
        if project is None:
            raise NotFound("Project not found")
        return project

    async def update_project(self, project_id: int, acting_user_id: int, data: ProjectUpdate) -> Project:
        await ensure_can_edit(self.db, project_id, acting_user_id)
        project = await self.get_project(project_id, acting_user_id)
        payload = data.model_dump(exclude_unset=True)
        if payload.get("name") is not None:
            project.name = payload["name"].strip()
        if "description" in payload:
            project.description = (payload["description"] or "").strip() or None
        if "icon" in payload:
            project.icon = payload["icon"]
        await self.db.commit()

        await self.broadcaster.publish(project_topic(project_id), PROJECT_UPDATED, {"projectId": project_id})
        return await self.get_project(project_id, acting_user_id)

    async def delete_project(self, project_id: int, acting_user_id: int) -> None:
        await ensure_owner(self.db, project_id, acting_user_id)
        project = await self.db.get(Project, project_id)
        if project is None:
            raise NotFound("Project not found")
        await self.db.delete(project)
        await self.db.commit()
        logger.info("Project %s deleted by user %s", project_id, acting_user_id)
        await self.broadcaster.publish(project_topic(project_id), PROJECT_DELETED, {"projectId": project_id})

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def _get_member(self, project_id: int, user_id: int) -> ProjectMember:
        result = await self.db.execute(
            select(ProjectMember)
            .options(selectinload(ProjectMember.user))
            .where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
        )
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFound("Member not found")
        return member

    async def change_member_role(self, project_id: int, acting_user_id: int, user_id: int, role: MemberRole) -> ProjectMember:
        await ensure_owner(self.db, project_id, acting_user_id)
        if role == MemberRole.OWNER:
            raise InvalidInput("A project has exactly one owner")
        member = await self._get_member(project_id, user_id)
        if member.role == MemberRole.OWNER.value:
            raise InvalidInput("The owner's role cannot be changed")

        member.role = role.value
        await self.db.commit()
        await self.broadcaster.publish(
            members_topic(project_id), MEMBER_CHANGED,
            {"projectId": project_id, "userId": user_id, "action": "role_changed"},
        )
        return await self._get_member(project_id, user_id)

    async def remove_member(self, project_id: int, acting_user_id: int, user_id: int) -> None:
        """Owner removes a member, or a member leaves. Their tasks are unassigned."""
        if user_id != acting_user_id:
            await ensure_owner(self.db, project_id, acting_user_id)
        member = await self._get_member(project_id, user_id)
        if member.role == MemberRole.OWNER.value:
            raise InvalidInput("The project owner cannot be removed")

        await self.db.execute(
            update(Task)
            .where(Task.project_id == project_id, Task.assigned_to_id == user_id)
            .values(assigned_to_id=None)
        )
        await self.db.delete(member)
        await self.db.commit()
        logger.info("User %s left project %s", user_id, project_id)

        await self.broadcaster.publish(
            members_topic(project_id), MEMBER_CHANGED,
            {"projectId": project_id, "userId": user_id, "action": "left"},
        )

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    async def _get_invitation(self, invitation_id: int) -> ProjectInvitation:
        result = await self.db.execute(
            select(ProjectInvitation)
            .options(selectinload(ProjectInvitation.project), selectinload(ProjectInvitation.invited_by))
            .where(ProjectInvitation.id == invitation_id)
            .execution_options(populate_existing=True)
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise NotFound("Invitation not found")
        return invitation

    async def invite_member(self, project_id: int, acting_user_id: int, data: InvitationCreate) -> ProjectInvitation:
        """OWNER/EDITOR invites a user by username; they join once they accept."""
        await ensure_can_edit(self.db, project_id, acting_user_id)
        if data.role == MemberRole.OWNER:
            raise InvalidInput("A project has exactly one owner")

        result = await self.db.execute(select(User).where(User.username == data.username.strip()))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFound("User not found")

        existing = await self.db.execute(
            select(ProjectMember.id).where(
                ProjectMember.project_id == project_id, ProjectMember.user_id == user.id
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise InvalidInput("User is already a member of this project")

        result = await self.db.execute(
            select(ProjectInvitation).where(
                ProjectInvitation.project_id == project_id, ProjectInvitation.invited_user_id == user.id
            )
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            invitation = ProjectInvitation(project_id=project_id, invited_user_id=user.id)
            self.db.add(invitation)
        elif invitation.status == InvitationStatus.PENDING.value:
            raise InvalidInput("Invitation already sent to this user")
        invitation.invited_by_id = acting_user_id
        invitation.role = data.role.value
        invitation.status = InvitationStatus.PENDING.value
        await self.db.commit()
        logger.info("User %s invited user %s to project %s", acting_user_id, user.id, project_id)

        await self.broadcaster.publish(
            invitations_topic(user.id), INVITATION_CHANGED,
            {"invitationId": invitation.id, "projectId": project_id, "userId": user.id, "action": "received"},
        )
        return await self._get_invitation(invitation.id)

    async def list_invitations(self, acting_user_id: int) -> List[ProjectInvitation]:
        result = await self.db.execute(
            select(ProjectInvitation)
            .options(selectinload(ProjectInvitation.project), selectinload(ProjectInvitation.invited_by))
            .where(
                ProjectInvitation.invited_user_id == acting_user_id,
                ProjectInvitation.status == InvitationStatus.PENDING.value,
            )
            .order_by(ProjectInvitation.updated_at.desc(), ProjectInvitation.id.desc())
        )
        return list(result.scalars().all())

    async def respond_to_invitation(
        self, invitation_id: int, acting_user_id: int, action: InvitationAction
    ) -> ProjectInvitation:
        invitation = await self._get_invitation(invitation_id)
        if invitation.invited_user_id != acting_user_id:
            raise Forbidden("This invitation belongs to another user")
        if invitation.status != InvitationStatus.PENDING.value:
            raise InvalidInput("Invitation already processed")

        project_id = invitation.project_id
        if action == InvitationAction.ACCEPT:
            invitation.status = InvitationStatus.ACCEPTED.value
            self.db.add(ProjectMember(project_id=project_id, user_id=acting_user_id, role=invitation.role))
        else:
            invitation.status = InvitationStatus.REJECTED.value
        await self.db.commit()
        logger.info("User %s %s invitation %s", acting_user_id, invitation.status.lower(), invitation_id)

        if action == InvitationAction.ACCEPT:
            await self.broadcaster.publish(
                members_topic(project_id), MEMBER_CHANGED,
                {"projectId": project_id, "userId": acting_user_id, "action": "joined"},
            )
        await self.broadcaster.publish(
            invitations_topic(acting_user_id), INVITATION_CHANGED,
            {
                "invitationId": invitation_id,
                "projectId": project_id,
                "userId": acting_user_id,
                "action": invitation.status.lower(),
            },
        )
        return await self._get_invitation(invitation_id)
