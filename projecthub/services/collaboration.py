# projecthub/services/collaboration.py
"""
Project Collaboration API: the entry point used by routes and clients.

Composes the identity provider, the row store and the change channel, all
passed in at construction. Every operation resolves the current user first,
authorizes against the membership table, persists, and then publishes.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from projecthub.core.policy import Operation
from projecthub.errors import NotAuthenticated, NotAuthorized, OwnerProtected
from projecthub.models.auth import UserIdentity
from projecthub.models.project import ChangeEvent, Project, ProjectMember
from projecthub.models.role import Role
from projecthub.repositories.base import CollaborationRepository
from projecthub.services.access_control import AccessControlService
from projecthub.services.change_feed import ChangeNotificationChannel, Handler, Subscription
from projecthub.services.identity import IdentityProvider
from projecthub.services.membership_service import MembershipService
from projecthub.services.project_service import ProjectService

logger = logging.getLogger(__name__)


class ProjectCollaborationAPI:
    def __init__(
        self,
        identity: IdentityProvider,
        repository: CollaborationRepository,
        channel: ChangeNotificationChannel,
    ):
        self.identity = identity
        self.channel = channel
        self.access = AccessControlService(repository)
        self.projects = ProjectService(repository)
        self.members = MembershipService(repository, identity)

    async def _caller(self) -> UserIdentity:
        user = await self.identity.current_user()
        if user is None:
            raise NotAuthenticated()
        return user

    async def _publish(self, kind: str, project_id: str, actor_id: str,
                       project: Optional[Project] = None) -> None:
        await self.channel.publish(ChangeEvent(
            kind=kind,
            project_id=project_id,
            version=project.version if project else None,
            actor_id=actor_id,
            project=project,
            occurred_at=datetime.now(timezone.utc),
        ))

    # ===== projects =====
    async def list_projects(self, caller_id: Optional[str] = None) -> List[Project]:
        user = await self._caller()
        if caller_id is not None and caller_id != user.uid:
            raise NotAuthorized(action="list", project_id="*")
        return await self.projects.list(user.uid)

    async def create_project(
        self,
        title: str,
        goal: str,
        target_date: str,
        tasks: Iterable[Any] = (),
        gantt_data: Optional[Iterable[Any]] = None,
    ) -> Project:
        user = await self._caller()
        return await self.projects.create(user.uid, title, goal, target_date, tasks, gantt_data)

    async def get_project(self, project_id: str) -> Project:
        user = await self._caller()
        await self.access.require(project_id, user.uid, Operation.VIEW_PROJECT)
        return await self.projects.get(project_id, user.uid)

    async def update_project(self, project_id: str, changes: Mapping[str, Any]) -> Project:
        user = await self._caller()
        await self.access.require(project_id, user.uid, Operation.UPDATE_PROJECT)
        project = await self.projects.update(project_id, changes, user.uid)
        await self._publish("project_updated", project_id, user.uid, project)
        return project

    async def delete_project(self, project_id: str) -> None:
        user = await self._caller()
        await self.access.require(project_id, user.uid, Operation.DELETE_PROJECT)
        await self.projects.delete(project_id, user.uid)
        await self._publish("project_deleted", project_id, user.uid)

    # ===== members =====
    async def list_members(self, project_id: str) -> List[ProjectMember]:
        user = await self._caller()
        await self.access.require(project_id, user.uid, Operation.VIEW_MEMBERS)
        return await self.members.list_members(project_id, user.uid)

    async def add_member(self, project_id: str, email: str, role: Role = Role.EDITOR) -> ProjectMember:
        user = await self._caller()
        await self.access.require(project_id, user.uid, Operation.ADD_MEMBER)
        member = await self.members.add_member(project_id, email, role, user.uid)
        await self._publish("members_changed", project_id, user.uid)
        return member

    async def remove_member(self, project_id: str, user_id: str) -> bool:
        user = await self._caller()
        # any member asking to remove the owner is told the owner is protected
        await self.access.require(project_id, user.uid, Operation.VIEW_MEMBERS)
        if await self.members.get_role(project_id, user_id) is Role.OWNER:
            raise OwnerProtected(project_id=project_id)
        await self.access.require(project_id, user.uid, Operation.REMOVE_MEMBER)
        removed = await self.members.remove_member(project_id, user_id, user.uid)
        if removed:
            await self._publish("members_changed", project_id, user.uid)
        return removed

    async def get_effective_role(self, project_id: str, caller_id: Optional[str] = None) -> Optional[Role]:
        user = await self._caller()
        if caller_id is None or caller_id == user.uid:
            return await self.access.effective_role(project_id, user.uid)
        await self.access.require(project_id, user.uid, Operation.VIEW_MEMBERS)
        return await self.access.effective_role(project_id, caller_id)

    # ===== realtime =====
    async def subscribe_to_project_changes(self, project_id: str, handler: Handler) -> Subscription:
        user = await self._caller()
        await self.access.require(project_id, user.uid, Operation.SUBSCRIBE)
        return self.channel.subscribe(project_id, handler)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.channel.unsubscribe(subscription)
