# projecthub/services/membership_service.py
from __future__ import annotations

import logging
from typing import List, Optional

from projecthub.errors import InvalidInput, MemberNotFound, OwnerProtected
from projecthub.models.project import ProjectMember
from projecthub.models.role import ASSIGNABLE_ROLES, Role
from projecthub.repositories.base import CollaborationRepository
from projecthub.services.identity import IdentityProvider, normalize_email

logger = logging.getLogger(__name__)


class MembershipService:
    """
    (project, user) -> role records.

    Removing a membership that does not exist is a no-op success, so two
    owners removing the same member concurrently both succeed.
    """

    def __init__(self, repository: CollaborationRepository, identity: IdentityProvider):
        self._repo = repository
        self._identity = identity

    async def get_role(self, project_id: str, user_id: str) -> Optional[Role]:
        row = await self._repo.fetch_membership(project_id, user_id)
        return Role(row["role"]) if row else None

    async def list_members(self, project_id: str, actor_id: str) -> List[ProjectMember]:
        rows = await self._repo.list_memberships(project_id, actor_id=actor_id)
        profiles = await self._identity.get_profiles(r["user_id"] for r in rows)
        members = [
            ProjectMember(
                id=r["id"],
                project_id=r["project_id"],
                user_id=r["user_id"],
                email=profiles[r["user_id"]].email if r["user_id"] in profiles else "Unknown",
                role=Role(r["role"]),
                joined_at=r["joined_at"],
            )
            for r in rows
        ]
        members.sort(key=lambda m: m.joined_at)
        return members

    async def add_member(self, project_id: str, email: str, role: Role, actor_id: str) -> ProjectMember:
        try:
            role = Role(role)
        except ValueError as e:
            raise InvalidInput(field="role", reason=f"unknown role {role!r}") from e
        if role not in ASSIGNABLE_ROLES:
            raise OwnerProtected(project_id=project_id)

        email = normalize_email(email)
        user_id = await self._identity.resolve_email(email)
        if not user_id:
            raise MemberNotFound(email=email)

        row = await self._repo.insert_membership(
            {"project_id": project_id, "user_id": user_id, "role": role.value, "email": email},
            actor_id=actor_id,
        )
        logger.info("member added project=%s user=%s role=%s by=%s", project_id, user_id, role.value, actor_id)
        return ProjectMember(
            id=row["id"],
            project_id=project_id,
            user_id=user_id,
            email=email,
            role=role,
            joined_at=row["joined_at"],
        )

    async def remove_member(self, project_id: str, user_id: str, actor_id: str) -> bool:
        """Delete a non-owner membership. Returns False when there was nothing to remove."""
        current = await self.get_role(project_id, user_id)
        if current is Role.OWNER:
            raise OwnerProtected(project_id=project_id)
        removed = await self._repo.delete_membership(project_id, user_id, actor_id=actor_id)
        if removed is None:
            logger.info("member already absent project=%s user=%s", project_id, user_id)
            return False
        logger.info("member removed project=%s user=%s by=%s", project_id, user_id, actor_id)
        return True
