# projecthub/services/access_control.py
from __future__ import annotations

import logging
from typing import Optional

from projecthub.core.policy import Operation, is_allowed
from projecthub.errors import NotAuthorized
from projecthub.models.role import Role
from projecthub.repositories.base import CollaborationRepository

logger = logging.getLogger(__name__)


class AccessControlService:
    """
    Resolves a caller's role on a project and enforces the operation table.

    A caller without a membership row has no role at all; there is no
    fallback to a default role.
    """

    def __init__(self, repository: CollaborationRepository):
        self._repo = repository

    async def effective_role(self, project_id: str, caller_id: str) -> Optional[Role]:
        row = await self._repo.fetch_membership(project_id, caller_id)
        return Role(row["role"]) if row else None

    async def require(self, project_id: str, caller_id: str, operation: Operation) -> Role:
        """Return the caller's role, or raise ``NotAuthorized`` if it does not permit ``operation``."""
        role = await self.effective_role(project_id, caller_id)
        if not is_allowed(role, operation):
            logger.warning(
                "denied %s on project=%s for user=%s (role=%s)",
                operation.name, project_id, caller_id, role.value if role else None,
            )
            raise NotAuthorized(action=operation.value, project_id=project_id)
        return role

    @staticmethod
    def can(role: Optional[Role], operation: Operation) -> bool:
        return is_allowed(role, operation)
