from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from projecthub.core.policy import Operation, is_allowed
from projecthub.errors import NotAuthorized
from projecthub.models.role import Role

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

# columns callers may write through update_project
PROJECT_CONTENT_FIELDS = ("title", "goal", "target_date", "tasks_data", "gantt_data")


class CollaborationRepository(Protocol):
    """
    Row store for projects and memberships.

    Implementations enforce the (project_id, user_id) uniqueness constraint,
    cascade project deletes to memberships, and apply the row policy from
    ``projecthub.core.policy`` against ``actor_id`` inside each call.
    """

    async def create_project_with_owner(self, project: Row, owner: Row, *, actor_id: str) -> Row: ...

    async def fetch_project(self, project_id: str, *, actor_id: str) -> Optional[Row]: ...

    async def update_project(self, project_id: str, fields: Row, *, actor_id: str) -> Row: ...

    async def delete_project(self, project_id: str, *, actor_id: str) -> None: ...

    async def list_projects_for_user(self, user_id: str) -> List[Row]: ...

    async def fetch_membership(self, project_id: str, user_id: str) -> Optional[Row]: ...

    async def list_memberships(self, project_id: str, *, actor_id: str) -> List[Row]: ...

    async def insert_membership(self, membership: Row, *, actor_id: str) -> Row: ...

    async def delete_membership(self, project_id: str, user_id: str, *, actor_id: str) -> Optional[Row]: ...


def enforce_row_policy(actor_membership: Optional[Row], operation: Operation, project_id: str) -> None:
    role = Role(actor_membership["role"]) if actor_membership else None
    if not is_allowed(role, operation):
        logger.warning(
            "row policy denied %s on project=%s (role=%s)",
            operation.name, project_id, role.value if role else None,
        )
        raise NotAuthorized(action=operation.value, project_id=project_id)


def membership_key(project_id: str, user_id: str) -> str:
    return f"{project_id}__{user_id}"
