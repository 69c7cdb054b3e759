from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from projecthub.core.policy import Operation
from projecthub.errors import DuplicateMember, NotAuthorized, NotFound, OwnerProtected, StoreUnavailable
from projecthub.models.role import Role
from projecthub.repositories.base import PROJECT_CONTENT_FIELDS, Row, enforce_row_policy, membership_key


class MemoryRepository:
    """
    In-process implementation of ``CollaborationRepository``.

    Each method completes without awaiting anything, so on a single event loop
    every call is atomic with respect to other coroutines. Rows are deep-copied
    on the way in and out.
    """

    def __init__(self):
        self._projects: Dict[str, Row] = {}
        self._members: Dict[Tuple[str, str], Row] = {}
        self._last_ts: Optional[datetime] = None

    # ---------- helpers ----------
    def now(self) -> datetime:
        ts = datetime.now(timezone.utc)
        if self._last_ts is not None and ts <= self._last_ts:
            ts = self._last_ts + timedelta(microseconds=1)
        self._last_ts = ts
        return ts

    def _membership(self, project_id: str, user_id: str) -> Optional[Row]:
        return self._members.get((project_id, user_id))

    # ---------- projects ----------
    async def create_project_with_owner(self, project: Row, owner: Row, *, actor_id: str) -> Row:
        if project["user_id"] != actor_id or owner["user_id"] != actor_id or owner["role"] != Role.OWNER.value:
            raise NotAuthorized(action="create", project_id=project["id"])
        key = (owner["project_id"], owner["user_id"])
        if project["id"] in self._projects or key in self._members:
            raise StoreUnavailable(operation="create_project_with_owner")
        ts = self.now()
        project = {**copy.deepcopy(project), "created_at": ts, "updated_at": ts, "version": 1}
        self._projects[project["id"]] = project
        self._members[key] = {**copy.deepcopy(owner), "id": membership_key(*key), "joined_at": ts}
        return copy.deepcopy(project)

    async def fetch_project(self, project_id: str, *, actor_id: str) -> Optional[Row]:
        enforce_row_policy(self._membership(project_id, actor_id), Operation.VIEW_PROJECT, project_id)
        row = self._projects.get(project_id)
        return copy.deepcopy(row) if row else None

    async def update_project(self, project_id: str, fields: Row, *, actor_id: str) -> Row:
        enforce_row_policy(self._membership(project_id, actor_id), Operation.UPDATE_PROJECT, project_id)
        row = self._projects.get(project_id)
        if row is None:
            raise NotFound(resource="project", id=project_id)
        for key in PROJECT_CONTENT_FIELDS:
            if key in fields:
                row[key] = copy.deepcopy(fields[key])
        row["last_modified_by"] = actor_id
        row["updated_at"] = self.now()
        row["version"] = row.get("version", 1) + 1
        return copy.deepcopy(row)

    async def delete_project(self, project_id: str, *, actor_id: str) -> None:
        enforce_row_policy(self._membership(project_id, actor_id), Operation.DELETE_PROJECT, project_id)
        if self._projects.pop(project_id, None) is None:
            raise NotFound(resource="project", id=project_id)
        for key in [k for k in self._members if k[0] == project_id]:
            del self._members[key]

    async def list_projects_for_user(self, user_id: str) -> List[Row]:
        ids = {pid for pid, row in self._projects.items() if row["user_id"] == user_id}
        ids |= {pid for (pid, uid) in self._members if uid == user_id}
        rows = [copy.deepcopy(self._projects[pid]) for pid in ids if pid in self._projects]
        return sorted(rows, key=lambda r: r["updated_at"], reverse=True)

    # ---------- memberships ----------
    async def fetch_membership(self, project_id: str, user_id: str) -> Optional[Row]:
        row = self._membership(project_id, user_id)
        return copy.deepcopy(row) if row else None

    async def list_memberships(self, project_id: str, *, actor_id: str) -> List[Row]:
        enforce_row_policy(self._membership(project_id, actor_id), Operation.VIEW_MEMBERS, project_id)
        rows = [copy.deepcopy(r) for (pid, _), r in self._members.items() if pid == project_id]
        return sorted(rows, key=lambda r: r["joined_at"])

    async def insert_membership(self, membership: Row, *, actor_id: str) -> Row:
        project_id = membership["project_id"]
        enforce_row_policy(self._membership(project_id, actor_id), Operation.ADD_MEMBER, project_id)
        if membership["role"] == Role.OWNER.value:
            raise OwnerProtected(project_id=project_id)
        key = (project_id, membership["user_id"])
        if key in self._members:
            raise DuplicateMember(email=membership.get("email", membership["user_id"]), project_id=project_id)
        row = {k: v for k, v in membership.items() if k != "email"}
        row["id"] = membership_key(*key)
        row["joined_at"] = self.now()
        self._members[key] = copy.deepcopy(row)
        return copy.deepcopy(row)

    async def delete_membership(self, project_id: str, user_id: str, *, actor_id: str) -> Optional[Row]:
        enforce_row_policy(self._membership(project_id, actor_id), Operation.REMOVE_MEMBER, project_id)
        row = self._membership(project_id, user_id)
        if row is None:
            return None
        if row["role"] == Role.OWNER.value:
            raise OwnerProtected(project_id=project_id)
        del self._members[(project_id, user_id)]
        return copy.deepcopy(row)
