# projecthub/services/project_service.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from projecthub.errors import InvalidInput, NotFound
from projecthub.models.project import GanttItem, Project, Task
from projecthub.models.role import Role
from projecthub.repositories.base import CollaborationRepository, Row

logger = logging.getLogger(__name__)

# request field -> stored column
_FIELD_COLUMNS = {
    "title": "title",
    "goal": "goal",
    "target_date": "target_date",
    "tasks": "tasks_data",
    "gantt_data": "gantt_data",
}


def _dump_items(items: Optional[Iterable[Any]], model, field: str) -> Optional[List[Dict[str, Any]]]:
    if items is None:
        return None
    try:
        return [model.model_validate(i).model_dump(mode="json") for i in items]
    except (ValidationError, TypeError) as e:
        raise InvalidInput(field=field, reason=str(e).splitlines()[0]) from e


def _row_to_project(row: Row) -> Project:
    """Return a Project from a stored row (tasks default to an empty list)."""
    return Project(
        id=row["id"],
        title=row.get("title", ""),
        goal=row.get("goal", ""),
        target_date=row.get("target_date", ""),
        tasks=row.get("tasks_data") or [],
        gantt_data=row.get("gantt_data"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        user_id=row["user_id"],
        last_modified_by=row.get("last_modified_by"),
        version=row.get("version", 1),
    )


def changes_to_columns(changes: Mapping[str, Any]) -> Row:
    """
    Map a partial update onto stored columns.

    Only keys present in ``changes`` are written; ``gantt_data=None`` clears the
    schedule, while ``None`` for any other field is ignored.
    """
    unknown = set(changes) - set(_FIELD_COLUMNS)
    if unknown:
        raise InvalidInput(field=", ".join(sorted(unknown)), reason="unknown project field")
    out: Row = {}
    for field, column in _FIELD_COLUMNS.items():
        if field not in changes:
            continue
        value = changes[field]
        if field == "tasks":
            if value is not None:
                out[column] = _dump_items(value, Task, field)
        elif field == "gantt_data":
            out[column] = _dump_items(value, GanttItem, field)
        elif value is not None:
            out[column] = value
    return out


class ProjectService:
    def __init__(self, repository: CollaborationRepository):
        self._repo = repository

    # ===== CREATE =====
    async def create(
        self,
        owner_uid: str,
        title: str,
        goal: str,
        target_date: str,
        tasks: Iterable[Any] = (),
        gantt_data: Optional[Iterable[Any]] = None,
    ) -> Project:
        project_id = uuid.uuid4().hex
        project = {
            "id": project_id,
            "user_id": owner_uid,
            "title": title,
            "goal": goal,
            "target_date": target_date,
            "tasks_data": _dump_items(tasks, Task, "tasks") or [],
            "gantt_data": _dump_items(gantt_data, GanttItem, "gantt_data"),
            "last_modified_by": owner_uid,
        }
        owner = {"project_id": project_id, "user_id": owner_uid, "role": Role.OWNER.value}
        row = await self._repo.create_project_with_owner(project, owner, actor_id=owner_uid)
        logger.info("project created id=%s owner=%s", project_id, owner_uid)
        return _row_to_project(row)

    # ===== READ =====
    async def get(self, project_id: str, actor_id: str) -> Project:
        row = await self._repo.fetch_project(project_id, actor_id=actor_id)
        if row is None:
            raise NotFound(resource="project", id=project_id)
        return _row_to_project(row)

    async def list(self, user_id: str) -> List[Project]:
        rows = await self._repo.list_projects_for_user(user_id)
        seen = set()
        out: List[Project] = []
        for row in rows:
            if row["id"] in seen:
                continue
            seen.add(row["id"])
            out.append(_row_to_project(row))
        out.sort(key=lambda p: p.updated_at, reverse=True)
        return out

    # ===== UPDATE =====
    async def update(self, project_id: str, changes: Mapping[str, Any], actor_id: str) -> Project:
        columns = changes_to_columns(changes)
        row = await self._repo.update_project(project_id, columns, actor_id=actor_id)
        logger.info("project updated id=%s by=%s fields=%s", project_id, actor_id, sorted(columns))
        return _row_to_project(row)

    # ===== DELETE =====
    async def delete(self, project_id: str, actor_id: str) -> None:
        await self._repo.delete_project(project_id, actor_id=actor_id)
        logger.info("project deleted id=%s by=%s", project_id, actor_id)
