# projecthub/models/project.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from projecthub.models.role import Role

# ===== Content =====
class Task(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    title: str
    description: Optional[str] = None
    responsible: Optional[str] = None
    due_date: Optional[str] = None
    completed: bool = False
    sub_steps: List[Dict[str, Any]] = Field(default_factory=list)

class GanttItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    start: str
    end: str
    type: Literal["task", "milestone", "project"] = "task"
    progress: float = Field(0, ge=0, le=100)
    dependencies: Optional[List[str]] = None

# ===== Records =====
class Project(BaseModel):
    id: str
    title: str
    goal: str
    target_date: str
    tasks: List[Task] = Field(default_factory=list)
    gantt_data: Optional[List[GanttItem]] = None
    created_at: datetime
    updated_at: datetime
    user_id: str
    last_modified_by: Optional[str] = None
    version: int = 1

class ProjectMember(BaseModel):
    id: str
    project_id: str
    user_id: str
    email: str = "Unknown"
    role: Role
    joined_at: datetime

# ===== Requests =====
class CreateProjectRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    goal: str = Field("", max_length=2000)
    target_date: str = Field(..., min_length=1)
    tasks: List[Task] = Field(default_factory=list)
    gantt_data: Optional[List[GanttItem]] = None

class UpdateProjectRequest(BaseModel):
    """Partial update: only fields present in the payload are written."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    goal: Optional[str] = Field(None, max_length=2000)
    target_date: Optional[str] = None
    tasks: Optional[List[Task]] = None
    gantt_data: Optional[List[GanttItem]] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, mode="json")

class AddProjectMemberRequest(BaseModel):
    email: EmailStr
    role: Role = Role.EDITOR

# ===== Responses / events =====
class EffectiveRoleResponse(BaseModel):
    project_id: str
    user_id: str
    role: Optional[Role] = None
    label: Optional[str] = None
    color: Optional[str] = None

class ChangeEvent(BaseModel):
    kind: Literal["project_updated", "project_deleted", "members_changed"]
    project_id: str
    version: Optional[int] = None
    actor_id: str
    project: Optional[Project] = None
    occurred_at: datetime
