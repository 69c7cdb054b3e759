# projecthub/routes/project_routes.py
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool

from projecthub.config import settings
from projecthub.deps import get_channel, get_collaboration_api, get_repository, identity_from_token
from projecthub.errors import CollaborationError
from projecthub.models.project import (
    AddProjectMemberRequest, CreateProjectRequest, EffectiveRoleResponse, Project, ProjectMember,
    UpdateProjectRequest,
)
from projecthub.models.role import display_for
from projecthub.services.collaboration import ProjectCollaborationAPI

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


def get_lang(accept_language: Optional[str] = Header(None)) -> str:
    if accept_language and accept_language.lower().startswith("ja"):
        return "ja"
    return settings.DEFAULT_LANGUAGE


def _http_error(e: CollaborationError, lang: str) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_dict(lang))


def get_ws_identity_factory():
    return identity_from_token


# LIST (owned or shared)
@router.get("", response_model=List[Project], summary="List projects the caller owns or belongs to")
async def list_projects(api: ProjectCollaborationAPI = Depends(get_collaboration_api), lang: str = Depends(get_lang)):
    try:
        return await api.list_projects()
    except CollaborationError as e:
        raise _http_error(e, lang)

# CREATE
@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED, summary="Create project")
async def create_project(
    req: CreateProjectRequest,
    api: ProjectCollaborationAPI = Depends(get_collaboration_api),
    lang: str = Depends(get_lang),
):
    try:
        return await api.create_project(req.title, req.goal, req.target_date, req.tasks, req.gantt_data)
    except CollaborationError as e:
        raise _http_error(e, lang)

# GET (detail)
@router.get("/{project_id}", response_model=Project, summary="Get project detail")
async def get_project(
    project_id: str = Path(...),
    api: ProjectCollaborationAPI = Depends(get_collaboration_api),
    lang: str = Depends(get_lang),
):
    try:
        return await api.get_project(project_id)
    except CollaborationError as e:
        raise _http_error(e, lang)

# UPDATE (partial)
@router.patch("/{project_id}", response_model=Project, summary="Update project fields")
async def patch_project(
    project_id: str,
    req: UpdateProjectRequest,
    api: ProjectCollaborationAPI = Depends(get_collaboration_api),
    lang: str = Depends(get_lang),
):
    try:
        return await api.update_project(project_id, req.changes())
    except CollaborationError as e:
        raise _http_error(e, lang)

# DELETE
@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete project (owner only)")
async def delete_project(
    project_id: str,
    api: ProjectCollaborationAPI = Depends(get_collaboration_api),
    lang: str = Depends(get_lang),
):
    try:
        await api.delete_project(project_id)
    except CollaborationError as e:
        raise _http_error(e, lang)

# MEMBERS
@router.get("/{project_id}/members", response_model=List[ProjectMember], summary="List project members")
async def list_members(
    project_id: str,
    api: ProjectCollaborationAPI = Depends(get_collaboration_api),
    lang: str = Depends(get_lang),
):
    try:
        return await api.list_members(project_id)
    except CollaborationError as e:
        raise _http_error(e, lang)

@router.post("/{project_id}/members", response_model=ProjectMember, status_code=status.HTTP_201_CREATED,
             summary="Add member by email (owner only)")
async def add_member(
    project_id: str,
    payload: AddProjectMemberRequest,
    api: ProjectCollaborationAPI = Depends(get_collaboration_api),
    lang: str = Depends(get_lang),
):
    try:
        return await api.add_member(project_id, payload.email, payload.role)
    except CollaborationError as e:
        raise _http_error(e, lang)

@router.delete("/{project_id}/members/{user_id}", summary="Remove member (owner only)")
async def remove_member(
    project_id: str,
    user_id: str,
    api: ProjectCollaborationAPI = Depends(get_collaboration_api),
    lang: str = Depends(get_lang),
):
    try:
        removed = await api.remove_member(project_id, user_id)
    except CollaborationError as e:
        raise _http_error(e, lang)
    return {"status": "ok", "project_id": project_id, "user_id": user_id, "removed": removed}

# ROLE
@router.get("/{project_id}/role", response_model=EffectiveRoleResponse, summary="Effective role of a user")
async def get_role(
    project_id: str,
    user_id: Optional[str] = Query(None, description="Defaults to the caller"),
    api: ProjectCollaborationAPI = Depends(get_collaboration_api),
    lang: str = Depends(get_lang),
):
    try:
        role = await api.get_effective_role(project_id, user_id)
        me = await api.identity.current_user()
    except CollaborationError as e:
        raise _http_error(e, lang)
    body = {"project_id": project_id, "user_id": user_id or me.uid}
    if role is not None:
        body.update(display_for(role, lang))
    return body

# REALTIME
@router.websocket("/{project_id}/changes")
async def project_changes(
    websocket: WebSocket,
    project_id: str,
    token: str = Query(...),
    repository=Depends(get_repository),
    channel=Depends(get_channel),
    identity_factory=Depends(get_ws_identity_factory),
):
    """
    Stream ChangeEvent JSON for one project. The token is a Firebase ID token
    passed as a query parameter. No backlog is sent; clients fetch the project
    after connecting.
    """
    try:
        # token verification may fetch signing certificates over the network
        identity = await run_in_threadpool(identity_factory, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    api = ProjectCollaborationAPI(identity, repository, channel)
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    try:
        sub = await api.subscribe_to_project_changes(
            project_id, lambda event: loop.call_soon_threadsafe(queue.put_nowait, event),
        )
    except CollaborationError as e:
        logger.info("websocket subscribe refused project=%s: %s", project_id, e.code)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.code)
        return

    await websocket.accept()

    async def _send():
        while True:
            event = await queue.get()
            await websocket.send_json(event.model_dump(mode="json"))
            if event.kind == "project_deleted":
                await websocket.close()
                return

    async def _receive():
        # clients may send keep-alives; content is ignored
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            return

    tasks = [asyncio.create_task(_send()), asyncio.create_task(_receive())]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        api.unsubscribe(sub)
        for t in tasks:
            t.cancel()
        for result in await asyncio.gather(*tasks, return_exceptions=True):
            if isinstance(result, Exception):
                logger.warning("websocket stream for project=%s ended with %r", project_id, result)
