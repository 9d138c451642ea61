"""
Project endpoints.

Endpoints:
    GET    /api/v1/projects                                   - All projects with members
    GET    /api/v1/projects/{project_id}                      - One project
    POST   /api/v1/projects                                   - Create project (global admins)
    PATCH  /api/v1/projects/{project_id}                      - Rename project
    POST   /api/v1/projects/{project_id}/members              - Add member
    DELETE /api/v1/projects/{project_id}/members/{name}       - Remove member
    PUT    /api/v1/projects/{project_id}/members/{name}/permission - Set member permission

Errors raised by the actions are translated by the handlers in api.main.
"""

from fastapi import APIRouter, Depends

from ..deps import get_actions, get_requester, get_rooms, get_store
from ..schemas import (
    AddMemberRequest,
    MemberChangeResponse,
    PersonResponse,
    ProjectNameRequest,
    ProjectResponse,
    SetPermissionRequest,
)
from ...errors import ProjectNotFound
from ...models import Person, Project
from ...services.actions import ProjectActions
from ...services.matrix import MatrixClient
from ...services.postgres import ProjectStore

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


def _project(project: Project, rooms: MatrixClient) -> ProjectResponse:
    return ProjectResponse.from_project(project, rooms.room_link(project.require_room_id()))


def _member_change(person: Person, project: Project, rooms: MatrixClient) -> MemberChangeResponse:
    return MemberChangeResponse(
        person=PersonResponse.from_person(person), project=_project(project, rooms)
    )


@router.get("", response_model=list[ProjectResponse])
async def list_projects(
    requester: Person = Depends(get_requester),
    store: ProjectStore = Depends(get_store),
    rooms: MatrixClient = Depends(get_rooms),
) -> list[ProjectResponse]:
    return [_project(p, rooms) for p in await store.get_projects()]


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    requester: Person = Depends(get_requester),
    store: ProjectStore = Depends(get_store),
    rooms: MatrixClient = Depends(get_rooms),
) -> ProjectResponse:
    project = await store.get_project(project_id)
    if project is None:
        raise ProjectNotFound(project_id)
    return _project(project, rooms)


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: ProjectNameRequest,
    requester: Person = Depends(get_requester),
    actions: ProjectActions = Depends(get_actions),
    rooms: MatrixClient = Depends(get_rooms),
) -> ProjectResponse:
    _, project = await actions.create_project(requester, body.name)
    return _project(project, rooms)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def rename_project(
    project_id: int,
    body: ProjectNameRequest,
    requester: Person = Depends(get_requester),
    actions: ProjectActions = Depends(get_actions),
    rooms: MatrixClient = Depends(get_rooms),
) -> ProjectResponse:
    _, project = await actions.rename_project(requester, project_id, body.name)
    return _project(project, rooms)


@router.post("/{project_id}/members", response_model=MemberChangeResponse)
async def add_member(
    project_id: int,
    body: AddMemberRequest,
    requester: Person = Depends(get_requester),
    actions: ProjectActions = Depends(get_actions),
    rooms: MatrixClient = Depends(get_rooms),
) -> MemberChangeResponse:
    person, project = await actions.add_member(requester, project_id, body.name)
    return _member_change(person, project, rooms)


@router.delete("/{project_id}/members/{person_name}", response_model=MemberChangeResponse)
async def remove_member(
    project_id: int,
    person_name: str,
    requester: Person = Depends(get_requester),
    actions: ProjectActions = Depends(get_actions),
    rooms: MatrixClient = Depends(get_rooms),
) -> MemberChangeResponse:
    person, project = await actions.remove_member(requester, project_id, person_name)
    return _member_change(person, project, rooms)


@router.put(
    "/{project_id}/members/{person_name}/permission", response_model=MemberChangeResponse
)
async def set_member_permission(
    project_id: int,
    person_name: str,
    body: SetPermissionRequest,
    requester: Person = Depends(get_requester),
    actions: ProjectActions = Depends(get_actions),
    rooms: MatrixClient = Depends(get_rooms),
) -> MemberChangeResponse:
    person, project = await actions.set_member_permission(
        requester, project_id, person_name, body.permission
    )
    return _member_change(person, project, rooms)
