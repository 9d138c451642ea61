"""Request and response bodies of the HTTP API."""

from pydantic import BaseModel, Field

from ..models import Permission, Person, Project


class ProjectNameRequest(BaseModel):
    """Body for creating or renaming a project."""

    name: str = Field(..., min_length=1, description="Project name")


class AddMemberRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Directory name of the new member")


class SetPermissionRequest(BaseModel):
    permission: Permission = Field(..., description="New project permission (user or admin)")


class PersonResponse(BaseModel):
    name: str
    display_name: str
    global_permission: Permission

    @classmethod
    def from_person(cls, person: Person) -> "PersonResponse":
        return cls(
            name=person.name,
            display_name=person.display_name,
            global_permission=person.global_permission,
        )


class MemberResponse(BaseModel):
    name: str
    display_name: str
    permission: Permission


class ProjectResponse(BaseModel):
    id: int
    name: str
    room_id: str
    room_link: str | None = Field(default=None, description="Link to the room in the web client")
    members: list[MemberResponse] = Field(default_factory=list)

    @classmethod
    def from_project(cls, project: Project, room_link: str | None = None) -> "ProjectResponse":
        store_id, room_id = project.require_complete()
        return cls(
            id=store_id,
            name=project.name,
            room_id=room_id,
            room_link=room_link,
            members=[
                MemberResponse(
                    name=m.person.name,
                    display_name=m.person.display_name,
                    permission=m.permission,
                )
                for m in project.members
            ],
        )


class MemberChangeResponse(BaseModel):
    """Result of a member action: the affected person and the updated project."""

    person: PersonResponse
    project: ProjectResponse
