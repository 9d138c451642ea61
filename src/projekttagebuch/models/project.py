"""
Project - a named workspace with members and a room in the room service.

A loaded project is a snapshot of the store at load time. The helper methods
never touch the store; they return a new snapshot that reflects a change the
caller has staged or committed.
"""

from typing import Iterable

from pydantic import BaseModel, Field, model_validator

from .identity import Identity
from .permission import Permission
from .person import Person


class Member(BaseModel):
    """A person together with their permission inside one project."""

    person: Person
    permission: Permission = Permission.USER


class Project(BaseModel):
    """
    Project entity.

    Members are ordered (store insertion order) and keyed by the person's
    store id; the same person cannot appear twice.
    """

    identity: Identity = Field(
        default_factory=Identity.unprovisioned,
        description="Store id and room id of this project",
    )
    name: str = Field(..., min_length=1, description="Human readable project name")
    members: list[Member] = Field(
        default_factory=list,
        description="Members in store order, unique by person identity",
    )

    @model_validator(mode="after")
    def _unique_members(self) -> "Project":
        seen: set[int] = set()
        for member in self.members:
            store_id = member.person.store_id
            if store_id is None:
                continue
            if store_id in seen:
                raise ValueError(
                    f"Person {member.person.name} is a member of {self.name} more than once"
                )
            seen.add(store_id)
        return self

    @property
    def store_id(self) -> int | None:
        return self.identity.store_id

    @property
    def room_id(self) -> str | None:
        return self.identity.room_id

    def require_store_id(self) -> int:
        return self.identity.require_store_id()

    def require_room_id(self) -> str:
        return self.identity.require_room_id()

    def require_complete(self) -> tuple[int, str]:
        return self.require_store_id(), self.require_room_id()

    def local_permission_for(self, person: Person) -> Permission | None:
        """
        None when the person is not a member.

        Ignores the global permission of the person.
        """
        for member in self.members:
            if member.person.same_identity(person):
                return member.permission
        return None

    def has_member(self, person: Person) -> bool:
        return self.local_permission_for(person) is not None

    def member_persons(self) -> list[Person]:
        return [m.person for m in self.members]

    def add_member(self, person: Person, permission: Permission = Permission.USER) -> None:
        person.require_store_id()
        if self.has_member(person):
            raise ValueError(f"{person.name} is already a member of {self.name}")
        self.members.append(Member(person=person, permission=permission))

    def with_member(self, person: Person, permission: Permission = Permission.USER) -> "Project":
        if self.has_member(person):
            return self
        updated = self.model_copy(update={"members": list(self.members)})
        updated.add_member(person, permission)
        return updated

    def without_members(self, persons: Iterable[Person]) -> "Project":
        removed = {p.store_id for p in persons if p.store_id is not None}
        kept = [m for m in self.members if m.person.store_id not in removed]
        return self.model_copy(update={"members": kept})

    def with_member_permission(self, person: Person, permission: Permission) -> "Project":
        members = [
            Member(person=m.person, permission=permission)
            if m.person.same_identity(person)
            else m
            for m in self.members
        ]
        return self.model_copy(update={"members": members})

    def renamed(self, name: str) -> "Project":
        return self.model_copy(update={"name": name})

    def with_room_id(self, room_id: str) -> "Project":
        return self.model_copy(update={"identity": self.identity.with_room_id(room_id)})

    def with_store_id(self, store_id: int) -> "Project":
        return self.model_copy(update={"identity": self.identity.with_store_id(store_id)})
