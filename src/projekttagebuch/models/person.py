"""
Person - someone from the directory who can be a member of projects.

The name is the only key shared with other systems: the room service user
id is derived from it and the directory resync matches on it.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .identity import Identity
from .permission import Permission


class Person(BaseModel):
    """
    Person entity.

    A person is persisted in the store only; it never owns a room, so its
    identity is either UNPROVISIONED or STORE_ONLY.
    """

    identity: Identity = Field(
        default_factory=Identity.unprovisioned,
        description="Store identity (persons never carry a room id)",
    )
    name: str = Field(
        ...,
        min_length=1,
        description="Unique directory name (uid), used to derive the room service user id",
    )
    global_permission: Permission = Field(
        default=Permission.USER,
        description="Permission across all projects",
    )
    surname: Optional[str] = Field(default=None, description="Surname from the directory")
    firstname: Optional[str] = Field(default=None, description="First name from the directory")

    @field_validator("identity")
    @classmethod
    def _no_room_for_persons(cls, value: Identity) -> Identity:
        if value.room_id is not None:
            raise ValueError("A person cannot have a room id")
        return value

    @property
    def store_id(self) -> int | None:
        return self.identity.store_id

    def require_store_id(self) -> int:
        return self.identity.require_store_id()

    def is_global_admin(self) -> bool:
        return self.global_permission.is_admin

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.firstname, self.surname) if p]
        return " ".join(parts) if parts else self.name

    def same_identity(self, other: "Person") -> bool:
        """True when both refer to the same stored person."""
        return self.store_id is not None and self.store_id == other.store_id
