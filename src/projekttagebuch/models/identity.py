"""
Identity - how far an entity has been provisioned across store and room service.

A project is created in two systems: the room service hands out a room id,
the relational store hands out a store id. A person only ever gets a store id.

States:
    UNPROVISIONED  no store id, no room id (constructed, not persisted)
    ROOM_ONLY      room created, store row pending
    STORE_ONLY     store row exists, no room (every persisted Person)
    COMPLETE       store id and room id (every persisted Project)

Transitions are monotonic:
    Project: UNPROVISIONED -> ROOM_ONLY -> COMPLETE
    Person:  UNPROVISIONED -> STORE_ONLY

Only the store adapter assigns store ids and only the room adapter hands out
room ids; the orchestrator checks completeness at its phase boundaries with
require_store_id() / require_room_id().
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class IdentityState(str, Enum):
    """Provisioning state of an entity."""

    UNPROVISIONED = "unprovisioned"
    ROOM_ONLY = "room_only"
    STORE_ONLY = "store_only"
    COMPLETE = "complete"


class IdentityTransitionError(ValueError):
    """An identity was asked to move backwards or overwrite an id."""


class IncompleteIdentityError(ValueError):
    """An entity lacks an id that the current phase requires."""


class Identity(BaseModel):
    """
    Immutable identifier carrier.

    Both dimensions are optional; the state is derived from which of them are
    present. New identities are produced by the with_* transitions, never by
    mutating an existing one.
    """

    model_config = ConfigDict(frozen=True)

    store_id: int | None = Field(
        default=None, description="Primary key in the relational store"
    )
    room_id: str | None = Field(
        default=None, description="Room id handed out by the room service"
    )

    @classmethod
    def unprovisioned(cls) -> "Identity":
        return cls()

    @classmethod
    def stored(cls, store_id: int) -> "Identity":
        return cls(store_id=store_id)

    @classmethod
    def complete(cls, store_id: int, room_id: str) -> "Identity":
        return cls(store_id=store_id, room_id=room_id)

    @property
    def state(self) -> IdentityState:
        if self.store_id is None and self.room_id is None:
            return IdentityState.UNPROVISIONED
        if self.store_id is None:
            return IdentityState.ROOM_ONLY
        if self.room_id is None:
            return IdentityState.STORE_ONLY
        return IdentityState.COMPLETE

    def with_room_id(self, room_id: str) -> "Identity":
        if self.state is not IdentityState.UNPROVISIONED:
            raise IdentityTransitionError(
                f"Cannot attach room id to an identity in state {self.state.value}"
            )
        return Identity(room_id=room_id)

    def with_store_id(self, store_id: int) -> "Identity":
        if self.store_id is not None:
            raise IdentityTransitionError(
                f"Identity already has store id {self.store_id}"
            )
        return Identity(store_id=store_id, room_id=self.room_id)

    def require_store_id(self) -> int:
        if self.store_id is None:
            raise IncompleteIdentityError(
                f"Entity has no store id (state: {self.state.value})"
            )
        return self.store_id

    def require_room_id(self) -> str:
        if self.room_id is None:
            raise IncompleteIdentityError(
                f"Entity has no room id (state: {self.state.value})"
            )
        return self.room_id
