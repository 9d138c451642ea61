"""
Request dependencies.

The store, the room adapter and the actions live on app.state; create_app()
puts them there. Tests replace them with dependency_overrides.

Requester identity comes from an API token:
    Authorization: Bearer <token>
The SHA-256 digest of the token is looked up in the api_token table.
"""

from fastapi import Depends, Header, HTTPException, Request
from loguru import logger

from ..models import Person
from ..services.actions import ProjectActions
from ..services.matrix import MatrixClient
from ..services.postgres import ProjectStore
from ..services.tokens import hash_token


def get_store(request: Request) -> ProjectStore:
    return request.app.state.store


def get_actions(request: Request) -> ProjectActions:
    return request.app.state.actions


async def get_requester(
    authorization: str | None = Header(default=None),
    store: ProjectStore = Depends(get_store),
) -> Person:
    """Resolve the requesting person from the bearer token."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=401,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    person = await store.get_person_by_token_hash(hash_token(token.strip()))
    if person is None:
        logger.debug("Rejected request with unknown API token")
        raise HTTPException(
            status_code=401,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return person


def get_rooms(request: Request) -> MatrixClient:
    return request.app.state.rooms
