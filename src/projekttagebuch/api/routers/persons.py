"""
Person endpoints.

Endpoints:
    GET /api/v1/persons/me          - The requesting person
    GET /api/v1/persons/search?q=   - People with names similar to q
"""

from fastapi import APIRouter, Depends, Query

from ..deps import get_requester, get_store
from ..schemas import PersonResponse
from ...models import Person
from ...services.postgres import ProjectStore

router = APIRouter(prefix="/api/v1/persons", tags=["persons"])


@router.get("/me", response_model=PersonResponse)
async def whoami(requester: Person = Depends(get_requester)) -> PersonResponse:
    return PersonResponse.from_person(requester)


@router.get("/search", response_model=list[PersonResponse])
async def search_persons(
    q: str = Query(..., min_length=1, description="Name to search for"),
    limit: int = Query(default=5, ge=1, le=50),
    requester: Person = Depends(get_requester),
    store: ProjectStore = Depends(get_store),
) -> list[PersonResponse]:
    persons = await store.find_similar_persons(q, limit=limit)
    return [PersonResponse.from_person(p) for p in persons]
