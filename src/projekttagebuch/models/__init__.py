"""
Projekttagebuch Models

- Permission: user/admin, used globally and per project
- Identity / IdentityState: how far an entity is provisioned in store and room service
- Person: directory person, keyed by name
- Project / Member: workspace with ordered, unique members
"""

from .identity import (
    Identity,
    IdentityState,
    IdentityTransitionError,
    IncompleteIdentityError,
)
from .permission import Permission
from .person import Person
from .project import Member, Project

__all__ = [
    "Identity",
    "IdentityState",
    "IdentityTransitionError",
    "IncompleteIdentityError",
    "Member",
    "Permission",
    "Person",
    "Project",
]
