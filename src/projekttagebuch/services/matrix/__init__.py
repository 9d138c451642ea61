"""
Matrix room service adapter.
"""

from .client import MatrixClient
from .errors import (
    MatrixAuthError,
    MatrixError,
    MatrixRequestError,
    MemberBanned,
    RoomNotFound,
    UnknownMembershipState,
)

__all__ = [
    "MatrixAuthError",
    "MatrixClient",
    "MatrixError",
    "MatrixRequestError",
    "MemberBanned",
    "RoomNotFound",
    "UnknownMembershipState",
]
