"""Errors raised by the Matrix room adapter."""


class MatrixError(Exception):
    """Base class for room service failures."""


class MatrixRequestError(MatrixError):
    """A request failed on the network or was answered with an error."""

    def __init__(self, message: str, status: int | None = None, errcode: str | None = None):
        self.status = status
        self.errcode = errcode
        super().__init__(message)


class MatrixAuthError(MatrixRequestError):
    """The service account could not log in or its token was rejected."""


class RoomNotFound(MatrixError):
    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Unable to find room {room_id}")


class MemberBanned(MatrixError):
    """The user is banned from the room and cannot be invited."""

    def __init__(self, user_id: str, room_id: str):
        self.user_id = user_id
        self.room_id = room_id
        super().__init__(f"User {user_id} is banned from room {room_id}")


class UnknownMembershipState(MatrixError):
    def __init__(self, user_id: str, room_id: str, membership: str):
        self.user_id = user_id
        self.room_id = room_id
        self.membership = membership
        super().__init__(
            f"User {user_id} has an unknown membership state '{membership}' in room {room_id}"
        )
