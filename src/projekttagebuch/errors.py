"""
Errors returned by project actions.

Callers (web or API handlers) translate these into responses:
- ProjectNotFound / PersonNotFound -> not found
- Forbidden -> forbidden, carries the project name for the message
- InvalidProjectName -> unprocessable input (also a ValueError)
- StoreError / RemoteError -> internal error, carries an opaque error_id
  that is also logged for out-of-band diagnosis
"""

from uuid import uuid4


class ActionError(Exception):
    """Base class for every error a project action can return."""


class ProjectNotFound(ActionError):
    def __init__(self, project_id: int):
        self.project_id = project_id
        super().__init__(f"The project {project_id} does not exist.")


class PersonNotFound(ActionError):
    def __init__(self, person_name: str, message: str | None = None):
        self.person_name = person_name
        super().__init__(message or f"The person {person_name} does not exist.")


class MemberNotFound(PersonNotFound):
    """The person exists but is not a member of the project."""

    def __init__(self, person_name: str, project_name: str):
        self.project_name = project_name
        super().__init__(
            person_name,
            f"The person {person_name} is not a member of {project_name}.",
        )


class Forbidden(ActionError):
    """The requester does not hold the permission the action needs."""

    def __init__(self, project_name: str):
        self.project_name = project_name
        super().__init__(
            f"The requester does not have the necessary permissions for {project_name}."
        )


RequesterHasNoPermission = Forbidden


class InvalidProjectName(ActionError, ValueError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"'{name}' is not a valid project name.")


class InternalActionError(ActionError):
    """Failure of a collaborator; reported to users only by its error_id."""

    kind = "internal"

    def __init__(self, message: str):
        self.error_id = uuid4().hex
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.args[0]} (error id {self.error_id})"


class StoreError(InternalActionError):
    """The relational store failed (connect, query, begin or commit)."""

    kind = "store"


class RemoteError(InternalActionError):
    """The room service failed (network, response, banned user, unknown membership)."""

    kind = "remote"
