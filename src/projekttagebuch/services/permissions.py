"""
Permission resolution for project actions.

Two tiers:
- global admin: authority over every project, and the only one who may create projects
- project admin: authority within that project

Everyone calling in here is already authenticated, so a person who is not a
member of a project resolves to USER rather than "no permission".

These functions are pure. Callers pass the project they loaded for the
current request; nothing is cached because membership changes between calls.
"""

from enum import Enum

from ..models import Permission, Person, Project


class Action(str, Enum):
    """Mutating actions on projects."""

    CREATE_PROJECT = "create_project"
    RENAME_PROJECT = "rename_project"
    ADD_MEMBER = "add_member"
    REMOVE_MEMBER = "remove_member"
    SET_MEMBER_PERMISSION = "set_member_permission"


def effective_permission(requester: Person, project: Project) -> Permission:
    """Permission actually granted to requester within project."""
    if requester.is_global_admin():
        return Permission.ADMIN
    local = project.local_permission_for(requester)
    return local if local is not None else Permission.USER


def authorized_for(
    action: Action, requester: Person, project: Project | None = None
) -> bool:
    """
    Whether requester may perform action.

    CREATE_PROJECT looks at the global permission only: a project admin role
    means nothing before the project exists. Every other action needs an
    effective ADMIN on the given project.
    """
    if action is Action.CREATE_PROJECT:
        return requester.is_global_admin()
    if project is None:
        raise ValueError(f"{action.value} needs the target project")
    return effective_permission(requester, project) is Permission.ADMIN
