"""Permissions a person can hold, globally or within one project."""

from enum import Enum


class Permission(str, Enum):
    """
    Two-valued permission.

    The same type is used for the global permission of a person and for the
    permission of a member within a project. Global ADMIN grants authority
    over every project; project ADMIN only within that project.
    """

    USER = "user"
    ADMIN = "admin"

    @classmethod
    def from_is_admin(cls, is_admin: bool) -> "Permission":
        return cls.ADMIN if is_admin else cls.USER

    @property
    def is_admin(self) -> bool:
        return self is Permission.ADMIN

    def __str__(self) -> str:
        return self.value
