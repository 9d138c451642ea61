"""
Projekttagebuch Services

- ProjectActions: project mutations across store and room service
- ProjectStore / PostgresService: PostgreSQL persistence
- MatrixClient: Matrix room service adapter
- permissions: who may do what on a project
"""

from .actions import ProjectActions
from .matrix import MatrixClient
from .postgres import PostgresService, ProjectStore

__all__ = ["MatrixClient", "PostgresService", "ProjectActions", "ProjectStore"]
