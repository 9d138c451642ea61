"""Background workers."""

from .directory_sync import run_directory_sync, sync_once

__all__ = ["run_directory_sync", "sync_once"]
