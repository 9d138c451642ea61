"""
Projekttagebuch - projects with members, mirrored into Matrix rooms.

The relational store is the source of truth for projects and memberships;
every change is staged in the store, applied to the project's room and only
then committed.
"""

__version__ = "0.1.0"
