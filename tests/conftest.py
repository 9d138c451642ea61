"""
Pytest configuration and fixtures for projekttagebuch tests.

The default world mirrors the two_projects fixture:

    persons:   adam, beth, gamaliel (users), ruth (global admin)
    1Basil:    adam (admin), beth (user)      project id 1
    2Basil:    adam (user), gamaliel (admin)  project id 2

Every member has joined the project's room.
"""

import pytest
from loguru import logger
from fakes import FakeRooms, FakeStore

from projekttagebuch.models import Permission
from projekttagebuch.services.actions import ProjectActions


@pytest.fixture
def rooms() -> FakeRooms:
    return FakeRooms()


@pytest.fixture
def store(rooms: FakeRooms) -> FakeStore:
    store = FakeStore()
    adam = store.add_person("adam", firstname="Adam", surname="Abrahamovitch")
    beth = store.add_person("beth", firstname="Beth", surname="Bernstein")
    gamaliel = store.add_person("gamaliel", firstname="Gamaliel", surname="Gans")
    store.add_person("ruth", admin=True, firstname="Ruth", surname="Rosenbaum")

    room = rooms.add_room("1Basil", [adam, beth])
    store.add_project("1Basil", room, [(adam, Permission.ADMIN), (beth, Permission.USER)])
    room = rooms.add_room("2Basil", [adam, gamaliel])
    store.add_project("2Basil", room, [(adam, Permission.USER), (gamaliel, Permission.ADMIN)])
    return store


@pytest.fixture
def actions(store: FakeStore, rooms: FakeRooms) -> ProjectActions:
    return ProjectActions(store, rooms)


@pytest.fixture
def adam(store):
    return store.persons["adam"]


@pytest.fixture
def beth(store):
    return store.persons["beth"]


@pytest.fixture
def gamaliel(store):
    return store.persons["gamaliel"]


@pytest.fixture
def ruth(store):
    return store.persons["ruth"]


@pytest.fixture
def log_events():
    """Names of structured log events (logger.bind(event=...)) emitted during the test."""
    events: list[str] = []
    handler_id = logger.add(
        lambda message: events.append(message.record["extra"].get("event")),
        level="DEBUG",
        filter=lambda record: "event" in record["extra"],
    )
    yield events
    logger.remove(handler_id)


@pytest.fixture
def log_messages():
    """Formatted INFO and above log messages emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="INFO")
    yield messages
    logger.remove(handler_id)
