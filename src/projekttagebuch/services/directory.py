"""
Directory source for the person resync.

The directory (an LDAP export in production) decides which people exist and
who is a global admin. The resync job reads the directory, diffs it against
the store by name and writes the difference in one transaction.

YAML export format:
    persons:
      - name: adam
        firstname: Adam
        surname: Abrahamovitch
        admin: true
      - name: beth
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import yaml
from loguru import logger
from pydantic import ValidationError

from ..models import Permission, Person


class DirectorySource(Protocol):
    """Anything that can list the people of the directory."""

    async def fetch_persons(self) -> list[Person]: ...


class DirectoryError(Exception):
    """The directory could not be read or is malformed."""


class YamlDirectorySource:
    """Directory backed by a YAML export file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def fetch_persons(self) -> list[Person]:
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            raise DirectoryError(f"Unable to read directory file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise DirectoryError(f"{self.path} must contain a mapping with a 'persons' list")
        entries = data.get("persons") or []
        if not isinstance(entries, list):
            raise DirectoryError(f"'persons' in {self.path} must be a list")

        persons: list[Person] = []
        seen: set[str] = set()
        for entry in entries:
            if isinstance(entry, str):
                entry = {"name": entry}
            if not isinstance(entry, dict):
                logger.warning(f"Skipping malformed directory entry: {entry!r}")
                continue
            name = str(entry.get("name") or "").strip()
            if not name:
                logger.warning(f"Skipping directory entry without name: {entry}")
                continue
            if name in seen:
                raise DirectoryError(f"Name {name} appears more than once in {self.path}")
            seen.add(name)
            try:
                person = Person(
                    name=name,
                    global_permission=Permission.from_is_admin(bool(entry.get("admin", False))),
                    surname=entry.get("surname"),
                    firstname=entry.get("firstname"),
                )
            except ValidationError as e:
                logger.warning(f"Skipping directory entry {name}: {e}")
                continue
            persons.append(person)
        logger.debug(f"Read {len(persons)} persons from {self.path}")
        return persons


@dataclass
class PersonSyncPlan:
    """Writes needed to make the store match the directory."""

    to_insert: list[Person] = field(default_factory=list)
    to_update: list[Person] = field(default_factory=list)
    to_delete: list[Person] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_insert or self.to_update or self.to_delete)


def plan_person_sync(existing: list[Person], desired: list[Person]) -> PersonSyncPlan:
    """
    Diff stored people against the directory, matching on name.

    Updated entries keep the stored identity and take permission and names
    from the directory.
    """
    plan = PersonSyncPlan()
    stored = {p.name: p for p in existing}
    wanted = {p.name for p in desired}

    for person in desired:
        current = stored.get(person.name)
        if current is None:
            plan.to_insert.append(person)
            continue
        if (
            current.global_permission != person.global_permission
            or current.surname != person.surname
            or current.firstname != person.firstname
        ):
            plan.to_update.append(
                current.model_copy(
                    update={
                        "global_permission": person.global_permission,
                        "surname": person.surname,
                        "firstname": person.firstname,
                    }
                )
            )

    plan.to_delete = [p for p in existing if p.name not in wanted]
    return plan
