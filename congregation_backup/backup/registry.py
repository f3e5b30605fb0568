"""
Entity registry for the snapshot subsystem.

The registry is the single ordered list of every entity collection that
backups cover. Snapshot building, restoring and metadata all enumerate
it, so a collection added here is covered everywhere and a collection
missing here is excluded from every backup.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

from congregation_backup.storage.db import CongregationDatabase, EntityStore

# Snapshot key of every entity collection, in registry order
ENTITY_NAMES: tuple[str, ...] = (
    "members",
    "groups",
    "territories",
    "territoryAssignments",
    "fieldServiceReports",
    "activities",
    "assignmentHistories",
    "assignments",
    "attendances",
    "bibleStudies",
    "cleaningTasks",
    "coReports",
    "coVisits",
    "messages",
    "broadcasts",
    "documents",
    "duties",
    "events",
    "expenses",
    "families",
    "fieldServiceMeetings",
    "contributions",
    "budgets",
    "monthlyReports",
    "openingBalances",
    "groupSchedules",
    "histories",
    "literatures",
    "notifications",
    "overseerReports",
    "privileges",
    "publicWitnessings",
    "publisherGoals",
    "publisherRecords",
    "pushSubscriptions",
    "roles",
    "schoolStudents",
    "shepherdingCalls",
    "tashes",
    "transportConfigs",
    "transportFees",
    "memberFeePayments",
)

# Current snapshot key -> key older snapshots stored the same data under
LEGACY_ALIASES: dict[str, str] = {
    "territoryAssignments": "assignments",
    "fieldServiceReports": "reports",
}

_CAMEL_BOUNDARY_RE = re.compile(r"(?<!^)(?=[A-Z])")


def table_name(entity_name: str) -> str:
    """
    Get the store table backing an entity collection.

    Example:
        table_name("territoryAssignments")  # "territory_assignments"
    """
    return _CAMEL_BOUNDARY_RE.sub("_", entity_name).lower()


@dataclass(frozen=True)
class RegistryEntry:
    """
    One entity collection known to the snapshot subsystem.

    Attributes:
        name: Snapshot key of the collection (e.g. "members")
        store: Handle with find-all, delete-all and bulk-insert bound to
               the collection's table
    """

    name: str
    store: EntityStore

    @property
    def table(self) -> str:
        return self.store.table


class EntityRegistry:
    """
    Ordered registry of entity collections bound to a database.

    Usage:
        db = CongregationDatabase("congregation.db")
        registry = EntityRegistry(db)
        registry.initialize()

        for entry in registry.list():
            print(entry.name, entry.store.count())
    """

    def __init__(
        self,
        db: CongregationDatabase,
        names: tuple[str, ...] = ENTITY_NAMES,
    ):
        """
        Bind every entity name to a store handle.

        Args:
            db: Database holding the entity tables
            names: Entity names in registry order (defaults to ENTITY_NAMES)

        Raises:
            ValueError: If two entries share a name or a table
        """
        if len(set(names)) != len(names):
            raise ValueError("Entity registry contains duplicate names")

        tables = [table_name(name) for name in names]
        if len(set(tables)) != len(tables):
            raise ValueError("Entity registry contains duplicate tables")

        self.db = db
        self._entries = tuple(
            RegistryEntry(name=name, store=EntityStore(db, table))
            for name, table in zip(names, tables)
        )
        self._by_name = {entry.name: entry for entry in self._entries}

    def initialize(self) -> None:
        """Create the table of every registered collection."""
        self.db.initialize(self.tables())

    def list(self) -> tuple[RegistryEntry, ...]:
        """Get every entry in registry order."""
        return self._entries

    def names(self) -> list[str]:
        return [entry.name for entry in self._entries]

    def tables(self) -> list[str]:
        return [entry.table for entry in self._entries]

    def get(self, name: str) -> RegistryEntry | None:
        return self._by_name.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
