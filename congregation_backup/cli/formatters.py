"""CLI output formatting functions.

This module contains functions for displaying collection counts, archived
backups, restore previews and restore summaries on the command line.
"""

from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import click

from congregation_backup.backup.registry import LEGACY_ALIASES
from congregation_backup.backup.restore import resolve_entity_data

if TYPE_CHECKING:
    from congregation_backup.backup.archive import BackupArchive
    from congregation_backup.backup.registry import EntityRegistry
    from congregation_backup.backup.restore import RestoreOutcome
    from congregation_backup.backup.snapshot import Snapshot


def show_entity_counts(counts: list[tuple[str, int]], show_empty: bool = True) -> None:
    """
    Display a table of record counts per collection.

    Args:
        counts: (collection name, record count) pairs in display order
        show_empty: If False, collections with no records are skipped
    """
    click.echo(f"{'Collection':<24} {'Records':>10}")
    click.echo("-" * 35)

    total = 0
    for name, count in counts:
        total += count
        if count or show_empty:
            click.echo(f"{name:<24} {count:>10}")

    click.echo("-" * 35)
    click.echo(f"{'Total':<24} {total:>10}")


def show_backup_list(archive: "BackupArchive", backups: list[Path]) -> None:
    """
    Display archived backup files with their timestamp and size.

    Args:
        archive: Archive used to read each file's snapshot timestamp
        backups: Backup file paths, newest first
    """
    click.echo(f"Available backups in {archive.backup_dir}:\n")
    click.echo(f"{'Filename':<40} {'Date':<20} {'Records':>8} {'Size':>10}")
    click.echo("-" * 81)

    for backup_path in backups:
        size_kb = backup_path.stat().st_size / 1024

        snapshot = archive.load(backup_path)
        if snapshot is not None:
            timestamp = snapshot.timestamp
            records = str(snapshot.total_records)
        else:
            # Fallback to file modification time
            mtime = backup_path.stat().st_mtime
            timestamp = datetime.fromtimestamp(mtime).isoformat()
            records = "?"

        click.echo(
            f"{backup_path.name:<40} {timestamp[:19]:<20} {records:>8} "
            f"{size_kb:>7.1f} KB"
        )

    click.echo(f"\nTotal: {len(backups)} backup(s)")


def show_restore_preview(snapshot: "Snapshot", registry: "EntityRegistry") -> None:
    """
    Display what a restore would load into each collection.

    Collections filled from a legacy key of an older snapshot are marked
    with the key they come from.
    """
    resolved = resolve_entity_data(snapshot, registry)

    click.echo(f"{'Collection':<24} {'Records':>10}  Source")
    click.echo("-" * 50)
    for name in registry.names():
        count = len(resolved[name])
        source = ""
        legacy_name = LEGACY_ALIASES.get(name)
        if snapshot.data.get(name) is None and legacy_name in snapshot.data:
            source = f"(from legacy '{legacy_name}')"
        if count or source:
            click.echo(f"{name:<24} {count:>10}  {source}".rstrip())

    empty = [name for name in registry.names() if not resolved[name]]
    if empty:
        click.echo(f"\n{len(empty)} collection(s) will be emptied.")


def show_restore_summary(outcome: "RestoreOutcome") -> None:
    """
    Display per-collection results of a restore.

    Args:
        outcome: The RestoreOutcome returned by the restore
    """
    click.echo(f"{'Collection':<24} {'Deleted':>8} {'Inserted':>9}  Status")
    click.echo("-" * 55)

    for result in outcome.entities:
        if result.ok and not result.deleted and not result.inserted:
            continue
        status = (
            click.style("ok", fg="green")
            if result.ok
            else click.style("FAILED", fg="red")
        )
        click.echo(
            f"{result.name:<24} {result.deleted:>8} {result.inserted:>9}  {status}"
        )

    for result in outcome.failed:
        click.echo(click.style(f"  {result.name}: {result.error}", fg="red"))

    click.echo(
        f"\nCollections: {len(outcome.entities) - len(outcome.failed)} ok, "
        f"{len(outcome.failed)} failed; records inserted: {outcome.total_inserted}"
    )
