"""
Command-line interface for congregation_backup.

Provides CLI commands for creating, exporting, listing and restoring
snapshots of the congregation database.

Usage:
    # Show help
    congregation-backup --help

    # Check status
    congregation-backup status

    # Save a snapshot to the backup directory
    congregation-backup --user secretary backup

    # Export members as CSV
    congregation-backup --user secretary export --format csv --type members

    # Restore from a snapshot file
    congregation-backup --user secretary restore --backup-file backup.json
    congregation-backup restore --backup-file backup.json --dry-run
"""

import sys
from pathlib import Path
from typing import Any

import click

from congregation_backup import __version__
from congregation_backup.auth.session import session_from_config
from congregation_backup.backup.archive import BackupArchive
from congregation_backup.backup.lock import LOCK_FILE_NAME, RestoreLock
from congregation_backup.backup.registry import EntityRegistry
from congregation_backup.backup.restore import RESTORE_STRATEGIES
from congregation_backup.backup.service import EXPORT_FORMATS, BackupService
from congregation_backup.backup.snapshot import SnapshotFormatError
from congregation_backup.cli.formatters import (
    show_backup_list,
    show_entity_counts,
    show_restore_preview,
    show_restore_summary,
)
from congregation_backup.config.generator import save_config_file
from congregation_backup.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigError,
    ConfigLoader,
)
from congregation_backup.storage.db import CongregationDatabase, StoreError
from congregation_backup.utils import resolve_config_dir
from congregation_backup.utils.logging import (
    cleanup_old_logs,
    get_logger,
    setup_logging,
)
from congregation_backup.utils.paths import resolve_database_path


def get_config_dir(config_dir: str | None) -> Path:
    """Get the configuration directory path."""
    return resolve_config_dir(config_dir)


def get_config_file(config_file: str | None, config_dir: Path) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file).expanduser()
    return config_dir / DEFAULT_CONFIG_FILE


def get_backup_dir(ctx: click.Context) -> Path:
    """Get the backup directory from config or the default under config_dir."""
    config = ctx.obj.get("config", {})
    if config.get("backup_dir"):
        return Path(config["backup_dir"]).expanduser()
    return ctx.obj["config_dir"] / "backups"


def open_registry(ctx: click.Context) -> EntityRegistry:
    """Open the congregation database and create any missing tables."""
    config = ctx.obj.get("config", {})
    db_path = resolve_database_path(
        ctx.obj["config_dir"], ctx.obj.get("database") or config.get("database_path")
    )
    registry = EntityRegistry(CongregationDatabase(db_path))
    try:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        registry.initialize()
    except (StoreError, OSError) as e:
        get_logger(__name__).error(f"Failed to open database: {e}")
        _fail(str(e))
    return registry


def create_service(
    ctx: click.Context,
    registry: EntityRegistry,
    overrides: dict[str, Any] | None = None,
) -> BackupService:
    """Create the backup service for the current operator and configuration."""
    config = dict(ctx.obj.get("config", {}))
    if overrides:
        config.update(overrides)
    session = session_from_config(config, ctx.obj.get("operator"))
    return BackupService.from_config(
        registry, session, config, config_dir=ctx.obj["config_dir"]
    )


def _fail(message: str) -> None:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="congregation-backup")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="CONGREGATION_BACKUP_CONFIG_DIR",
    help="Configuration directory path (default: ~/.congregation-backup).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="CONGREGATION_BACKUP_CONFIG_FILE",
    help="Configuration file path (default: <config-dir>/config.yaml).",
)
@click.option(
    "--database",
    "-d",
    help="Database path, or ':memory:' (default: <config-dir>/congregation.db).",
)
@click.option(
    "--user",
    "-u",
    "operator",
    help="Operator performing the command, recorded in snapshots.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: str | None,
    config_file: str | None,
    database: str | None,
    operator: str | None,
) -> None:
    """
    Congregation database backup and restore.

    Saves every collection of the congregation database into one
    versioned snapshot, exports snapshots as JSON or CSV files, and
    restores the database from a snapshot.
    """
    # Initialize context
    ctx.ensure_object(dict)

    # Resolve paths
    resolved_config_dir = get_config_dir(config_dir)
    resolved_config_file = get_config_file(config_file, resolved_config_dir)

    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file
    ctx.obj["database"] = database
    ctx.obj["operator"] = operator

    # Load configuration file
    config: dict[str, Any] = {}
    try:
        loader = ConfigLoader(config_dir=resolved_config_dir)
        config = loader.load_from_file(resolved_config_file)
        if config:
            loader.validate(config)
    except ConfigError as e:
        # Show error but don't fail - allow CLI to work without config file
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = {}

    ctx.obj["config"] = config

    # CLI flag takes precedence over config file
    effective_verbose = verbose or config.get("verbose", False)
    ctx.obj["verbose"] = effective_verbose

    log_dir = (
        Path(config["log_dir"]).expanduser()
        if config.get("log_dir")
        else resolved_config_dir / "logs"
    )
    setup_logging(verbose=effective_verbose, log_dir=log_dir)

    log_retention = config.get("log_retention_count", 10)
    if log_retention > 0:
        cleanup_old_logs(log_dir=log_dir, keep_count=log_retention)


# =============================================================================
# Init-Config Command
# =============================================================================


@cli.command("init-config")
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing configuration file if it exists.",
)
@click.pass_context
def init_config_command(ctx: click.Context, force: bool) -> None:
    """
    Generate a default configuration file.

    Creates a configuration file with all available options documented
    and commented out. You can then uncomment and modify the options
    you want to use.

    Examples:

        # Create config file (fails if already exists)
        congregation-backup init-config

        # Overwrite existing config file
        congregation-backup init-config --force
    """
    logger = get_logger(__name__)
    config_file = ctx.obj["config_file"]

    click.echo(f"Creating configuration file: {config_file}")

    success, error = save_config_file(config_file, overwrite=force)

    if success:
        click.echo(click.style("Configuration file created successfully!", fg="green"))
        click.echo(f"\nLocation: {config_file}")
        click.echo("\nNext steps:")
        click.echo("1. Edit the file to uncomment and configure desired options")
        click.echo("2. Run 'congregation-backup --help' to see available commands")
    else:
        logger.error(f"Failed to create configuration file: {error}")
        _fail(str(error))


# =============================================================================
# Status Command
# =============================================================================


@cli.command("status")
@click.option(
    "--all", "-a", "show_all", is_flag=True, help="Include empty collections."
)
@click.pass_context
def status_command(ctx: click.Context, show_all: bool) -> None:
    """
    Show database and backup status.

    Displays the record count of every collection, the backup directory
    and the most recent archived backup.

    Example:

        congregation-backup status --all
    """
    logger = get_logger(__name__)

    try:
        registry = open_registry(ctx)
        try:
            counts = [(entry.name, entry.store.count()) for entry in registry]
            click.echo("=== Congregation Database ===\n")
            click.echo(f"Database: {registry.db.db_path}")
            click.echo(f"Collections: {len(registry)}\n")
            show_entity_counts(counts, show_empty=show_all)
        finally:
            registry.db.close()

        archive = BackupArchive(get_backup_dir(ctx))
        backups = archive.list_backups()
        click.echo("\n=== Backups ===\n")
        click.echo(f"Backup directory: {archive.backup_dir}")
        if backups:
            click.echo(f"Backups: {len(backups)} (latest: {backups[0].name})")
        else:
            click.echo("Backups: none")

        if RestoreLock(ctx.obj["config_dir"] / LOCK_FILE_NAME).is_locked():
            click.echo(click.style("\nA restore is currently running.", fg="yellow"))

    except Exception as e:
        logger.exception(f"Error getting status: {e}")
        _fail(str(e))


# =============================================================================
# Backup Command
# =============================================================================


@cli.command("backup")
@click.option(
    "--consistent-read",
    is_flag=True,
    help="Read all collections inside one transaction.",
)
@click.pass_context
def backup_command(ctx: click.Context, consistent_read: bool) -> None:
    """
    Save a snapshot of every collection to the backup directory.

    Old snapshots beyond backup_retention_count are removed.

    Examples:

        congregation-backup --user secretary backup
        congregation-backup --user secretary backup --consistent-read
    """
    logger = get_logger(__name__)
    config = ctx.obj.get("config", {})

    overrides = {"backup_consistent_read": True} if consistent_read else None
    registry = open_registry(ctx)
    try:
        result = create_service(ctx, registry, overrides).create_backup()
    finally:
        registry.db.close()

    if not result.success:
        _fail(str(result.error))

    snapshot = result.data
    try:
        archive = BackupArchive(
            get_backup_dir(ctx),
            retention_count=config.get("backup_retention_count", 10),
        )
        backup_path = archive.save(snapshot)
    except OSError as e:
        logger.exception(f"Failed to save backup: {e}")
        _fail(f"Failed to save backup: {e}")
        return

    show_entity_counts(
        [(name, len(records)) for name, records in snapshot.data.items()],
        show_empty=False,
    )
    click.echo(click.style(f"\nBackup saved: {backup_path}", fg="green"))


# =============================================================================
# Export Command
# =============================================================================


@cli.command("export")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(EXPORT_FORMATS, case_sensitive=False),
    default="json",
    show_default=True,
    help="Export file format.",
)
@click.option(
    "--type",
    "-t",
    "data_type",
    default="members",
    show_default=True,
    help="Entity type for CSV exports (members, groups, territories, reports).",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=True, file_okay=True),
    help="Output file or directory (default: current directory).",
)
@click.pass_context
def export_command(
    ctx: click.Context, fmt: str, data_type: str, output: str | None
) -> None:
    """
    Export the database as a JSON snapshot or a CSV table.

    Examples:

        # Full snapshot as JSON
        congregation-backup --user secretary export

        # Member list as CSV into a directory
        congregation-backup --user secretary export --format csv -o exports/
    """
    logger = get_logger(__name__)

    registry = open_registry(ctx)
    try:
        result = create_service(ctx, registry).export_backup_file(
            fmt.lower(), data_type
        )
    finally:
        registry.db.close()

    if not result.success:
        _fail(str(result.error))

    export = result.data
    if output is None:
        output_path = Path.cwd() / export.filename
    elif Path(output).is_dir():
        output_path = Path(output) / export.filename
    else:
        output_path = Path(output)

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(export.content, encoding="utf-8")
    except OSError as e:
        logger.exception(f"Failed to write export: {e}")
        _fail(f"Failed to write export: {e}")
        return

    click.echo(click.style(f"Exported {export.mime_type}: {output_path}", fg="green"))


# =============================================================================
# Health Command
# =============================================================================


@cli.command("health")
def health_command() -> None:
    """
    Check application health status.

    Example:

        congregation-backup health
    """
    click.echo("healthy")


# =============================================================================
# Restore Command
# =============================================================================


@cli.command("restore")
@click.option(
    "--backup-file",
    "-b",
    type=click.Path(exists=True, file_okay=True, dir_okay=False),
    help="Path to specific backup file to restore from.",
)
@click.option(
    "--list",
    "-l",
    "list_backups_flag",
    is_flag=True,
    help="List available backup files.",
)
@click.option(
    "--strategy",
    "-s",
    type=click.Choice(RESTORE_STRATEGIES, case_sensitive=False),
    help="Restore strategy (default: restore_strategy from config, or staged).",
)
@click.option(
    "--dry-run", "-n", is_flag=True, help="Preview restore without applying changes."
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def restore_command(
    ctx: click.Context,
    backup_file: str | None,
    list_backups_flag: bool,
    strategy: str | None,
    dry_run: bool,
    yes: bool,
) -> None:
    """
    Restore the database from a snapshot file.

    Every collection is replaced by the snapshot's contents; collections
    missing from the snapshot are emptied.

    Without --backup-file, lists available backups to choose from.

    Examples:

        # List available backups
        congregation-backup restore --list

        # Preview restore without applying
        congregation-backup restore --backup-file backup.json --dry-run

        # Restore, wiping collections in place
        congregation-backup --user secretary restore -b backup.json -s direct
    """
    logger = get_logger(__name__)
    archive = BackupArchive(get_backup_dir(ctx))

    # If --list flag is set or no backup file specified, list backups
    if list_backups_flag or not backup_file:
        backups = archive.list_backups()
        if not backups:
            click.echo("No backups found.")
            click.echo(f"Backup directory: {archive.backup_dir}")
            return
        show_backup_list(archive, backups)
        click.echo(
            "\nTo restore, use: congregation-backup restore --backup-file <path>"
        )
        return

    backup_path = Path(backup_file)
    click.echo(f"Loading backup from {backup_path}...")

    try:
        snapshot = archive.read(backup_path)
    except (OSError, ValueError, SnapshotFormatError) as e:
        logger.warning(f"Cannot load backup {backup_path}: {e}")
        _fail(f"Failed to load backup file {backup_path}: {e}")
        return

    click.echo(f"Backup version: {snapshot.version}")
    click.echo(f"Backup timestamp: {snapshot.timestamp}")
    click.echo(f"Created by: {snapshot.created_by or 'Unknown'}")
    click.echo(f"Records: {snapshot.total_records}\n")

    registry = open_registry(ctx)
    try:
        show_restore_preview(snapshot, registry)

        if dry_run:
            click.echo(
                click.style("\nDry run mode - no changes will be made.", fg="yellow")
            )
            return

        if not yes:
            click.confirm(
                f"\nReplace all {len(registry)} collections in "
                f"{registry.db.db_path} with this backup?",
                abort=True,
            )

        click.echo("\nRestoring...")
        result = create_service(ctx, registry).restore_backup(
            snapshot, strategy=strategy.lower() if strategy else None
        )
    finally:
        registry.db.close()

    if result.data is not None:
        show_restore_summary(result.data)

    if not result.success:
        _fail(str(result.error))

    click.echo(click.style("\nRestore complete!", fg="green"))
    logger.info(f"Restore completed from {backup_path}")
