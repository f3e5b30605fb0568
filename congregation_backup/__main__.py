"""
Entry point for running congregation_backup as a module.

Usage:
    python -m congregation_backup --help
    python -m congregation_backup backup
    python -m congregation_backup restore --list
"""

from congregation_backup.cli import cli

if __name__ == "__main__":
    cli()
